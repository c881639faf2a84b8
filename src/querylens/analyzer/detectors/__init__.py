"""Anti-pattern detectors, registered in report order."""

from querylens.analyzer.detectors.base import Detector, DetectorConfig, find_expensive_scan
from querylens.analyzer.detectors.non_sargable import NonSargablePredicate
from querylens.analyzer.detectors.correlated_subquery import CorrelatedSubquery
from querylens.analyzer.detectors.or_condition import OrCondition
from querylens.analyzer.detectors.late_filter import LateFilter
from querylens.analyzer.detectors.missing_index import MissingIndex
from querylens.analyzer.detectors.heavy_aggregation import HeavyAggregation

__all__ = [
    "Detector",
    "DetectorConfig",
    "find_expensive_scan",
    # Individual detectors
    "NonSargablePredicate",
    "CorrelatedSubquery",
    "OrCondition",
    "LateFilter",
    "MissingIndex",
    "HeavyAggregation",
]
