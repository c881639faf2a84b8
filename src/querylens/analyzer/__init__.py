"""
Query analyzer module - detector engine.

Module responsibilities:
- analyzer.py: Analyzer orchestrator (run, rank, summarize)
- models.py: Immutable domain models (Bottleneck, AnalysisResult, etc.)
- detectors/base.py: Detector base class and config schema
- registry.py: Detector registration and discovery
- scanning.py: Line and bracket-span helpers shared by detectors
"""

from querylens.analyzer.analyzer import Analyzer, analyze
from querylens.analyzer.detectors.base import Detector, DetectorConfig
from querylens.analyzer.models import (
    AnalysisResult,
    Bottleneck,
    DetectorRun,
    DetectorRunStatus,
    IssueType,
    Severity,
)
from querylens.analyzer.registry import (
    DetectorRegistry,
    get_registry,
    register_detector,
    reset_registry,
)

# Import detectors to register them
from querylens.analyzer import detectors as _detectors  # noqa: F401

__all__ = [
    # Main orchestrator
    "Analyzer",
    "analyze",
    # Models
    "AnalysisResult",
    "Bottleneck",
    "DetectorRun",
    "DetectorRunStatus",
    "IssueType",
    "Severity",
    # Registry
    "DetectorRegistry",
    "get_registry",
    "register_detector",
    "reset_registry",
    # Detectors
    "Detector",
    "DetectorConfig",
]
