"""
Analyzer - runs the anti-pattern detectors over one query and ranks the result.

Every detector sees the same SQL text and the same plan-node list. Their
findings are concatenated without de-duplication, then ranked CRITICAL
first and by cost share within a severity. Ranking is a stable sort, so
ties keep detector registration order.

Design Principles:
- Deterministic: same SQL and plan always give the same result
- Observable failure: PASS/FAIL status for every detector
- Config is not code: thresholds come from Config, not hardcoded
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Sequence

from querylens.analyzer.detectors.base import Detector
from querylens.analyzer.models import (
    AnalysisResult,
    Bottleneck,
    DetectorRun,
    DetectorRunStatus,
    Severity,
)
from querylens.analyzer.registry import get_registry
from querylens.config import get_config
from querylens.exceptions import DetectorError
from querylens.plan.models import as_node_list

if TYPE_CHECKING:
    from querylens.config import Config
    from querylens.plan.models import ExecutionPlan, PlanNode

logger = logging.getLogger(__name__)

MAX_POTENTIAL_IMPROVEMENT = 95.0


class Analyzer:
    """
    Detection-and-scoring engine.

    Example:
        from querylens import Analyzer, create_mock_plan

        sql = open("report.sql").read()
        result = Analyzer().analyze(sql, create_mock_plan(sql))

        for bottleneck in result.bottlenecks:
            print(f"{bottleneck.severity}: {bottleneck.problem_description}")
    """

    def __init__(
        self,
        detectors: list[Detector] | None = None,
        include: set[str] | None = None,
        exclude: set[str] | None = None,
        fail_fast: bool | None = None,
        config: "Config | None" = None,
    ) -> None:
        """
        Initialize the analyzer.

        Args:
            detectors: Detector instances to use (if None, uses registry)
            include: Only run these detector IDs
            exclude: Skip these detector IDs
            fail_fast: Raise on first detector error (default from config)
            config: Configuration instance (if None, uses get_config())

        Raises:
            ConfigurationError: If configured thresholds are invalid for a detector
        """
        self.config = config if config is not None else get_config()

        if detectors is not None:
            self.detectors = list(detectors)
        else:
            registry = get_registry()
            detector_classes = registry.filter(include=include, exclude=exclude)
            self.detectors = [
                cls(self.config.detector_overrides(cls.detector_id) or None)
                for cls in detector_classes
            ]

        self.detectors = [
            d for d in self.detectors
            if self.config.is_detector_enabled(d.detector_id) and d.config.enabled
        ]

        self.fail_fast = self.config.fail_fast if fail_fast is None else fail_fast

    @property
    def detector_ids(self) -> list[str]:
        return [d.detector_id for d in self.detectors]

    def analyze(
        self,
        sql: str,
        plan: "ExecutionPlan | Sequence[PlanNode] | None" = None,
    ) -> AnalysisResult:
        """
        Analyze one query.

        Args:
            sql: Raw SQL text
            plan: ExecutionPlan, plain list of plan nodes, or None

        Returns:
            AnalysisResult with ranked findings and per-detector status

        Raises:
            DetectorError: If a detector fails and fail_fast is set
        """
        nodes = as_node_list(plan)
        findings, runs = self._run_detectors(sql, nodes)

        ranked = sorted(findings, key=lambda b: b.sort_key)

        result = AnalysisResult(
            bottlenecks=tuple(ranked),
            total_bottlenecks=len(ranked),
            critical_count=sum(1 for b in ranked if b.severity == Severity.CRITICAL),
            warning_count=sum(1 for b in ranked if b.severity == Severity.WARNING),
            info_count=sum(1 for b in ranked if b.severity == Severity.INFO),
            total_cost_ms=sum(node.actual_cost for node in nodes),
            total_impact_seconds=sum(b.time_impact_seconds or 0.0 for b in ranked),
            potential_improvement_percent=min(
                sum(b.cost_percentage for b in ranked), MAX_POTENTIAL_IMPROVEMENT
            ),
            detector_runs=tuple(runs),
        )

        logger.debug(
            "Analysis found %d bottlenecks (%d critical) across %d detectors",
            result.total_bottlenecks,
            result.critical_count,
            len(runs),
        )
        return result

    def _run_detectors(
        self,
        sql: str,
        nodes: list["PlanNode"],
    ) -> tuple[list[Bottleneck], list[DetectorRun]]:
        """Run detectors in order and track execution status (PASS/FAIL)."""
        findings: list[Bottleneck] = []
        runs: list[DetectorRun] = []

        for detector in self.detectors:
            start = time.perf_counter()
            try:
                detector_findings = detector.detect(sql, nodes)
            except Exception as e:
                runtime_ms = (time.perf_counter() - start) * 1000

                if self.fail_fast:
                    raise DetectorError(detector.detector_id, detector.version, e) from e

                runs.append(DetectorRun(
                    detector_id=detector.detector_id,
                    version=detector.version,
                    status=DetectorRunStatus.FAIL,
                    runtime_ms=runtime_ms,
                    findings_count=0,
                    error_summary=f"{type(e).__name__}: {e}",
                ))
                logger.warning("Detector %s failed: %s", detector.detector_id, e)
                continue

            runtime_ms = (time.perf_counter() - start) * 1000
            findings.extend(detector_findings)
            runs.append(DetectorRun(
                detector_id=detector.detector_id,
                version=detector.version,
                status=DetectorRunStatus.PASS,
                runtime_ms=runtime_ms,
                findings_count=len(detector_findings),
            ))
            logger.debug(
                "Detector %s: %d findings in %.2fms",
                detector.detector_id,
                len(detector_findings),
                runtime_ms,
            )

        return findings, runs


def analyze(
    sql: str,
    plan: "ExecutionPlan | Sequence[PlanNode] | None" = None,
) -> AnalysisResult:
    """Analyze a query with the default detector set."""
    return Analyzer().analyze(sql, plan)
