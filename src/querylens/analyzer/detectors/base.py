"""
Base class for anti-pattern detectors.

All detectors inherit from Detector and implement detect(). A detector is
a pure function of (sql, plan nodes): it keeps no state between calls,
never mutates the plan, and returns an empty list when its pattern is
absent. Malformed SQL is "no match", not an error.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Sequence

from pydantic import BaseModel, ConfigDict, ValidationError

from querylens.exceptions import ConfigurationError

if TYPE_CHECKING:
    from querylens.analyzer.models import Bottleneck, IssueType
    from querylens.plan.models import PlanNode


class DetectorConfig(BaseModel):
    """
    Base configuration for all detectors.

    Detectors define their own thresholds by subclassing this.
    All configs support 'enabled' to allow switching a detector off.

    Example:
        class MyDetectorConfig(DetectorConfig):
            min_columns: int = 5
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = True


class Detector(ABC):
    """
    Abstract base class for detectors.

    Each detector targets one anti-pattern family. Detectors should be:
    - Deterministic: same input always produces same output
    - Total: never raise on odd SQL, fall back to heuristics on empty plans
    - Focused: one detector, one family

    Attributes:
        detector_id: Unique identifier, UPPER_SNAKE_CASE
        version: Semver string, bump when detection logic changes
        issue_type: Family of the findings this detector emits
        description: One-line description for listings
        config_schema: Pydantic model for detector configuration
    """

    detector_id: str
    version: str = "1.0.0"
    issue_type: "IssueType"
    description: str = ""

    config_schema: type[DetectorConfig] = DetectorConfig

    def __init__(self, config: DetectorConfig | dict[str, Any] | None = None) -> None:
        """
        Initialize the detector with configuration.

        Args:
            config: DetectorConfig instance, dict, or None for defaults.
                A dict is validated against config_schema.

        Raises:
            ConfigurationError: If a dict config does not fit config_schema
        """
        if config is None:
            self.config = self.config_schema()
        elif isinstance(config, dict):
            try:
                self.config = self.config_schema(**config)
            except ValidationError as e:
                raise ConfigurationError(
                    f"Invalid configuration for detector {self.detector_id}: {e}",
                    config_key=self.detector_id,
                ) from e
        else:
            self.config = config

    @abstractmethod
    def detect(self, sql: str, plan: Sequence["PlanNode"]) -> list["Bottleneck"]:
        """
        Scan SQL text and plan nodes for this detector's anti-pattern.

        Args:
            sql: Raw, newline-delimited SQL text
            plan: Plan nodes in arena order (may be empty)

        Returns:
            Findings, or an empty list when the pattern is absent.
        """

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.detector_id} v{self.version}>"


def find_expensive_scan(plan: Sequence["PlanNode"]) -> "PlanNode | None":
    """First node that is both a scan and expensive, if any."""
    for node in plan:
        if node.is_scan and node.is_expensive:
            return node
    return None
