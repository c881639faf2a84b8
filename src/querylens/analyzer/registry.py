"""
Detector registry.

Detectors register themselves with the @register_detector decorator when
their module is imported. The analyzer asks the registry for the active
set, so the CLI and tests can narrow it with include/exclude ids.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from querylens.analyzer.detectors.base import Detector

T = TypeVar("T", bound="Detector")


class DetectorRegistry:
    """
    Centralized registry of detector classes, kept in registration order.

    Example:
        @register_detector
        class MyDetector(Detector):
            detector_id = "MY_DETECTOR"
            ...

        registry = get_registry()
        detectors = registry.filter(exclude={"HEAVY_AGGREGATION"})
    """

    def __init__(self) -> None:
        self._detectors: dict[str, type[Detector]] = {}

    def register(self, detector_cls: type[T]) -> type[T]:
        """
        Register a detector class.

        Raises:
            ValueError: If a detector with the same ID is already registered
        """
        detector_id = detector_cls.detector_id

        if detector_id in self._detectors:
            existing = self._detectors[detector_id]
            raise ValueError(
                f"Detector '{detector_id}' already registered by "
                f"{existing.__module__}.{existing.__name__}. "
                f"Cannot register {detector_cls.__module__}.{detector_cls.__name__}"
            )

        self._detectors[detector_id] = detector_cls
        return detector_cls

    def unregister(self, detector_id: str) -> bool:
        if detector_id in self._detectors:
            del self._detectors[detector_id]
            return True
        return False

    def get(self, detector_id: str) -> type[Detector] | None:
        return self._detectors.get(detector_id)

    def all(self) -> list[type[Detector]]:
        """All registered detector classes, in registration order."""
        return list(self._detectors.values())

    def all_ids(self) -> list[str]:
        return list(self._detectors.keys())

    def filter(
        self,
        include: set[str] | None = None,
        exclude: set[str] | None = None,
    ) -> list[type[Detector]]:
        """
        Get a filtered list of detector classes.

        Args:
            include: If provided, only include these detector IDs
            exclude: If provided, exclude these detector IDs
        """
        detectors = self.all()

        if include is not None:
            detectors = [d for d in detectors if d.detector_id in include]

        if exclude is not None:
            detectors = [d for d in detectors if d.detector_id not in exclude]

        return detectors

    def clear(self) -> None:
        """Remove all registered detectors. Primarily useful for testing."""
        self._detectors.clear()

    def __len__(self) -> int:
        return len(self._detectors)

    def __contains__(self, detector_id: str) -> bool:
        return detector_id in self._detectors


_global_registry = DetectorRegistry()


def get_registry() -> DetectorRegistry:
    """Get the global detector registry."""
    return _global_registry


def register_detector(detector_cls: type[T]) -> type[T]:
    """Decorator to register a detector with the global registry."""
    return _global_registry.register(detector_cls)


def reset_registry() -> None:
    """Clear the global registry (testing only)."""
    _global_registry.clear()
