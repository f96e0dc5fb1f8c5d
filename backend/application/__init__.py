"""Application services."""

from .detection import (
    DetectionService,
    build_detection_service,
    configure_detection_service,
    get_detection_service,
    reset_detection_state,
)

__all__ = [
    "DetectionService",
    "build_detection_service",
    "configure_detection_service",
    "get_detection_service",
    "reset_detection_state",
]
