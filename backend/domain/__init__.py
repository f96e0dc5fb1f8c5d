"""Domain layer definitions."""

from .detection import DetectionJob, DetectionRequest, Outcome, ReportTask, unique_report_keys

__all__ = [
    "DetectionJob",
    "DetectionRequest",
    "Outcome",
    "ReportTask",
    "unique_report_keys",
]
