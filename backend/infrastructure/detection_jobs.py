"""Infrastructure layer for detection job persistence."""
from __future__ import annotations

from typing import Protocol

from backend.domain import DetectionJob


class DetectionJobRepository(Protocol):
    """Persistence contract for detection job state."""

    def get(self, job_id: str) -> DetectionJob | None: ...

    def add(self, job: DetectionJob) -> DetectionJob: ...

    def discard(self, job_id: str) -> DetectionJob | None: ...

    def list_jobs(self) -> list[DetectionJob]: ...

    def reset(self) -> None: ...


class InMemoryDetectionJobRepository:
    """Process-wide job map; jobs live until discarded or reset."""

    def __init__(self) -> None:
        self._jobs: dict[str, DetectionJob] = {}

    def get(self, job_id: str) -> DetectionJob | None:
        return self._jobs.get(job_id)

    def add(self, job: DetectionJob) -> DetectionJob:
        existing = self._jobs.get(job.job_id)
        if existing is not None:
            return existing
        self._jobs[job.job_id] = job
        return job

    def discard(self, job_id: str) -> DetectionJob | None:
        return self._jobs.pop(job_id, None)

    def list_jobs(self) -> list[DetectionJob]:
        return sorted(self._jobs.values(), key=lambda job: job.started_at)

    def reset(self) -> None:
        self._jobs.clear()
