"""Application service layer for report detection runs."""
from __future__ import annotations

from typing import Any, Callable, Iterable, Mapping

from backend.core.errors import MissingJobIdError
from backend.core.reference import get_reference_dataset
from backend.core.schema import ReferenceDataset, UploadedFile
from backend.core.settings import DetectionSettings
from backend.domain import DetectionRequest
from backend.infrastructure import InMemoryDetectionJobRepository, InMemoryUploadRegistry, UploadRegistry
from backend.workers.detection import DetectionOrchestrator


class DetectionService:
    """Coordinates detection use cases over the orchestrator and its collaborators."""

    def __init__(
        self,
        orchestrator: DetectionOrchestrator,
        uploads: UploadRegistry,
        dataset_provider: Callable[[], ReferenceDataset] = get_reference_dataset,
    ) -> None:
        self._orchestrator = orchestrator
        self._uploads = uploads
        self._dataset_provider = dataset_provider

    @property
    def orchestrator(self) -> DetectionOrchestrator:
        return self._orchestrator

    # ------------------------------------------------------------------
    # uploaded files
    # ------------------------------------------------------------------
    def register_uploads(
        self,
        job_id: str,
        files: Iterable[UploadedFile | Mapping[str, Any]],
    ) -> list[UploadedFile]:
        descriptors = [item if isinstance(item, UploadedFile) else UploadedFile.model_validate(item) for item in files]
        return self._uploads.register_files(job_id, descriptors)

    def list_uploads(self, job_id: str) -> list[UploadedFile]:
        return self._uploads.list_files(job_id)

    # ------------------------------------------------------------------
    # detection runs
    # ------------------------------------------------------------------
    async def start_detection(
        self,
        job_id: str,
        *,
        report_keys: Iterable[str] = (),
        engagement_id: str | None = None,
        admin_id: str | None = None,
        routine_codes: Iterable[str] = (),
    ) -> dict[str, Any]:
        if not job_id:
            raise MissingJobIdError("jobId is required")

        request = DetectionRequest(
            files=tuple(self._uploads.list_files(job_id)),
            dataset=self._dataset_provider(),
            engagement_id=engagement_id or None,
            admin_id=admin_id or None,
            routine_codes=tuple(str(code) for code in routine_codes if code),
        )
        return await self._orchestrator.start(job_id, report_keys, request)

    def get_status(self, job_id: str) -> dict[str, Any] | None:
        return self._orchestrator.status(job_id)

    def list_jobs(self) -> list[dict[str, Any]]:
        return self._orchestrator.jobs()

    async def wait(self, job_id: str) -> None:
        await self._orchestrator.wait(job_id)

    def stop(self, job_id: str) -> bool:
        return self._orchestrator.stop(job_id)

    def discard(self, job_id: str) -> bool:
        return self._orchestrator.discard(job_id)

    async def shutdown(self) -> None:
        await self._orchestrator.shutdown()

    # ------------------------------------------------------------------
    # testing helpers
    # ------------------------------------------------------------------
    def reset(self) -> None:
        self._orchestrator.reset()
        self._uploads.reset()


def build_detection_service(settings: DetectionSettings | None = None) -> DetectionService:
    settings = settings or DetectionSettings()
    orchestrator = DetectionOrchestrator(
        InMemoryDetectionJobRepository(),
        tick_interval=settings.tick_interval,
        tier_timeout=settings.tier_timeout,
    )
    return DetectionService(orchestrator, InMemoryUploadRegistry())


_service = build_detection_service()


def configure_detection_service(service: DetectionService) -> None:
    """Install the service used by the HTTP routes."""

    global _service
    _service = service


def get_detection_service() -> DetectionService:
    """Return the singleton detection service for the process."""

    return _service


def reset_detection_state() -> None:
    """Reset the in-memory stores (used in tests)."""

    _service.reset()
