"""Registry of uploaded files per job.

Storing the bytes is handled by the upload service; this registry only keeps
the descriptors the detection tiers consult.
"""
from __future__ import annotations

from typing import Iterable, Protocol

from backend.core.schema import UploadedFile


class UploadRegistry(Protocol):
    """Read side consumed by detection, plus the append used by the uploader."""

    def register_files(self, job_id: str, files: Iterable[UploadedFile]) -> list[UploadedFile]: ...

    def list_files(self, job_id: str) -> list[UploadedFile]: ...

    def reset(self) -> None: ...


class InMemoryUploadRegistry:
    def __init__(self) -> None:
        self._files: dict[str, list[UploadedFile]] = {}

    def register_files(self, job_id: str, files: Iterable[UploadedFile]) -> list[UploadedFile]:
        bucket = self._files.setdefault(job_id, [])
        bucket.extend(files)
        return list(bucket)

    def list_files(self, job_id: str) -> list[UploadedFile]:
        return list(self._files.get(job_id, []))

    def reset(self) -> None:
        self._files.clear()
