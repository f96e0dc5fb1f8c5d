from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException
from pydantic import ValidationError

from backend.application import get_detection_service
from backend.core.errors import MissingJobIdError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/detection", tags=["detection"])


def _string_list(payload: dict, key: str) -> list[str]:
    value = payload.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise HTTPException(status_code=400, detail=f"{key} must be a list")
    return [str(item) for item in value if item is not None]


@router.get("")
async def list_detection_jobs() -> dict:
    service = get_detection_service()
    return {"ok": True, "jobs": service.list_jobs()}


@router.post("/{job_id}/files")
async def register_files(job_id: str, payload: dict) -> dict:
    """Record descriptors of files already stored for the job."""
    files = payload.get("files")
    if not isinstance(files, list) or not files:
        raise HTTPException(status_code=400, detail="At least one file must be provided")

    service = get_detection_service()
    try:
        registered = service.register_uploads(job_id, files)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid file descriptor: {exc.error_count()} error(s)") from exc
    logger.info("detection/files jobId=%s added=%d total=%d", job_id, len(files), len(registered))
    return {"ok": True, "jobId": job_id, "files": [item.model_dump(by_alias=True) for item in registered]}


@router.get("/{job_id}/files")
async def list_files(job_id: str) -> dict:
    service = get_detection_service()
    files = service.list_uploads(job_id)
    return {"ok": True, "jobId": job_id, "files": [item.model_dump(by_alias=True) for item in files]}


@router.post("/start")
async def start_detection(payload: dict) -> dict:
    """Seed a detection run for the job's uploaded files; idempotent per jobId."""
    job_id = str(payload.get("jobId") or "").strip()
    if not job_id:
        raise HTTPException(status_code=400, detail="Missing jobId")

    report_keys = _string_list(payload, "reportKeys")
    routine_codes = _string_list(payload, "routineCodes")
    logger.info("detection/start jobId=%s reports=%d routines=%d", job_id, len(report_keys), len(routine_codes))

    service = get_detection_service()
    try:
        result = await service.start_detection(
            job_id,
            report_keys=report_keys,
            engagement_id=payload.get("engagementId"),
            admin_id=payload.get("adminId"),
            routine_codes=routine_codes,
        )
    except MissingJobIdError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"ok": True, **result}


@router.get("/{job_id}/status")
async def get_detection_status(job_id: str) -> dict:
    service = get_detection_service()
    snapshot = service.get_status(job_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="Unknown jobId")
    return {"ok": True, **snapshot}
