"""Deterministic first tier: match uploaded file names against the catalogue.

* a file whose name contains the report key or its human name locates the
  report's fields
* attributes map only when the fields were located and the report has a
  non-empty field specification
* without any uploaded file both axes are a definite ``no``; otherwise an
  unmatched report stays ``pending`` for the fallback tier
"""
from __future__ import annotations

import logging

from backend.core.name_normalize import normalize
from backend.core.schema import ReportMeta, TierResult, UploadedFile
from backend.tiers.base import TierContext

logger = logging.getLogger(__name__)

SOURCE = "db"


def _matches(files: tuple[UploadedFile, ...], meta: ReportMeta) -> UploadedFile | None:
    needles = [normalize(meta.report_key)]
    if meta.human_name:
        needles.append(normalize(meta.human_name))
    needles = [needle for needle in needles if needle]

    for item in files:
        names = {normalize(item.original_name or ""), normalize(item.stored_name or "")}
        if any(needle in name for name in names if name for needle in needles):
            return item
    return None


class RuleTier:
    source = SOURCE

    async def resolve(self, context: TierContext) -> TierResult:
        meta = context.report_meta()
        logger.debug(
            "rule tier job=%s report=%s files=%d routines=%d",
            context.job_id,
            context.report_key,
            len(context.files),
            len(context.routine_codes),
        )

        if not context.files:
            return TierResult(
                fields_mapped="no",
                attributes_mapped="no",
                total_fields=meta.total_fields,
                message="no files uploaded",
            )

        matched = _matches(context.files, meta)
        if matched is None:
            message = None if meta.known else f"report {context.report_key} is not in the reference dataset"
            return TierResult(total_fields=meta.total_fields, message=message)

        mapped = meta.total_fields > 0
        return TierResult(
            fields_mapped="yes",
            attributes_mapped="yes" if mapped else "no",
            located_source=self.source,
            mapped_count=meta.total_fields if mapped else 0,
            total_fields=meta.total_fields,
            message=None if mapped else "no field specification for report",
        )
