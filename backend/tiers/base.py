"""Resolution tier contract and result combination helpers.

A tier answers two independent questions about one report: were its fields
located in the uploaded files, and do its attributes map onto a known field
specification.  Each axis is ``yes``, ``no`` or ``pending`` (inconclusive).
Tiers run in a fixed order and a later tier only fills the axes an earlier
tier left ``pending``.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from backend.core.schema import DECIDED, ReferenceDataset, ReportMeta, TierResult, UploadedFile


@dataclass(frozen=True, slots=True)
class TierContext:
    job_id: str
    report_key: str
    files: tuple[UploadedFile, ...] = ()
    dataset: ReferenceDataset | None = None
    engagement_id: str | None = None
    admin_id: str | None = None
    routine_codes: tuple[str, ...] = ()

    def report_meta(self) -> ReportMeta:
        if self.dataset is None:
            return ReportMeta(report_key=self.report_key)
        return self.dataset.report_meta(self.report_key, self.routine_codes)

    def describe(self) -> dict[str, Any]:
        """JSON payload describing the report and files to an external service."""

        meta = self.report_meta()
        return {
            "jobId": self.job_id,
            "reportKey": self.report_key,
            "humanName": meta.human_name,
            "fields": list(meta.field_names),
            "engagementId": self.engagement_id,
            "adminId": self.admin_id,
            "routineCodes": list(self.routine_codes),
            "files": [item.model_dump(by_alias=True) for item in self.files],
        }


class ResolutionTier(Protocol):
    """A strategy deciding the two mapping axes for one report."""

    source: str

    async def resolve(self, context: TierContext) -> TierResult: ...


def merge_results(primary: TierResult, fallback: TierResult | None) -> TierResult:
    """Fill the axes ``primary`` left undecided from ``fallback``.

    A decided axis of ``primary`` is never overridden.  Provenance follows the
    tier that decided the fields axis; ``mapped_count`` and ``total_fields``
    both follow the tier that decided the attributes axis.
    """

    if fallback is None:
        return primary

    fields_from = primary if primary.fields_mapped in DECIDED else fallback
    attributes_from = primary if primary.attributes_mapped in DECIDED else fallback
    other = fallback if attributes_from is primary else primary

    return TierResult(
        fields_mapped=fields_from.fields_mapped,
        attributes_mapped=attributes_from.attributes_mapped,
        located_source=fields_from.located_source,
        mapped_count=attributes_from.mapped_count,
        total_fields=attributes_from.total_fields or other.total_fields,
        message=primary.message or fallback.message,
    )


def terminalize(result: TierResult) -> TierResult:
    """Force every axis that is not ``yes`` to ``no``."""

    fields_mapped = "yes" if result.fields_mapped == "yes" else "no"
    attributes_mapped = "yes" if result.attributes_mapped == "yes" else "no"
    return TierResult(
        fields_mapped=fields_mapped,
        attributes_mapped=attributes_mapped,
        located_source=result.located_source if fields_mapped == "yes" else None,
        mapped_count=min(result.mapped_count, result.total_fields),
        total_fields=result.total_fields,
        message=result.message,
    )
