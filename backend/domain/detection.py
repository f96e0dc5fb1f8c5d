"""Domain entities for report detection runs."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, Sequence

from backend.core.schema import JobState, ReferenceDataset, Resolution, UploadedFile


@dataclass(slots=True)
class ReportTask:
    """Detection state of one report inside a job.

    Tasks are replaced wholesale when a step applies a result, never edited
    field by field, so a reader always sees one coherent version.
    """

    report_key: str
    fields_mapped: Resolution = "pending"
    attributes_mapped: Resolution = "pending"
    located_source: str | None = None
    mapped_count: int = 0
    total_fields: int = 0
    message: str | None = None

    def snapshot(self) -> dict[str, Any]:
        return {
            "reportKey": self.report_key,
            "fieldsMapped": self.fields_mapped,
            "attributesMapped": self.attributes_mapped,
            # legacy names still read by older front-end pages
            "located": self.fields_mapped,
            "mapped": self.attributes_mapped,
            "locatedSource": self.located_source,
            "mappedCount": self.mapped_count,
            "totalFields": self.total_fields,
            "message": self.message,
        }


@dataclass(frozen=True, slots=True)
class Outcome:
    fields_any_no: bool = False
    attributes_any_no: bool = False
    fields_all_yes: bool = False
    attributes_all_yes: bool = False

    @classmethod
    def from_reports(cls, reports: Sequence[ReportTask]) -> "Outcome":
        return cls(
            fields_any_no=any(task.fields_mapped == "no" for task in reports),
            attributes_any_no=any(task.attributes_mapped == "no" for task in reports),
            fields_all_yes=bool(reports) and all(task.fields_mapped == "yes" for task in reports),
            attributes_all_yes=bool(reports) and all(task.attributes_mapped == "yes" for task in reports),
        )

    def as_dict(self) -> dict[str, bool]:
        return {
            "fieldsAnyNo": self.fields_any_no,
            "attributesAnyNo": self.attributes_any_no,
            "fieldsAllYes": self.fields_all_yes,
            "attributesAllYes": self.attributes_all_yes,
        }


@dataclass(frozen=True, slots=True)
class DetectionRequest:
    """Inputs handed to the tiers for every report of a job."""

    files: tuple[UploadedFile, ...] = ()
    dataset: ReferenceDataset | None = None
    engagement_id: str | None = None
    admin_id: str | None = None
    routine_codes: tuple[str, ...] = ()


def unique_report_keys(report_keys: Iterable[str]) -> list[str]:
    """Drop duplicates and blanks while keeping first-seen order."""

    seen: set[str] = set()
    ordered: list[str] = []
    for key in report_keys:
        text = str(key).strip() if key is not None else ""
        if not text or text in seen:
            continue
        seen.add(text)
        ordered.append(text)
    return ordered


@dataclass(slots=True)
class DetectionJob:
    """One detection run: a fixed, ordered set of report tasks and a cursor."""

    job_id: str
    reports: list[ReportTask]
    request: DetectionRequest = field(default_factory=DetectionRequest)
    overall: JobState = "running"
    cursor: int = 0
    message: str | None = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def seed(cls, job_id: str, report_keys: Iterable[str], request: DetectionRequest) -> "DetectionJob":
        reports = [ReportTask(report_key=key) for key in unique_report_keys(report_keys)]
        return cls(job_id=job_id, reports=reports, request=request)

    @property
    def total(self) -> int:
        return len(self.reports)

    @property
    def done(self) -> int:
        return min(self.cursor, self.total)

    @property
    def outcome(self) -> Outcome:
        return Outcome.from_reports(self.reports)

    @property
    def is_terminal(self) -> bool:
        return self.overall != "running"

    def next_step(self) -> str | None:
        """Routing decision the front-end takes once the run is over."""

        if self.overall != "success" or not self.reports:
            return None
        outcome = self.outcome
        if outcome.fields_any_no:
            return "field_selection"
        if outcome.attributes_any_no:
            return "attribute_selection"
        return "complete"

    def mark_success(self) -> None:
        if self.overall == "running":
            self.overall = "success"

    def mark_failed(self, message: str) -> None:
        if self.overall == "running":
            self.overall = "failed"
            self.message = message

    def complete_current(self, task: ReportTask) -> None:
        """Store the processed task at the cursor and move past it."""

        if self.cursor >= self.total:
            raise IndexError(f"job {self.job_id} has no pending report")
        if task.report_key != self.reports[self.cursor].report_key:
            raise ValueError(f"report {task.report_key} is not the current report of job {self.job_id}")
        self.reports[self.cursor] = task
        self.cursor += 1
        if self.cursor >= self.total:
            self.mark_success()

    def snapshot(self) -> dict[str, Any]:
        return {
            "jobId": self.job_id,
            "overall": self.overall,
            "startedAt": self.started_at.isoformat(),
            "message": self.message,
            "progress": {"done": self.done, "total": self.total},
            "outcome": self.outcome.as_dict(),
            "nextStep": self.next_step(),
            "reports": [task.snapshot() for task in self.reports],
        }
