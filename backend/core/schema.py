from __future__ import annotations

from typing import Any, Iterable, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

Resolution = Literal["pending", "yes", "no"]
JobState = Literal["running", "success", "failed"]

DECIDED: frozenset[str] = frozenset({"yes", "no"})


class UploadedFile(BaseModel):
    """Descriptor of one file uploaded for a job."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    original_name: str
    stored_name: str | None = None
    size: int = Field(default=0, ge=0)
    mime_type: str | None = None
    stored_path: str | None = None

    @property
    def display_name(self) -> str:
        return self.original_name or self.stored_name or ""


class TierResult(BaseModel):
    """Answer of one resolution tier for a single report."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    fields_mapped: Resolution = "pending"
    attributes_mapped: Resolution = "pending"
    located_source: str | None = None
    mapped_count: int = Field(default=0, ge=0)
    total_fields: int = Field(default=0, ge=0)
    message: str | None = None

    @property
    def conclusive(self) -> bool:
        return self.fields_mapped in DECIDED and self.attributes_mapped in DECIDED

    def compact(self) -> dict[str, Any]:
        """Short form used in log lines."""

        return {
            "fieldsMapped": self.fields_mapped,
            "attributesMapped": self.attributes_mapped,
            "locatedSource": self.located_source,
            "mappedCount": self.mapped_count,
            "totalFields": self.total_fields,
        }


class RequiredFile(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    key: str
    human_name: str | None = None
    import_: dict[str, Any] = Field(default_factory=dict, alias="import")

    @property
    def formats(self) -> list[str]:
        formats = self.import_.get("formats")
        if not isinstance(formats, list):
            return []
        return [str(item).lower() for item in formats]


class Routine(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str | None = None
    required_files: list[RequiredFile] = Field(default_factory=list)


class ReportFieldSpec(BaseModel):
    model_config = ConfigDict(extra="ignore")

    fields: list[Any] = Field(default_factory=list)

    def field_names(self) -> list[str]:
        names: list[str] = []
        for item in self.fields:
            if isinstance(item, dict):
                value = item.get("name") or item.get("key") or item.get("label")
            else:
                value = item
            if value is not None and str(value).strip():
                names.append(str(value).strip())
        return names


class ReportMeta(BaseModel):
    """What the reference dataset knows about one report key."""

    model_config = ConfigDict(frozen=True)

    report_key: str
    human_name: str | None = None
    field_names: tuple[str, ...] = ()

    @property
    def total_fields(self) -> int:
        return len(self.field_names)

    @property
    def known(self) -> bool:
        return self.human_name is not None or bool(self.field_names)


class ReferenceDataset(BaseModel):
    """Read-only routine and report catalogue consulted by the tiers."""

    model_config = ConfigDict(extra="ignore")

    schema_version: str | None = None
    generated_at: str | None = None
    routines: list[Routine] = Field(default_factory=list)
    report_field_specs: dict[str, ReportFieldSpec] = Field(default_factory=dict)

    def required_files(self, routine_id: str) -> list[RequiredFile]:
        for routine in self.routines:
            if routine.id == routine_id:
                return list(routine.required_files)
        return []

    def report_meta(self, report_key: str, routine_codes: Iterable[str] = ()) -> ReportMeta:
        """Resolve the human name and field spec for ``report_key``.

        Routines listed in ``routine_codes`` are consulted first so that a
        selected routine's naming wins over other routines sharing the key.
        """

        selected = [code for code in routine_codes if code]
        ordered = [routine for code in selected for routine in self.routines if routine.id == code]
        ordered.extend(routine for routine in self.routines if routine.id not in selected)

        human_name: str | None = None
        for routine in ordered:
            for required in routine.required_files:
                if str(required.key) == str(report_key) and required.human_name:
                    human_name = required.human_name
                    break
            if human_name:
                break

        spec = self.report_field_specs.get(report_key)
        field_names = tuple(spec.field_names()) if spec else ()
        return ReportMeta(report_key=report_key, human_name=human_name, field_names=field_names)
