import asyncio
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

import pytest

from backend.core.reference import load_reference_dataset
from backend.core.schema import TierResult, UploadedFile
from backend.tiers.base import TierContext, merge_results, terminalize
from backend.tiers.fallback_tier import FallbackTier, heuristic_match
from backend.tiers.rule_tier import RuleTier


@pytest.fixture(scope="module")
def dataset():
    return load_reference_dataset()


def _context(dataset, report_key: str, *names: str, **kwargs) -> TierContext:
    files = tuple(
        UploadedFile(original_name=name, stored_name=f"1700000000_{name}", size=128) for name in names
    )
    return TierContext(job_id="job-t", report_key=report_key, files=files, dataset=dataset, **kwargs)


class RecordingClient:
    def __init__(self, verdict: TierResult | None) -> None:
        self.verdict = verdict
        self.payloads: list[dict] = []

    def infer(self, payload):
        self.payloads.append(payload)
        return self.verdict


def test_rule_tier_matches_human_name(dataset):
    result = asyncio.run(RuleTier().resolve(_context(dataset, "period_end_soi", "Period End SOI - Dec.xlsx")))

    assert result.fields_mapped == "yes"
    assert result.attributes_mapped == "yes"
    assert result.located_source == "db"
    assert result.mapped_count == 5
    assert result.total_fields == 5


def test_rule_tier_matches_report_key(dataset):
    result = asyncio.run(RuleTier().resolve(_context(dataset, "period_end_soi", "period_end_soi_2024.csv")))

    assert result.fields_mapped == "yes"


def test_rule_tier_without_field_spec_maps_no_attributes(dataset):
    result = asyncio.run(
        RuleTier().resolve(_context(dataset, "purchases_and_sales_report", "Purchases & Sales Report.xlsx"))
    )

    assert result.fields_mapped == "yes"
    assert result.attributes_mapped == "no"
    assert result.mapped_count == 0
    assert result.message == "no field specification for report"


def test_rule_tier_abstains_when_nothing_matches(dataset):
    result = asyncio.run(RuleTier().resolve(_context(dataset, "period_end_soi", "holdings.xlsx")))

    assert result.fields_mapped == "pending"
    assert result.attributes_mapped == "pending"
    assert result.located_source is None
    assert result.total_fields == 5


def test_rule_tier_without_files_is_definite_no(dataset):
    result = asyncio.run(RuleTier().resolve(_context(dataset, "period_end_soi")))

    assert result.conclusive
    assert (result.fields_mapped, result.attributes_mapped) == ("no", "no")


def test_rule_tier_flags_unknown_report(dataset):
    result = asyncio.run(RuleTier().resolve(_context(dataset, "mystery_report", "holdings.xlsx")))

    assert result.fields_mapped == "pending"
    assert "not in the reference dataset" in result.message


def test_fallback_tier_matches_token_coverage(dataset):
    client = RecordingClient(None)
    result = asyncio.run(
        FallbackTier(client).resolve(_context(dataset, "period_end_soi", "period-end holdings.xlsx"))
    )

    assert result.fields_mapped == "yes"
    assert result.attributes_mapped == "yes"
    assert result.located_source == "ai"
    assert result.mapped_count == 5
    assert client.payloads == []


def test_fallback_tier_matches_initials(dataset):
    context = _context(dataset, "purchases_and_sales_report", "P&S Report.csv")

    assert heuristic_match(context.files, context.report_meta()) is not None
    result = asyncio.run(FallbackTier(RecordingClient(None)).resolve(context))
    assert result.fields_mapped == "yes"
    assert result.attributes_mapped == "no"


def test_fallback_tier_answers_no_when_client_abstains(dataset):
    result = asyncio.run(
        FallbackTier(RecordingClient(None)).resolve(_context(dataset, "period_end_soi", "trial balance.xlsx"))
    )

    assert (result.fields_mapped, result.attributes_mapped) == ("no", "no")
    assert result.total_fields == 5


def test_fallback_tier_uses_inference_verdict(dataset):
    client = RecordingClient(TierResult(fields_mapped="yes", mapped_count=2))
    context = _context(
        dataset,
        "period_end_soi",
        "trial balance.xlsx",
        engagement_id="ENG-1001",
        routine_codes=("PE_RECON",),
    )

    result = asyncio.run(FallbackTier(client).resolve(context))

    assert result.fields_mapped == "yes"
    assert result.attributes_mapped == "pending"
    assert result.located_source == "ai"
    assert result.total_fields == 5
    payload = client.payloads[0]
    assert payload["reportKey"] == "period_end_soi"
    assert payload["humanName"] == "Period End SOI"
    assert payload["fields"][0] == "security_id"
    assert payload["engagementId"] == "ENG-1001"
    assert payload["files"][0]["originalName"] == "trial balance.xlsx"


def test_merge_prefers_decided_primary_axes():
    primary = TierResult(attributes_mapped="no", total_fields=2, message="from rules")
    fallback = TierResult(fields_mapped="yes", attributes_mapped="yes", located_source="ai", mapped_count=2)

    merged = merge_results(primary, fallback)

    assert merged.fields_mapped == "yes"
    assert merged.located_source == "ai"
    assert merged.attributes_mapped == "no"
    assert merged.mapped_count == 0
    assert merged.total_fields == 2
    assert merged.message == "from rules"
    assert merge_results(primary, None) is primary


def test_merge_takes_counts_from_one_tier():
    primary = TierResult(fields_mapped="yes", located_source="db", total_fields=5)
    fallback = TierResult(fields_mapped="yes", attributes_mapped="yes", located_source="ai", mapped_count=7, total_fields=7)

    merged = terminalize(merge_results(primary, fallback))

    assert merged.located_source == "db"
    assert merged.attributes_mapped == "yes"
    assert (merged.mapped_count, merged.total_fields) == (7, 7)

    silent = TierResult(attributes_mapped="yes", mapped_count=0)
    assert merge_results(primary, silent).total_fields == 5


def test_terminalize_clears_undecided_axes():
    result = terminalize(TierResult(located_source="db", mapped_count=4, total_fields=3))

    assert (result.fields_mapped, result.attributes_mapped) == ("no", "no")
    assert result.located_source is None
    assert result.mapped_count == 3
