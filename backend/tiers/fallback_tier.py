"""Second tier: softer file-name heuristics, then external inference.

The heuristic compares word tokens instead of whole strings, so
``period-end holdings.xlsx`` locates ``Period End SOI`` and ``P&S Report.csv``
locates ``Purchases & Sales Report`` through its initials.  When the tokens
are inconclusive the configured inference client is asked; the default client
abstains and the tier answers ``no``.
"""
from __future__ import annotations

import asyncio
import logging

from backend.core.name_normalize import file_stem, tokenize
from backend.core.schema import ReportMeta, TierResult, UploadedFile
from backend.infrastructure.inference import InferenceClient, get_inference_client
from backend.tiers.base import TierContext

logger = logging.getLogger(__name__)

SOURCE = "ai"
COVERAGE_THRESHOLD = 0.6
STOPWORDS = frozenset({"report", "reports", "the", "and", "of", "file", "data", "export"})


def _significant(tokens: list[str]) -> set[str]:
    return {token for token in tokens if token not in STOPWORDS}


def _initials(label: str | None) -> str | None:
    if not label:
        return None
    words = [token for token in tokenize(label) if token not in STOPWORDS]
    if len(words) < 2:
        return None
    return "".join(word[0] for word in words)


def _file_tokens(name: str) -> set[str]:
    tokens = tokenize(file_stem(name))
    collected = set(tokens)
    # "P&S" tokenizes to "p", "s"; keep the joined form for initials matching
    letters = "".join(token for token in tokens if len(token) == 1)
    if len(letters) >= 2:
        collected.add(letters)
    return collected


def _coverage(wanted: set[str], available: set[str]) -> float:
    if not wanted:
        return 0.0
    return len(wanted & available) / len(wanted)


def heuristic_match(files: tuple[UploadedFile, ...], meta: ReportMeta) -> UploadedFile | None:
    key_tokens = _significant(tokenize(meta.report_key))
    name_tokens = _significant(tokenize(meta.human_name or ""))
    initials = _initials(meta.human_name)

    for item in files:
        for name in (item.original_name, item.stored_name):
            if not name:
                continue
            tokens = _file_tokens(name)
            if _coverage(key_tokens, tokens) >= COVERAGE_THRESHOLD:
                return item
            if _coverage(name_tokens, tokens) >= COVERAGE_THRESHOLD:
                return item
            if initials and initials in tokens:
                return item
    return None


class FallbackTier:
    source = SOURCE

    def __init__(self, client: InferenceClient | None = None) -> None:
        self._client = client

    async def resolve(self, context: TierContext) -> TierResult:
        meta = context.report_meta()

        matched = heuristic_match(context.files, meta)
        if matched is not None:
            mapped = meta.total_fields > 0
            return TierResult(
                fields_mapped="yes",
                attributes_mapped="yes" if mapped else "no",
                located_source=self.source,
                mapped_count=meta.total_fields if mapped else 0,
                total_fields=meta.total_fields,
                message=f"matched by name tokens in {matched.display_name}",
            )

        client = self._client or get_inference_client()
        verdict = await asyncio.to_thread(client.infer, context.describe())
        if verdict is None:
            logger.debug("fallback tier found nothing for job=%s report=%s", context.job_id, context.report_key)
            return TierResult(fields_mapped="no", attributes_mapped="no", total_fields=meta.total_fields)

        return verdict.model_copy(
            update={
                "located_source": self.source if verdict.fields_mapped == "yes" else None,
                "total_fields": verdict.total_fields or meta.total_fields,
            }
        )
