from __future__ import annotations

import re
import unicodedata
from pathlib import PurePath

_TOKEN_SPLIT = re.compile(r"[\W_]+")


def normalize(name: str) -> str:
    normalized = unicodedata.normalize("NFKC", name).strip().lower()
    return "".join(normalized.split())


def tokenize(name: str) -> list[str]:
    """Split a label or file name into lowercase word tokens."""

    normalized = unicodedata.normalize("NFKC", name).strip().lower()
    return [token for token in _TOKEN_SPLIT.split(normalized) if token]


def file_stem(name: str) -> str:
    return PurePath(name).stem if name else ""
