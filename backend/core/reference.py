"""Loading of the static reference dataset (routines and report field specs).

The fixture mirrors the ``database.json`` document served to the front-end:
either the full document with a ``system_data`` section or a bare
``system_data`` mapping.  JSON and YAML files are both accepted.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from backend.core.errors import ReferenceDatasetError
from backend.core.schema import ReferenceDataset

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"
DEFAULT_REFERENCE_PATH = CONFIG_DIR / "reference_dataset.yaml"


def _read_document(path: Path) -> Any:
    suffix = path.suffix.lower()
    with path.open("r", encoding="utf-8") as fp:
        if suffix == ".json":
            return json.load(fp)
        if suffix in {".yaml", ".yml"}:
            return yaml.safe_load(fp)
    raise ReferenceDatasetError(f"unsupported reference dataset format: {path.name}")


def parse_reference_dataset(document: Any) -> ReferenceDataset:
    if document is None:
        return ReferenceDataset()
    if not isinstance(document, dict):
        raise ReferenceDatasetError("reference dataset must be a mapping")
    system_data = document.get("system_data", document)
    try:
        return ReferenceDataset.model_validate(system_data or {})
    except ValidationError as exc:
        raise ReferenceDatasetError(f"invalid reference dataset: {exc}") from exc


def load_reference_dataset(path: Path | None = None) -> ReferenceDataset:
    target = path or DEFAULT_REFERENCE_PATH
    if not target.exists():
        raise ReferenceDatasetError(f"reference dataset not found: {target}")
    try:
        document = _read_document(target)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ReferenceDatasetError(f"failed to read reference dataset {target}: {exc}") from exc

    dataset = parse_reference_dataset(document)
    logger.info(
        "loaded reference dataset %s (%d routine(s), %d field spec(s))",
        target.name,
        len(dataset.routines),
        len(dataset.report_field_specs),
    )
    return dataset


_dataset: ReferenceDataset | None = None


def configure_reference_dataset(dataset: ReferenceDataset | None) -> None:
    """Install the dataset handed to the tiers; ``None`` reloads the default lazily."""

    global _dataset
    _dataset = dataset


def get_reference_dataset() -> ReferenceDataset:
    global _dataset
    if _dataset is None:
        _dataset = load_reference_dataset()
    return _dataset
