from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from backend.core.errors import ConfigurationError


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative, got {raw!r}")
    return value


def _env_text(name: str) -> str | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return raw.strip()


@dataclass(frozen=True, slots=True)
class DetectionSettings:
    """Runtime knobs for the detection orchestrator and its collaborators."""

    tick_interval: float = 0.5
    tier_timeout: float | None = 30.0
    reference_path: Path | None = None
    inference_url: str | None = None
    inference_token: str | None = None
    inference_timeout: float = 30.0

    @classmethod
    def from_env(cls) -> "DetectionSettings":
        tier_timeout: float | None = _env_float("DETECTION_TIER_TIMEOUT_SECONDS", 30.0)
        if not tier_timeout:
            tier_timeout = None

        reference = _env_text("APEX_REFERENCE_PATH")
        return cls(
            tick_interval=_env_float("DETECTION_TICK_SECONDS", 0.5),
            tier_timeout=tier_timeout,
            reference_path=Path(reference).expanduser() if reference else None,
            inference_url=_env_text("DETECTION_INFERENCE_URL"),
            inference_token=_env_text("DETECTION_INFERENCE_TOKEN"),
            inference_timeout=_env_float("DETECTION_INFERENCE_TIMEOUT_SECONDS", 30.0),
        )


def cors_origins() -> list[str]:
    origins_env = os.getenv("API_CORS_ORIGINS", "")
    origins = [origin.strip() for origin in origins_env.split(",") if origin.strip()]
    if not origins:
        origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
    return origins
