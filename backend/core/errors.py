"""Error types shared across the detection backend."""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Raised when configuration values are invalid."""


class ReferenceDatasetError(RuntimeError):
    """Raised when the reference dataset cannot be loaded or validated."""


class MissingJobIdError(ValueError):
    """Raised when a detection run is requested without a job identifier."""


class InferenceError(RuntimeError):
    """Raised when the remote inference service returns an error."""
