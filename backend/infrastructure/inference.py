"""Out-of-process inference hooks for the fallback detection tier.

No model ships with the backend.  This module defines the abstraction the
fallback tier calls when its own heuristics are inconclusive, a no-op default
that always abstains, and a thin HTTP client for an external inference
service.  A deployment installs a client with ``configure_inference_client``
during application start-up.
"""
from __future__ import annotations

import logging
from typing import Any, Protocol
from urllib.parse import urlparse

import httpx
from pydantic import ValidationError

from backend.core.errors import InferenceError
from backend.core.schema import TierResult

logger = logging.getLogger(__name__)


class InferenceClient(Protocol):
    """Contract for inference integrations."""

    def infer(self, payload: dict[str, Any]) -> TierResult | None:
        """Return a verdict for one report, or ``None`` to abstain."""

    def close(self) -> None:
        """Release connections held by the client."""


class NoOpInferenceClient:
    """Fallback client used when no inference service is configured."""

    def infer(self, payload: dict[str, Any]) -> TierResult | None:
        return None

    def close(self) -> None:
        return None


class HttpInferenceClient:
    """JSON-over-HTTP client for an external inference service.

    The service receives the report description and file descriptors and
    answers with a body shaped like :class:`TierResult` (camelCase keys),
    optionally wrapped in ``{"result": ...}``.  ``{"result": null}`` abstains.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        token: str | None = None,
        timeout: float = 30.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        parsed = urlparse(endpoint)
        if not parsed.scheme or not parsed.netloc:
            raise ValueError("endpoint must include scheme and host")

        self._endpoint = endpoint
        self._token = token
        self._client = http_client or httpx.Client(timeout=timeout)
        self._owns_client = http_client is None

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def infer(self, payload: dict[str, Any]) -> TierResult | None:
        try:
            response = self._client.post(self._endpoint, json=payload, headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise InferenceError(f"inference service answered {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise InferenceError(f"inference service unreachable: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise InferenceError("inference service returned invalid JSON") from exc
        if not isinstance(body, dict):
            raise InferenceError("inference service returned an unexpected payload")
        if body.get("error"):
            raise InferenceError(str(body["error"]))

        result = body["result"] if "result" in body else body
        if result is None:
            logger.debug("inference abstained for report %s", payload.get("reportKey"))
            return None
        try:
            return TierResult.model_validate(result)
        except ValidationError as exc:
            raise InferenceError(f"inference result rejected: {exc.error_count()} invalid field(s)") from exc

    def close(self) -> None:
        if self._owns_client:
            self._client.close()


_client: InferenceClient = NoOpInferenceClient()


def configure_inference_client(client: InferenceClient | None) -> None:
    """Install the inference client used by the fallback tier."""

    global _client
    _client = client or NoOpInferenceClient()


def get_inference_client() -> InferenceClient:
    """Return the currently configured inference client."""

    return _client


def close_inference_client() -> None:
    """Close the configured client and fall back to the no-op client."""

    global _client
    client, _client = _client, NoOpInferenceClient()
    client.close()
