"""Async client for a Replicate-style prediction API.

A prediction is created with ``POST /predictions`` and polled with
``GET /predictions/{id}`` until it reports ``succeeded``, ``failed`` or
``canceled``. The client never retries on its own; callers decide what a
failure means for their unit of work.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from .exceptions import (
    ConfigurationError,
    DownloadError,
    PredictionTimeoutError,
    ProviderError,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.replicate.com/v1"
TERMINAL_STATUSES = frozenset({"succeeded", "failed", "canceled"})
_OUTPUT_KEYS = ("image", "images", "output")


@dataclass
class Prediction:
    id: str
    status: str
    output: Any = None
    error: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Prediction":
        return cls(
            id=str(payload.get("id", "")),
            status=str(payload.get("status", "starting")),
            output=payload.get("output"),
            error=payload.get("error"),
            raw=payload,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"

    def output_urls(self) -> List[str]:
        """Flatten the model-specific output shape into a list of asset URLs."""
        output = self.output
        if isinstance(output, dict):
            output = next((output[key] for key in _OUTPUT_KEYS if output.get(key)), None)
        if isinstance(output, str):
            return [output] if output else []
        if isinstance(output, list):
            return [item for item in output if isinstance(item, str) and item]
        return []


def _redact(payload: Dict[str, Any]) -> Dict[str, Any]:
    redacted = dict(payload)
    prompt = redacted.get("prompt")
    if isinstance(prompt, str) and len(prompt) > 50:
        redacted["prompt"] = f"{prompt[:50]}..."
    return redacted


class PredictionClient:
    """Thin async wrapper over the provider's prediction endpoints."""

    def __init__(
        self,
        api_token: Optional[str],
        base_url: str = DEFAULT_BASE_URL,
        *,
        poll_interval: float = 1.0,
        max_poll_interval: float = 5.0,
        wait_timeout: float = 600.0,
        request_timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_token = api_token
        self.base_url = base_url.rstrip("/")
        self.poll_interval = poll_interval
        self.max_poll_interval = max_poll_interval
        self.wait_timeout = wait_timeout
        self._http = httpx.AsyncClient(
            timeout=request_timeout,
            follow_redirects=True,
            transport=transport,
        )

    async def __aenter__(self) -> "PredictionClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    @property
    def configured(self) -> bool:
        return bool(self.api_token)

    def _headers(self) -> Dict[str, str]:
        if not self.api_token:
            raise ConfigurationError("REPLICATE_API_TOKEN is not set")
        return {
            "Authorization": f"Token {self.api_token}",
            "Content-Type": "application/json",
        }

    async def create(self, model_id: str, inputs: Dict[str, Any]) -> Prediction:
        headers = self._headers()
        logger.info("Creating prediction for %s with input %s", model_id, _redact(inputs))
        payload = await self._request(
            "POST",
            f"{self.base_url}/predictions",
            headers=headers,
            json={"version": model_id, "input": inputs},
        )
        prediction = Prediction.from_payload(payload)
        logger.info("Prediction %s created, status=%s", prediction.id, prediction.status)
        return prediction

    async def get(self, prediction_id: str) -> Prediction:
        headers = self._headers()
        payload = await self._request("GET", f"{self.base_url}/predictions/{prediction_id}", headers=headers)
        prediction = Prediction.from_payload(payload)
        logger.debug(
            "Prediction %s status=%s has_output=%s",
            prediction.id,
            prediction.status,
            bool(prediction.output),
        )
        return prediction

    async def wait_until_terminal(self, prediction: Prediction) -> Prediction:
        """Poll ``prediction`` until it reaches a terminal status.

        Raises
        ------
        PredictionTimeoutError
            If the prediction is still running after ``wait_timeout`` seconds.
        """

        started = time.monotonic()
        interval = self.poll_interval
        current = prediction
        while not current.is_terminal:
            if time.monotonic() - started > self.wait_timeout:
                raise PredictionTimeoutError(
                    f"Prediction {prediction.id} timed out after {self.wait_timeout:g} seconds"
                )
            await asyncio.sleep(interval)
            interval = min(interval * 1.5, self.max_poll_interval)
            current = await self.get(prediction.id)
        return current

    async def download(self, url: str) -> bytes:
        try:
            response = await self._http.get(url)
        except httpx.HTTPError as exc:
            raise DownloadError(f"Failed to download {url}: {exc}") from exc
        if response.status_code >= 400:
            raise DownloadError(f"Failed to download image: {response.status_code} {response.reason_phrase}")
        return response.content

    async def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = await self._http.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise ProviderError(f"Provider request timed out: {exc}") from exc
        except httpx.RequestError as exc:
            raise ProviderError(f"Provider request failed: {exc}") from exc

        if response.status_code >= 400:
            detail = response.text[:500]
            logger.error("Provider error %s for %s %s: %s", response.status_code, method, url, detail)
            raise ProviderError(
                f"Replicate API error ({response.status_code}): {detail}",
                status_code=response.status_code,
                detail=detail,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(f"Provider returned invalid JSON: {exc}", status_code=response.status_code) from exc
