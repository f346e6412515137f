from __future__ import annotations

import io
import json
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest
from PIL import Image

from app.core.config import Settings
from generation import PredictionClient

CDN = "https://cdn.test"


def png_bytes(size: tuple[int, int] = (8, 6), color: tuple[int, int, int] = (200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def jpeg_bytes(size: tuple[int, int] = (8, 6)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, (0, 90, 200)).save(buffer, format="JPEG")
    return buffer.getvalue()


class FakeProvider:
    """In-memory stand-in for the prediction API and its image CDN.

    ``outcomes`` is consumed one entry per created prediction:
    ``"ok"`` succeeds immediately, ``"slow"`` succeeds on the first poll,
    ``"fail"`` ends as ``failed``, ``"empty"`` succeeds without output,
    ``"error"`` answers the create call with HTTP 500 and ``"never"`` stays
    ``processing`` forever. Once exhausted every prediction is ``"ok"``.
    ``on_create`` and ``on_download`` are called with the running count of
    create calls and image downloads.
    """

    def __init__(self, outcomes: Optional[List[str]] = None, image: Optional[bytes] = None) -> None:
        self.outcomes = list(outcomes or [])
        self.image = image or png_bytes()
        self.created: List[Dict[str, Any]] = []
        self.headers: List[httpx.Headers] = []
        self.predictions: Dict[str, Dict[str, Any]] = {}
        self.polls = 0
        self.on_create: Optional[Callable[[int], None]] = None
        self.downloads = 0
        self.on_download: Optional[Callable[[int], None]] = None

    def _next_outcome(self) -> str:
        return self.outcomes.pop(0) if self.outcomes else "ok"

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url.startswith(CDN):
            self.downloads += 1
            if self.on_download is not None:
                self.on_download(self.downloads)
            return httpx.Response(200, content=self.image, headers={"Content-Type": "image/png"})

        if request.method == "POST" and request.url.path.endswith("/predictions"):
            self.headers.append(request.headers)
            body = json.loads(request.content)
            self.created.append(body)
            number = len(self.created)
            if self.on_create is not None:
                self.on_create(number)

            outcome = self._next_outcome()
            if outcome == "error":
                return httpx.Response(500, text="upstream exploded")
            prediction_id = f"p{number}"
            output = f"{CDN}/img/{number}.png"
            final = {"id": prediction_id, "status": "succeeded", "output": output, "error": None}
            if outcome == "fail":
                final = {"id": prediction_id, "status": "failed", "output": None, "error": "NSFW content detected"}
            elif outcome == "empty":
                final = {"id": prediction_id, "status": "succeeded", "output": None, "error": None}
            elif outcome == "never":
                final = {"id": prediction_id, "status": "processing", "output": None, "error": None}
            self.predictions[prediction_id] = final
            if outcome in ("slow", "never"):
                return httpx.Response(201, json={"id": prediction_id, "status": "starting"})
            return httpx.Response(201, json=final)

        if request.method == "GET" and "/predictions/" in request.url.path:
            self.polls += 1
            prediction_id = request.url.path.rsplit("/", 1)[-1]
            return httpx.Response(200, json=self.predictions[prediction_id])

        return httpx.Response(404, text="not found")

    def client(self, token: Optional[str] = "test-token", **kwargs: Any) -> PredictionClient:
        kwargs.setdefault("poll_interval", 0.01)
        kwargs.setdefault("max_poll_interval", 0.02)
        return PredictionClient(
            token,
            "https://provider.test/v1",
            transport=httpx.MockTransport(self.handler),
            **kwargs,
        )


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        storage_root=tmp_path / "storage",
        batch_temp_root=tmp_path / "tmp" / "jobs",
        archive_scratch_dir=tmp_path / "tmp" / "archives",
        replicate_api_token="test-token",
        prediction_poll_interval=0.01,
        prediction_max_poll_interval=0.02,
    )
