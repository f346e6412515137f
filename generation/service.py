"""Single-request image generation with local persistence of the outputs."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .catalog import ModelCatalog
from .exceptions import EmptyOutputError, PredictionFailedError
from .imaging import ensure_png, image_size, make_thumbnail
from .prediction import PredictionClient

logger = logging.getLogger(__name__)


@dataclass
class GeneratedImage:
    """A generated image stored under the uploads root."""

    id: str
    url: str
    full_url: str
    thumb_url: str
    prompt: str
    model: str
    width: int
    height: int
    aspect_ratio: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "fullUrl": self.full_url,
            "thumbUrl": self.thumb_url,
            "prompt": self.prompt,
            "model": self.model,
            "width": self.width,
            "height": self.height,
            "aspectRatio": self.aspect_ratio,
            "createdAt": self.created_at.isoformat(),
        }


class ImageGenerationService:
    """Run one prediction and persist every output as a full image plus thumbnail."""

    def __init__(
        self,
        client: PredictionClient,
        catalog: ModelCatalog,
        storage_root: str | Path,
        url_prefix: str = "/uploads",
    ) -> None:
        self.client = client
        self.catalog = catalog
        self.storage_root = Path(storage_root)
        self.url_prefix = url_prefix.rstrip("/")
        for directory in (self.full_dir, self.thumb_dir):
            directory.mkdir(parents=True, exist_ok=True)

    @property
    def full_dir(self) -> Path:
        return self.storage_root / "full"

    @property
    def thumb_dir(self) -> Path:
        return self.storage_root / "thumb"

    async def generate(
        self,
        model_key: str,
        prompt: str,
        *,
        aspect_ratio: Optional[str] = None,
        seed: Optional[int] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> List[GeneratedImage]:
        model = self.catalog.require(model_key)
        inputs = model.build_input({"prompt": prompt, "aspect_ratio": aspect_ratio, "seed": seed, **(extra or {})})

        prediction = await self.client.create(model.version, inputs)
        result = await self.client.wait_until_terminal(prediction)
        if not result.succeeded:
            raise PredictionFailedError(result.status, result.error)
        urls = result.output_urls()
        if not urls:
            raise EmptyOutputError("No image URLs found in prediction output")

        images: List[GeneratedImage] = []
        for url in urls:
            data = await self.client.download(url)
            images.append(await self._persist(data, prompt=prompt, model_key=model.key, aspect_ratio=aspect_ratio))
        logger.info("Generated %d image(s) with %s", len(images), model.key)
        return images

    async def _persist(self, data: bytes, *, prompt: str, model_key: str, aspect_ratio: Optional[str]) -> GeneratedImage:
        image_id = uuid.uuid4().hex
        png = await asyncio.to_thread(ensure_png, data)
        thumb = await asyncio.to_thread(make_thumbnail, png)
        width, height = image_size(png)

        await asyncio.to_thread((self.full_dir / f"{image_id}.png").write_bytes, png)
        await asyncio.to_thread((self.thumb_dir / f"{image_id}.png").write_bytes, thumb)

        full_url = f"{self.url_prefix}/full/{image_id}.png"
        return GeneratedImage(
            id=image_id,
            url=full_url,
            full_url=full_url,
            thumb_url=f"{self.url_prefix}/thumb/{image_id}.png",
            prompt=prompt,
            model=model_key,
            width=width,
            height=height,
            aspect_ratio=aspect_ratio,
        )
