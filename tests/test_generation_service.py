from __future__ import annotations

import asyncio
import io
from pathlib import Path
from typing import List

import pytest
from PIL import Image

from conftest import FakeProvider, jpeg_bytes, png_bytes
from generation import (
    EmptyOutputError,
    GeneratedImage,
    ImageGenerationService,
    ModelCatalog,
    PredictionFailedError,
    UnknownModelError,
    imaging,
)


def _generate(provider: FakeProvider, storage_root: Path, model_key: str = "imagen-4", **kwargs) -> List[GeneratedImage]:
    async def scenario() -> List[GeneratedImage]:
        async with provider.client() as client:
            service = ImageGenerationService(client, ModelCatalog(), storage_root)
            return await service.generate(model_key, "a silver hatchback", **kwargs)

    return asyncio.run(scenario())


def test_jpg_output_is_stored_as_png_with_thumbnail(tmp_path: Path) -> None:
    storage_root = tmp_path / "uploads"
    provider = FakeProvider(image=jpeg_bytes(size=(512, 256)))

    images = _generate(provider, storage_root, aspect_ratio="16:9", seed=7)

    assert len(images) == 1
    image = images[0]
    assert (image.width, image.height) == (512, 256)
    assert image.url == image.full_url == f"/uploads/full/{image.id}.png"
    assert image.thumb_url == f"/uploads/thumb/{image.id}.png"
    assert image.aspect_ratio == "16:9"
    assert image.model == "imagen-4"

    full_path = storage_root / "full" / f"{image.id}.png"
    thumb_path = storage_root / "thumb" / f"{image.id}.png"
    with Image.open(full_path) as stored:
        assert stored.format == "PNG"
        assert stored.size == (512, 256)
    with Image.open(thumb_path) as thumb:
        assert thumb.size == (256, 128)

    sent = provider.created[0]["input"]
    assert sent["seed"] == 7
    assert sent["aspect_ratio"] == "16:9"
    assert sent["safety_filter_level"] == "block_medium_and_above"


def test_failed_prediction_raises(tmp_path: Path) -> None:
    provider = FakeProvider(outcomes=["fail"])

    with pytest.raises(PredictionFailedError) as excinfo:
        _generate(provider, tmp_path / "uploads")

    assert "NSFW content detected" in str(excinfo.value)
    assert list((tmp_path / "uploads" / "full").iterdir()) == []


def test_empty_output_raises(tmp_path: Path) -> None:
    with pytest.raises(EmptyOutputError):
        _generate(FakeProvider(outcomes=["empty"]), tmp_path / "uploads")


def test_unknown_model_is_rejected_before_calling_provider(tmp_path: Path) -> None:
    provider = FakeProvider()

    with pytest.raises(UnknownModelError):
        _generate(provider, tmp_path / "uploads", model_key="nope")

    assert provider.created == []


def test_to_dict_uses_camel_case(tmp_path: Path) -> None:
    (image,) = _generate(FakeProvider(), tmp_path / "uploads")

    data = image.to_dict()

    assert {"fullUrl", "thumbUrl", "aspectRatio", "createdAt"} <= set(data)


def test_ensure_png_passes_png_through() -> None:
    data = png_bytes()

    assert imaging.ensure_png(data) is data


def test_thumbnail_keeps_aspect_ratio() -> None:
    thumb = imaging.make_thumbnail(png_bytes(size=(1000, 500)), width=100)

    with Image.open(io.BytesIO(thumb)) as image:
        assert image.size == (100, 50)
