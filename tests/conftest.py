import io
from typing import List, Optional, Sequence, Tuple

import pytest
from PIL import Image

from media_studio.core import BatchManager, MediaStudio
from media_studio.errors import AIUnavailable
from media_studio.products import get_product
from media_studio.spec import DesignSpecStore


def make_image(
    color: Tuple[int, int, int] = (200, 40, 40),
    size: Tuple[int, int] = (640, 480),
    fmt: str = "PNG",
) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color=color).save(buf, format=fmt)
    return buf.getvalue()


def open_png(data: bytes) -> Image.Image:
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


class FakeClient:
    """Replays scripted answers in order, or raises `error` on every call."""

    def __init__(self, responses: Sequence[str] = (), error: Optional[Exception] = None) -> None:
        self.responses: List[str] = list(responses)
        self.error = error
        self.calls: List[dict] = []

    async def generate(self, prompt, *, system=None, history=(), image=None, schema=None) -> str:
        self.calls.append(
            {"prompt": prompt, "system": system, "history": list(history), "image": image, "schema": schema}
        )
        if self.error is not None:
            raise self.error
        if not self.responses:
            raise AIUnavailable("no scripted response left")
        return self.responses.pop(0)


class SpyRenderer:
    """Cheap renderer stand-in that records every call."""

    def __init__(self) -> None:
        self.calls: List[tuple] = []

    def __call__(self, source, product, spec, edit=None) -> bytes:
        self.calls.append((source, product, spec, edit))
        return b"render-%d:" % len(self.calls) + source


@pytest.fixture
def red_png() -> bytes:
    return make_image((200, 40, 40))


@pytest.fixture
def blue_png() -> bytes:
    return make_image((30, 60, 210))


@pytest.fixture
def post():
    return get_product("post")


@pytest.fixture
def store() -> DesignSpecStore:
    return DesignSpecStore()


@pytest.fixture
def batch() -> BatchManager:
    return BatchManager()


@pytest.fixture
def studio(batch, store) -> MediaStudio:
    return MediaStudio(batch, store=store)
