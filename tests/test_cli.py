import argparse

import pytest

import run_studio
from media_studio import config

from .conftest import make_image, open_png


@pytest.fixture
def offline(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("FONT_DIR", raising=False)
    monkeypatch.setattr(config, "load_dotenv", lambda: None)


def _args(tmp_path, **overrides):
    values = dict(
        images=tmp_path / "in",
        product="story",
        catalog=None,
        chat=[],
        title=None,
        date=None,
        refine=None,
        output_root=tmp_path / "out",
    )
    values.update(overrides)
    return argparse.Namespace(**values)


@pytest.mark.asyncio
async def test_run_renders_and_exports(offline, tmp_path):
    (tmp_path / "in").mkdir()
    (tmp_path / "in" / "one.png").write_bytes(make_image((200, 40, 40)))
    (tmp_path / "in" / "two.jpg").write_bytes(make_image((30, 60, 210), fmt="JPEG"))

    written = await run_studio.run(
        _args(tmp_path, chat=["make it pop"], title="RL Launch", date="OCT 19, 2026", refine="darker")
    )

    assert len(written) == 2
    for path in written:
        assert path.name.startswith("RecipeLabs_STORY_")
        assert open_png(path.read_bytes()).size == (1080, 1920)


@pytest.mark.asyncio
async def test_run_with_empty_folder_writes_nothing(offline, tmp_path):
    (tmp_path / "in").mkdir()
    assert await run_studio.run(_args(tmp_path)) == []
    assert not (tmp_path / "out").exists()
