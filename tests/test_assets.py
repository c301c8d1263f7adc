import pytest

from media_studio.assets import Asset, AssetStatus, export_asset, load_images
from media_studio.errors import StudioBusyError

from .conftest import make_image


def test_load_images_filters_and_sorts(tmp_path):
    (tmp_path / "b.JPG").write_bytes(make_image(fmt="JPEG"))
    (tmp_path / "a.png").write_bytes(make_image())
    (tmp_path / "notes.txt").write_text("not an image")
    (tmp_path / "nested").mkdir()

    images = load_images(tmp_path)

    assert len(images) == 2
    assert images[0] == (tmp_path / "a.png").read_bytes()


def test_load_images_missing_folder(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_images(tmp_path / "missing")


def test_lifecycle_keeps_previous_result_on_failure():
    asset = Asset(source_image=b"src", target_product_id="post")
    asset.mark_processing()
    asset.mark_completed(b"v1")
    asset.mark_processing()
    asset.mark_failed("boom", "DECODE_ERROR")

    assert asset.status is AssetStatus.ERROR
    assert asset.result_image == b"v1"
    assert (asset.error, asset.error_code) == ("boom", "DECODE_ERROR")

    asset.mark_processing()
    assert asset.error is None and asset.error_code is None


def test_double_processing_is_refused():
    asset = Asset(source_image=b"src", target_product_id="post")
    asset.mark_processing()
    with pytest.raises(StudioBusyError):
        asset.mark_processing()


def test_export_writes_branded_filename(tmp_path):
    asset = Asset(source_image=b"src", target_product_id="story", id="ABC123")
    asset.mark_completed(b"png-bytes")

    path = export_asset(asset, tmp_path / "out", "RecipeLabs")

    assert path.name == "RecipeLabs_STORY_ABC123.png"
    assert path.read_bytes() == b"png-bytes"


def test_export_skips_unrendered_assets(tmp_path):
    asset = Asset(source_image=b"src", target_product_id="post")
    assert export_asset(asset, tmp_path, "RecipeLabs") is None
    assert list(tmp_path.iterdir()) == []
