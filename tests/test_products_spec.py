import json
from datetime import date

import pytest

from media_studio.products import MEDIA_PRODUCTS, get_product, load_catalog
from media_studio.spec import DesignSpecification, DesignSpecStore, SpecPatch, default_date


def test_builtin_catalog_order_and_ratios():
    assert [(p.id, p.aspect_ratio) for p in MEDIA_PRODUCTS] == [
        ("flyer", "3:4"),
        ("story", "9:16"),
        ("reel", "9:16"),
        ("post", "1:1"),
        ("banner", "16:9"),
        ("promo", "3:4"),
    ]


@pytest.mark.parametrize("product_id", [None, "", "billboard"])
def test_unknown_product_falls_back_to_first(product_id):
    assert get_product(product_id) is MEDIA_PRODUCTS[0]


def test_load_catalog(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text(
        json.dumps(
            [
                {"id": "square", "name": "Square", "aspectRatio": "1:1", "basePrompt": "Square tile."},
                {"id": "wide", "aspect_ratio": "16:9"},
            ]
        ),
        encoding="utf-8",
    )

    catalog = load_catalog(path)

    assert [p.id for p in catalog] == ["square", "wide"]
    assert catalog[0].base_prompt == "Square tile."
    assert catalog[1].name == "wide"
    assert get_product("nope", catalog).id == "square"


@pytest.mark.parametrize(
    "content",
    [
        [],
        {"id": "post"},
        [{"id": "odd", "aspectRatio": "2:1"}],
        [{"aspectRatio": "1:1"}],
        [{"id": "  ", "aspectRatio": "1:1"}],
        ["post"],
        [{"id": "post", "aspectRatio": "1:1"}, {"id": "post", "aspectRatio": "9:16"}],
    ],
    ids=["empty", "not-a-list", "bad-ratio", "missing-id", "blank-id", "not-an-object", "duplicate-id"],
)
def test_load_catalog_rejects_bad_files(tmp_path, content):
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps(content), encoding="utf-8")
    with pytest.raises(ValueError):
        load_catalog(path)


def test_default_date_format():
    assert default_date(date(2026, 10, 19)) == "OCT 19, 2026"
    assert default_date(date(2026, 3, 5)) == "MAR 5, 2026"


def test_spec_defaults():
    spec = DesignSpecification()
    assert spec.font_family == "Orbitron"
    assert spec.font_weight == "Bold"
    assert spec.letter_spacing == "Normal"
    assert spec.include_date is False
    assert spec.date


def test_patch_blank_strings_keep_current_values():
    patch = SpecPatch.model_validate({"eventTitle": "  ", "vibe": "", "fontFamily": " Montserrat ", "includeDate": True})
    assert patch.changes() == {"font_family": "Montserrat", "include_date": True}


def test_patch_ignores_unknown_keys():
    patch = SpecPatch.model_validate({"colorPalette": "Lemon", "mood": "sunny"})
    assert patch.changes() == {"color_palette": "Lemon"}


def test_to_wire_uses_camel_case():
    wire = DesignSpecification(event_title="RL", include_date=True, date="OCT 19, 2026").to_wire()
    assert wire["eventTitle"] == "RL"
    assert wire["includeDate"] is True
    assert wire["fontFamily"] == "Orbitron"
    assert "vibe" not in wire


def test_store_apply_and_update():
    store = DesignSpecStore()
    first = store.current

    merged = store.apply(SpecPatch(vibe="Bold", color_palette="Forest"))
    assert merged is store.current
    assert merged.vibe == "Bold"
    assert merged.font_family == "Orbitron"
    assert first.vibe is None

    store.update(event_title="Launch")
    assert store.current.event_title == "Launch"
    assert store.current.vibe == "Bold"


def test_store_replace_is_last_writer_wins():
    store = DesignSpecStore()
    store.replace(DesignSpecification(vibe="A"))
    store.replace(DesignSpecification(vibe="B"))
    assert store.current.vibe == "B"


def test_plain_merge_never_clears():
    spec = DesignSpecification(vibe="Loud").merged(SpecPatch(vibe="", event_title="RL"))
    assert spec.vibe == "Loud"
    assert spec.event_title == "RL"


def test_cleared_reports_only_optional_fields_sent_blank():
    patch = SpecPatch.model_validate({"vibe": "", "location": None, "fontFamily": "", "eventTitle": "RL"})
    assert patch.cleared() == {"vibe", "location"}
    assert DesignSpecification(vibe="Loud", location="Lab").merged(patch, allow_clear=True).location is None
