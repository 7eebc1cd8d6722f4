from __future__ import annotations

from pathlib import Path

from conftest import BASE_DIR, CUSTOM_DIR

from slm_app.patterns.catalog import build_catalog, split_stem
from slm_app.storage.local import LocalFileStore
from slm_app.storage.memory import MemoryFileStore


def test_properties_keep_first_seen_order() -> None:
    store = MemoryFileStore(
        {
            BASE_DIR / "gauss_size_10.png": b"",
            BASE_DIR / "gauss_size_20.png": b"",
            BASE_DIR / "gauss_shape_round.png": b"",
        }
    )
    catalog = build_catalog(store, BASE_DIR)
    gauss = catalog.families["gauss"]
    assert gauss.properties == ["size", "shape"]
    assert gauss.values == {"size": ["10", "20"], "shape": ["round"]}
    assert catalog.pattern_names == ["gauss"]


def test_duplicate_values_are_kept() -> None:
    store = MemoryFileStore(
        {
            BASE_DIR / "ring_width_3.png": b"",
            BASE_DIR / "ring_width_3.bmp": b"",
        }
    )
    catalog = build_catalog(store, BASE_DIR)
    assert catalog.families["ring"].values["width"] == ["3", "3"]


def test_unpaired_property_skips_the_whole_file() -> None:
    store = MemoryFileStore(
        {
            BASE_DIR / "vortex_charge_1_order.png": b"",
            BASE_DIR / "donut.png": b"",
        }
    )
    catalog = build_catalog(store, BASE_DIR)
    assert "vortex" not in catalog.families
    assert catalog.families["donut"].properties == []
    assert catalog.pattern_names == ["donut"]


def test_custom_uploads_and_sorted_names() -> None:
    store = MemoryFileStore(
        {
            BASE_DIR / "zeta_a_1.png": b"",
            CUSTOM_DIR / "mine.png": b"",
            CUSTOM_DIR / "yours_a_b.jpeg": b"",
            BASE_DIR / "alpha_a_1.png": b"",
        }
    )
    catalog = build_catalog(store, BASE_DIR)
    custom = catalog.families["custom"]
    assert custom.properties == ["filename"]
    assert custom.values["filename"] == ["mine.png", "yours_a_b.jpeg"]
    assert catalog.pattern_names == ["alpha", "custom", "zeta"]
    # Nested custom files are not base patterns.
    assert "yours" not in catalog.families


def test_payload_is_flattened() -> None:
    store = MemoryFileStore({BASE_DIR / "gauss_size_10.png": b""})
    payload = build_catalog(store, BASE_DIR).to_payload()
    assert payload == {
        "gauss": {"size": {"values": ["10"]}, "properties": ["size"]},
        "patternNames": ["gauss"],
    }


def test_split_stem() -> None:
    assert split_stem("gauss_size_10") == ("gauss", [("size", "10")])
    assert split_stem("gauss") == ("gauss", [])
    assert split_stem("gauss_size") is None


def test_local_store_skips_directories_and_missing_dirs(tmp_path: Path) -> None:
    base = tmp_path / "patterns"
    (base / "custom_patterns").mkdir(parents=True)
    (base / "gauss_size_10.png").write_bytes(b"")
    (base / "nested_dir_x").mkdir()
    (base / "custom_patterns" / "upload.png").write_bytes(b"")

    catalog = build_catalog(LocalFileStore(), base)
    assert catalog.pattern_names == ["custom", "gauss"]
    assert "nested" not in catalog.families

    empty = build_catalog(LocalFileStore(), tmp_path / "does-not-exist")
    assert empty.families == {}
    assert empty.pattern_names == []
