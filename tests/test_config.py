"""Tests for the YAML config loader."""

from __future__ import annotations

import copy

import pytest

from conftest import base_config, write_config
from smoothmap.config import load_config


class TestLoadConfig:
    """Test typed parsing of config.yaml."""

    def test_defaults_and_paths(self, tmp_path, config_path):
        cfg = load_config(config_path)
        assert cfg.source_path == config_path.resolve()
        assert cfg.paths.output_dir == tmp_path.resolve() / "out"
        assert cfg.paths.build_directories == (cfg.paths.output_dir, cfg.paths.logs_dir)
        assert cfg.smoothing.target_cell_count == 2500
        assert cfg.smoothing.bandwidth is None
        assert cfg.levels.style == "pretty"
        assert cfg.cover.strategy is None
        assert cfg.regions.outputs == ("raster", "contour", "regions")
        assert cfg.render.image.size_inches == pytest.approx((4.0, 3.0))
        assert cfg.render.layout.frame == "black"
        assert cfg.render.grid.show is False

    def test_optional_sections(self, tmp_path):
        raw = base_config()
        for key in ("smoothing", "levels", "cover", "regions"):
            del raw[key]
        cfg = load_config(write_config(tmp_path, raw))
        assert cfg.smoothing.target_cell_count == 250_000
        assert cfg.levels.count == 5
        assert cfg.cover.threshold == pytest.approx(0.6)
        assert cfg.regions.value_method == "grid"

    def test_layout_options(self, tmp_path):
        raw = base_config()
        raw["render"]["layout"].update({"frame": None, "logo": "assets/logo.png", "legend_position": "Top-Left"})
        cfg = load_config(write_config(tmp_path, raw))
        layout = cfg.render.layout
        assert layout.frame is None
        assert layout.logo == tmp_path.resolve() / "assets" / "logo.png"
        assert layout.legend_position == "top-left"
        options = layout.to_options(title="Title")
        assert options.title == "Title"
        assert options.frame is None
        assert options.logo == str(layout.logo)

    def test_bandwidth_forms(self, tmp_path):
        raw = base_config()
        raw["smoothing"]["bandwidth"] = 250
        assert load_config(write_config(tmp_path, raw)).smoothing.bandwidth == (250.0,)
        raw["smoothing"]["bandwidth"] = [100, 200]
        assert load_config(write_config(tmp_path, raw)).smoothing.bandwidth == (100.0, 200.0)

    @pytest.mark.parametrize(
        ("section", "key", "value"),
        [
            ("cover", "threshold", 1.5),
            ("cover", "strategy", "hull"),
            ("levels", "style", "jenks"),
            ("levels", "count", 0),
            ("smoothing", "rows", 10),
            ("smoothing", "bandwidth", [1, 2, 3]),
            ("regions", "value_method", "median"),
            ("regions", "outputs", ["pdf"]),
        ],
    )
    def test_invalid_values(self, tmp_path, section, key, value):
        raw = copy.deepcopy(base_config())
        raw[section][key] = value
        with pytest.raises(ValueError):
            load_config(write_config(tmp_path, raw))

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.yaml")

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(ValueError):
            load_config(path)
