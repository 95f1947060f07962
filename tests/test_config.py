from pathlib import Path

import yaml

from framestamp.config import DEFAULT_CONFIG, WatermarkConfig, load_config, write_default_config


def test_defaults_match_default_config() -> None:
    config = WatermarkConfig.from_mapping(DEFAULT_CONFIG)

    assert config == WatermarkConfig()
    assert config.sizing_mode == "original"


def test_out_of_range_values_are_clamped() -> None:
    config = WatermarkConfig.from_mapping(
        {
            "main_image_ratio": 10,
            "corner_radius": 999,
            "shadow_size": -5,
            "output_quality": 20,
            "output_width": -100,
            "font_size_ratio": 500,
            "background_blur": "nan",
        }
    )

    assert config.main_image_ratio == 50
    assert config.corner_radius == 200
    assert config.shadow_size == 0
    assert config.output_quality == 50
    assert config.output_width == 0
    assert config.font_size_ratio == 200
    assert config.background_blur == 30


def test_string_flags_are_parsed() -> None:
    config = WatermarkConfig.from_mapping(
        {
            "pure_background": "yes",
            "landscape_output": "off",
            "use_custom_output_size": "true",
            "output_quality": "90",
            "output_width": "1080",
            "output_height": "1350",
        }
    )

    assert config.pure_background is True
    assert config.landscape_output is False
    assert config.sizing_mode == "custom"


def test_load_config_without_file_returns_defaults(tmp_path: Path) -> None:
    cfg = load_config(tmp_path / "missing.yaml")

    assert cfg["main_image_ratio"] == 90
    assert cfg["jobs"] >= 1


def test_load_config_merges_user_values(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"corner_radius": 50, "output_dir": "out"}), encoding="utf-8")

    cfg = load_config(path)

    assert cfg["corner_radius"] == 50
    assert cfg["output_dir"] == "out"
    assert cfg["shadow_size"] == DEFAULT_CONFIG["shadow_size"]


def test_write_default_config_does_not_overwrite(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "config.yaml"

    assert write_default_config(path) == path
    path.write_text("corner_radius: 12\n", encoding="utf-8")
    write_default_config(path)
    assert load_config(path)["corner_radius"] == 12

    write_default_config(path, force=True)
    assert load_config(path)["corner_radius"] == DEFAULT_CONFIG["corner_radius"]
