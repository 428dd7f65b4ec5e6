import pytest

from blossom.config import CONFIG_FILENAME, ConfigError, load_config


def test_defaults_without_config_file(tmp_path):
    config = load_config(tmp_path)
    assert config.title == "himu"
    assert config.output_path == tmp_path / "dist"
    assert config.notes_path == tmp_path / "notes"
    assert config.manifest_path == tmp_path / ".blossom-manifest.json"
    assert config.image_widths == (320, 640, 960, 1280)
    assert config.base_path == ""


def test_yaml_values_and_overrides(tmp_path):
    (tmp_path / CONFIG_FILENAME).write_text(
        "title: Garden\nsite_url: https://example.com/\nbase_path: docs\n"
        "image_widths: [960, 320, 320]\ntheme_color: green\n",
        encoding="utf-8",
    )
    config = load_config(tmp_path)
    assert config.title == "Garden"
    assert config.site_url == "https://example.com"
    assert config.base_path == "/docs"
    assert config.image_widths == (320, 960)
    assert config.extra == {"theme_color": "green"}

    overridden = load_config(tmp_path, base_path="/repo/", site_url="https://other.org")
    assert overridden.base_path == "/repo"
    assert overridden.site_url == "https://other.org"


def test_rendering_inputs_track_config(tmp_path):
    first = load_config(tmp_path).rendering_inputs()
    assert "project_root" not in first
    assert first["image_widths"] == [320, 640, 960, 1280]
    assert load_config(tmp_path, base_path="/x").rendering_inputs() != first


def test_malformed_yaml_is_a_config_error(tmp_path):
    (tmp_path / CONFIG_FILENAME).write_text("title: [oops\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_invalid_values_are_config_errors(tmp_path):
    (tmp_path / CONFIG_FILENAME).write_text("image_widths: [wide]\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(tmp_path)
    (tmp_path / CONFIG_FILENAME).write_text("image_widths: []\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="image_widths"):
        load_config(tmp_path)
