import pytest

from stitch.config import BuildConfig, ConfigLoadError, load_config


def test_load_config_resolves_paths(project):
    config = load_config(project, production=True)
    assert isinstance(config, BuildConfig)
    assert config.output_dir == (project / "dist").resolve()
    assert config.port == 8000
    assert config.entries == ("src/assets/js/app.js",)
    assert config.assets[1].startswith("!")
    assert config.compatibility == ("last 2 versions",)
    assert config.sass_include_paths == ()
    assert config.production is True
    assert config.source_dir == config.project_root / "src"


def test_config_is_immutable(config):
    with pytest.raises(Exception):
        config.port = 1


def test_missing_config_is_fatal(tmp_path):
    with pytest.raises(ConfigLoadError) as exc:
        load_config(tmp_path)
    assert "not found" in exc.value.message


@pytest.mark.parametrize(
    "document, message",
    [
        ("PORT: [unclosed", "invalid YAML"),
        ("- just\n- a list\n", "mapping"),
        ("PORT: 8000\n", "PATHS"),
        ("PORT: 8000\nPATHS:\n  dist: ''\n", "PATHS.dist"),
        ("PORT: nope\nPATHS:\n  dist: dist\n", "PORT"),
        ("PORT: 65535\nPATHS:\n  dist: dist\n", "65534"),
        ("PORT: 8000\nPATHS:\n  dist: dist\n  entries: 3\n", "entries"),
        ("PORT: 8000\nPATHS:\n  dist: src/out\n", "overlaps"),
        ("PORT: 8000\nPATHS:\n  dist: .\n", "overlaps"),
    ],
)
def test_malformed_config_is_fatal(tmp_path, document, message):
    (tmp_path / "config.yml").write_text(document, encoding="utf-8")
    with pytest.raises(ConfigLoadError) as exc:
        load_config(tmp_path)
    assert message in exc.value.message


def test_single_string_pattern_becomes_tuple(tmp_path):
    (tmp_path / "config.yml").write_text(
        "PORT: 3000\nPATHS:\n  dist: build\n  assets: 'static/**/*'\n", encoding="utf-8"
    )
    config = load_config(tmp_path)
    assert config.assets == ("static/**/*",)
    assert config.entries == ()
