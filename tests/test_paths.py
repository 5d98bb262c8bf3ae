from pathlib import Path

import pytest

from spindle.core.paths import (
    DEFAULT_GLOB,
    PathRegistry,
    apply_framework_overrides,
    push_default_framework,
)


def test_push_path_defaults_to_recursive_python_glob(tmp_path):
    paths = PathRegistry()
    entry = paths.push_path("model", tmp_path / "models")

    assert entry.glob == DEFAULT_GLOB
    assert paths.dir_for("model") == tmp_path / "models"
    assert paths.glob_for("model") == "**/*.py"
    assert entry.pattern == str(tmp_path / "models" / "**/*.py")


def test_push_path_overwrites_and_none_glob_disables_loading(tmp_path):
    paths = PathRegistry()
    paths.push_path("lib", tmp_path / "lib")
    paths.push_path("lib", tmp_path / "vendor", None)

    assert len(paths) == 1
    assert paths.dir_for("lib") == tmp_path / "vendor"
    assert paths.loadable() == []
    assert paths.file_for("lib") is None


def test_unknown_names_resolve_to_none_or_raise(tmp_path):
    paths = PathRegistry()

    assert paths.dir_for("nope") is None
    assert paths.glob_for("nope") is None
    with pytest.raises(KeyError):
        paths.get("nope")


def test_default_framework_layout(tmp_path):
    paths = PathRegistry()
    push_default_framework(paths, tmp_path, "routes.py")

    assert paths.dir_for("model") == tmp_path / "app" / "models"
    assert paths.dir_for("part") == tmp_path / "app" / "parts"
    assert paths.file_for("application") == tmp_path / "app" / "controllers" / "application.py"
    assert paths.file_for("router") == tmp_path / "config" / "routes.py"
    assert paths.glob_for("public") is None
    assert paths.dir_for("image") == tmp_path / "public" / "images"

    loadable = [entry.name for entry in paths.loadable(exclude=("application", "router"))]
    assert loadable == ["view", "model", "helper", "controller", "mailer", "part"]


def test_framework_overrides_accept_dir_or_dir_and_glob(tmp_path):
    paths = PathRegistry()
    push_default_framework(paths, tmp_path)

    apply_framework_overrides(
        paths,
        {
            "model": str(tmp_path / "domain"),
            "view": [str(tmp_path / "templates"), "*.html"],
            "lib": [str(tmp_path / "lib"), None],
        },
    )

    assert paths.dir_for("model") == tmp_path / "domain"
    assert paths.glob_for("model") == DEFAULT_GLOB
    assert paths.glob_for("view") == "*.html"
    assert paths.glob_for("lib") is None
    assert Path(paths.get("view").root) == tmp_path / "templates"
