import shutil
from pathlib import Path

import pytest

from spindle.boot.adapters import IdleAdapter, RunnerAdapter
from spindle.boot.steps import DEFAULT_STEPS, boot, create_context
from spindle.core.models import SpindleSettings
from spindle.runtime.pidfile import pid_file_path
from spindle.utils.diagnostics import BootError, UnresolvedReferencesError

EXAMPLE_APP = Path(__file__).resolve().parents[1] / "examples" / "blog"


def _settings(root, **overrides):
    values = dict(root=root, environment="test", fork_for_class_load=False, reload_classes=False)
    values.update(overrides)
    return SpindleSettings(**values)


@pytest.fixture
def blog_root(tmp_path):
    root = tmp_path / "blog"
    shutil.copytree(EXAMPLE_APP, root)
    return root


def test_boot_example_application(blog_root, write_file):
    write_file(blog_root / "config" / "environments" / "test.py", "boot.app['environment_file'] = 'test'\n")

    context = boot(create_context(_settings(blog_root)))

    assert context.pipeline.finished == [name for name, _ in DEFAULT_STEPS]
    assert context.app["started_steps"] == ["before_app_loads", "after_app_loads"]
    assert context.app["greeting"] == "Hello from the blog"
    assert context.app["environment_file"] == "test"
    assert "debug_toolbar" not in context.app

    namespace = context.loader.namespace
    assert namespace.Comment.parent is namespace.Post
    assert namespace.Posts.model is namespace.Post
    assert issubclass(namespace.Posts, namespace.Application)
    assert namespace.Model._subclasses_list == [namespace.Post, namespace.Comment]
    assert namespace.Router.routes[namespace.Post] == "/posts"
    assert context.key_registries == [namespace.Router.routes]
    assert isinstance(context.adapter, RunnerAdapter)


def test_reloading_a_model_keeps_router_keys_valid(blog_root):
    context = boot(create_context(_settings(blog_root, reload_classes=True, reload_time=60)))
    namespace = context.loader.namespace
    old_post = namespace.Post

    context.loader.reload(blog_root / "app" / "models" / "post.py")

    assert namespace.Post is not old_post
    assert namespace.Router.routes[namespace.Post] == "/posts"
    assert old_post not in namespace.Model._subclasses_list
    assert context.reloader.thread is not None and context.reloader.thread.is_alive()


def test_missing_init_file_is_fatal_outside_tests(root_dir):
    context = create_context(_settings(root_dir, environment="development"))

    with pytest.raises(BootError, match="init file"):
        boot(context)

    assert context.pipeline.finished == ["logger", "drop_pid_file", "build_framework"]


def test_missing_init_file_is_allowed_in_test_environment(root_dir):
    context = boot(create_context(_settings(root_dir)))

    assert context.pipeline.pending == []
    assert context.dir_for("model") == root_dir / "app" / "models"


def test_init_file_setting_without_extension(root_dir, write_file):
    write_file(root_dir / "boot_here.py", "boot.app['custom_init'] = True\n")

    context = boot(create_context(_settings(root_dir, environment="development", init_file="boot_here")))

    assert context.app["custom_init"] is True


def test_unknown_adapter_is_fatal(root_dir):
    with pytest.raises(BootError, match="Unknown adapter 'nope'"):
        boot(create_context(_settings(root_dir, adapter="nope")))


def test_registered_adapter_is_started(root_dir):
    started = []

    class RecordingAdapter:
        def start(self, context):
            started.append(context)

    context = create_context(_settings(root_dir, adapter="recording"))
    context.register_adapter("recording", RecordingAdapter)

    boot(context)

    assert started == [context]


def test_framework_file_replaces_default_layout(root_dir, write_file):
    write_file(
        root_dir / "config" / "framework.py",
        "boot.push_path('model', boot.root / 'domain')\n"
        "boot.push_path('config', boot.root / 'config', None)\n",
    )
    write_file(root_dir / "domain" / "thing.py", "class Thing:\n    pass\n")

    context = boot(create_context(_settings(root_dir)))

    assert hasattr(context.loader.namespace, "Thing")
    assert "view" not in context.paths
    assert context.dir_for("model") == root_dir / "domain"


def test_framework_overrides_from_settings(root_dir, write_file):
    write_file(root_dir / "src_models" / "gizmo.py", "class Gizmo:\n    pass\n")

    context = boot(create_context(_settings(root_dir, framework={"model": str(root_dir / "src_models")})))

    assert hasattr(context.loader.namespace, "Gizmo")


def test_plugin_step_can_run_before_a_default_step(root_dir):
    context = create_context(_settings(root_dir))
    context.pipeline.register("seed", lambda: context.app.setdefault("seeded", True))
    context.pipeline.get("seed").before("load_classes")

    boot(context)

    finished = context.pipeline.finished
    assert finished.index("seed") == finished.index("load_classes") - 1
    assert context.app["seeded"] is True


def test_unresolved_reference_aborts_boot(root_dir, write_file):
    write_file(root_dir / "app" / "models" / "orphan.py", "class Orphan(Parent):\n    pass\n")
    context = create_context(_settings(root_dir))

    with pytest.raises(UnresolvedReferencesError) as excinfo:
        boot(context)

    assert excinfo.value.files == [str(root_dir / "app" / "models" / "orphan.py")]
    assert "after_app_loads" not in context.pipeline.finished


def test_fork_mode_enters_the_supervisor(root_dir, write_file, monkeypatch):
    write_file(root_dir / "config" / "init.py", "")
    context = create_context(_settings(root_dir, environment="development", fork_for_class_load=True, reload_classes=True))
    calls = []
    monkeypatch.setattr(context.supervisor, "start_transaction", lambda: calls.append("master"))
    monkeypatch.setattr(context.supervisor, "trap_standalone", lambda: calls.append("standalone"))
    monkeypatch.setattr(context.reloader, "start", lambda interval=None: calls.append("reloader"))

    boot(context)

    assert calls == ["master", "reloader"]


def test_pid_file_dropped_when_daemonized(root_dir):
    settings = _settings(root_dir, daemonize=True)

    boot(create_context(settings))

    assert pid_file_path(settings, "main").read_text().strip().isdigit()


def test_idle_adapter_returns_once_stopped(root_dir):
    adapter = IdleAdapter()
    adapter.stop()

    adapter.start(create_context(_settings(root_dir)))
