import pytest
import signal
import sys
from pathlib import Path

import structlog

# Ensure src/ is in the python path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from spindle.core.context import BootContext
from spindle.core.models import SpindleSettings

TRAPPED_SIGNALS = [signal.SIGINT, signal.SIGHUP, signal.SIGABRT, signal.SIGUSR1]


@pytest.fixture
def root_dir(tmp_path):
    """
    Returns a temporary directory to act as the application root for tests.
    """
    return tmp_path


@pytest.fixture(autouse=True)
def restore_process_state(monkeypatch):
    """
    Boot steps touch process-wide state: signal handlers, sys.path and the
    structlog configuration. Put all of it back after each test.
    """
    handlers = {signum: signal.getsignal(signum) for signum in TRAPPED_SIGNALS}
    monkeypatch.setattr(sys, "path", list(sys.path))
    yield
    for signum, handler in handlers.items():
        signal.signal(signum, handler)
    structlog.reset_defaults()


@pytest.fixture
def settings(root_dir):
    """Settings for an in-process boot: test environment, no forking, no watcher thread."""
    return SpindleSettings(root=root_dir, environment="test", reload_classes=True, fork_for_class_load=False)


@pytest.fixture
def context(settings):
    return BootContext(settings=settings)


@pytest.fixture
def write_file():
    """Write a source file, creating parent directories."""

    def write(path: Path, content: str) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        return path

    return write
