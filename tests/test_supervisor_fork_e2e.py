import os
import subprocess
import sys
import textwrap
from pathlib import Path

import pytest

SRC_PATH = Path(__file__).resolve().parents[1] / "src"

SCRIPT = textwrap.dedent(
    """
    import os
    import signal
    import sys
    import time
    from pathlib import Path

    from spindle.core.context import BootContext
    from spindle.core.models import SpindleSettings

    root = Path(sys.argv[1])
    mode = sys.argv[2]
    settings = SpindleSettings(root=root, environment="development", fork_for_class_load=True)
    context = BootContext(settings=settings)
    context.before_master_shutdown(lambda: (root / "master_hook").write_text(str(os.getpid())))

    context.supervisor.start_transaction()

    # Only spawners get here.
    spawners = root / "spawners.txt"
    with spawners.open("a") as handle:
        handle.write(f"{os.getpid()}\\n")

    if len(spawners.read_text().split()) == 1:
        if mode == "exit":
            # Dies with the reload code without reporting on the pipe.
            time.sleep(0.2)
            os._exit(128)
        os.kill(os.getpid(), signal.SIGHUP)
        time.sleep(10)
        sys.exit(99)

    context.supervisor.reap_workers(0)
    """
)


@pytest.mark.skipif(not hasattr(os, "fork"), reason="requires os.fork")
@pytest.mark.parametrize("mode", ["hangup", "exit"])
def test_spawner_is_replaced_on_reload_and_master_exits_cleanly(tmp_path, mode):
    script = tmp_path / "master.py"
    script.write_text(SCRIPT)
    env = dict(os.environ, PYTHONPATH=str(SRC_PATH))

    result = subprocess.run(
        [sys.executable, str(script), str(tmp_path), mode],
        env=env,
        capture_output=True,
        text=True,
        timeout=60,
    )

    assert result.returncode == 0, result.stdout + result.stderr
    spawner_pids = (tmp_path / "spawners.txt").read_text().split()
    assert len(spawner_pids) == 2
    assert len(set(spawner_pids)) == 2
    master_pid = (tmp_path / "master_hook").read_text()
    assert master_pid not in spawner_pids
