# Executed by the `dependencies` boot step. `boot` is the BootContext.

boot.app["started_steps"] = []


@boot.before_app_loads
def note_before():
    boot.app["started_steps"].append("before_app_loads")


@boot.after_app_loads
def note_after():
    boot.app["started_steps"].append("after_app_loads")
