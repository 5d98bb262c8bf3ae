boot.app["debug_toolbar"] = True
