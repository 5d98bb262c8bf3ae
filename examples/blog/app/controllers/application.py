class Application:
    layout = "default"
