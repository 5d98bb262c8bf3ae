from spindle.loading.protected import ClassKeyedDict


class Router:
    routes = boot.protect(ClassKeyedDict({Post: "/posts", Comment: "/comments"}))
