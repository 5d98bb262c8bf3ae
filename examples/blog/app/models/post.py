class Post(Model):
    def __init__(self, title):
        self.title = title
