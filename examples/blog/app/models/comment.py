# Loads before post.py and refers to Post; resolved on the retry pass.
class Comment(Model):
    parent = Post

    def __init__(self, body):
        self.body = body
