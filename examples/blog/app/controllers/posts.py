class Posts(Application):
    model = Post
