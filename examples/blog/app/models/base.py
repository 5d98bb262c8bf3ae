class Model:
    """Base for every model; subclasses register themselves."""

    _subclasses_list = []

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        Model._subclasses_list.append(cls)
