class BiteNoteError(Exception):
    pass


class NotFound(BiteNoteError):
    """A recipe, ingredient or utensil id that does not exist."""


class ConstraintViolation(BiteNoteError):
    """A write referenced a catalog id that is not in the catalog."""


class InvalidRecipe(BiteNoteError, ValueError):
    """A recipe failed validation before being written."""


class MalformedSeedData(BiteNoteError):
    """Catalog or example seed data could not be parsed. Fatal at startup."""


class StorageError(BiteNoteError):
    pass
