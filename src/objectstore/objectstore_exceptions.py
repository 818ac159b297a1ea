"""ObjectStore custom exception module."""


class ObjectStoreError(Exception):
    """Base class of every exception raised by an ObjectStore when an object cannot be
    encoded, decoded, located or interpreted."""

    def __init__(self, message, errors=None):
        super().__init__(message)
        self.errors = errors


class MalformedHeader(ObjectStoreError):
    """Custom exception thrown when decoding an object header or a tree entry and the
    NUL terminator or the expected token layout cannot be found."""


class UnknownKind(ObjectStoreError):
    """Custom exception thrown when an object header names a kind that is not
    'blob', 'tree' or 'commit'."""


class SizeMismatch(ObjectStoreError):
    """Custom exception thrown when the size declared in an object header is not a
    valid decimal integer, is larger than the store allows, or does not match the
    number of body bytes that follow the header."""


class CorruptObject(ObjectStoreError):
    """Custom exception thrown when a stored object cannot be inflated, decoded or
    verified. The identifier of the object is kept for diagnostics."""

    def __init__(self, message, oid=None, errors=None):
        super().__init__(message, errors)
        self.oid = oid


class ObjectNotFound(ObjectStoreError):
    """Custom exception thrown when no object is stored for a given identifier."""

    def __init__(self, message, oid=None, errors=None):
        super().__init__(message, errors)
        self.oid = oid


class UnexpectedKind(ObjectStoreError):
    """Custom exception thrown when an object resolves to a different kind than the
    caller asked for (ex. a tree was requested but the id points to a blob)."""


class InvalidEntry(ObjectStoreError):
    """Custom exception thrown when a tree entry given to the encoder has an illegal
    name, mode or child identifier."""
