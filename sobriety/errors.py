from __future__ import annotations


class StorageError(Exception):
    """A storage operation failed.

    ``kind`` is one of ``read``, ``write``, ``remove``, ``decode`` or
    ``validation``; ``cause`` is the underlying exception, if any.
    """

    kind = "storage"

    def __init__(self, message: str, kind: str | None = None, cause: BaseException | None = None) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind
        self.cause = cause


class ValidationError(StorageError):
    """Caller-supplied data violates an entity invariant. The message is safe to show the user."""

    kind = "validation"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class DecodeError(StorageError):
    kind = "decode"

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message, cause=cause)
