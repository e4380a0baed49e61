class ObjectNotFoundException(Exception):
    """Exception raised when no document or model matches the requested identifier or query."""

    def __init__(self, message: str = "The requested object was not found."):
        super().__init__(message)


class KeyAlreadyExistsException(Exception):
    """Exception raised when trying to insert a document that would violate a unique constraint."""

    def __init__(self, message: str = "An object with the same key already exists."):
        super().__init__(message)


class ConcurrentModificationException(Exception):
    """Exception raised when a document changed between it was read and the update was applied."""

    def __init__(
        self,
        message: str = "The document was modified by another request since it was read.",
    ):
        super().__init__(message)


class PersistenceException(RuntimeError):
    """Exception raised when the document store rejects or fails an operation."""

    def __init__(self, message: str = "The document store failed the operation."):
        super().__init__(message)


class DocumentMappingException(PersistenceException):
    """Exception raised when a document mapper fails to adapt a stored or found document."""

    def __init__(self, message: str = "Cannot map the document."):
        super().__init__(message)


class MigrationException(PersistenceException):
    """Exception raised when a collection cannot be migrated to the current schema version."""

    def __init__(self, message: str = "Cannot migrate the collection."):
        super().__init__(message)


class DecodeException(ValueError):
    """Exception raised when a payload cannot be decoded into the expected model type."""

    def __init__(self, message: str = "The value does not represent the expected model."):
        super().__init__(message)


class ValidationErrorException(Exception):
    """
    Exception raised when a well-formed model is semantically invalid.

    The code identifies the invalid field with a path like
    ``profile.relationships[0].userId`` and the message explains the problem.
    """

    def __init__(self, code: str, message: str = "Model validation failed"):
        super().__init__(message)
        self.code = code
        self.message = message

    def __repr__(self) -> str:
        return f"ValidationErrorException(code={self.code!r}, message={self.message!r})"


class ResponseAlreadySentError(RuntimeError):
    """Error raised when an operation tries to write a second response for the same request."""

    def __init__(self, message: str = "A response has already been sent for this request."):
        super().__init__(message)
