"""Exceptions for files app."""


class FilesError(Exception):
    """Base class for file lifecycle errors."""


class OwnerNotFoundError(FilesError):
    """Raised when the owner of an operation does not exist."""

    def __init__(self, user_id: int) -> None:
        """Initialize OwnerNotFoundError.

        Args:
            user_id: ID of the missing owner.
        """
        self.user_id = user_id
        super().__init__(f'Owner not found: {user_id}')


class NotFoundError(FilesError):
    """Raised when a file is missing or not owned by the requester.

    Both cases produce the same error so callers can't check
    for files belonging to other users.
    """

    def __init__(self, message: str = 'File not found') -> None:
        """Initialize NotFoundError.

        Args:
            message: Error message.
        """
        super().__init__(message)


class FolderNotFoundError(NotFoundError):
    """Raised when a target folder is missing or owned by someone else."""

    def __init__(self) -> None:
        """Initialize FolderNotFoundError."""
        super().__init__('Folder not found')


class QuotaExceededError(FilesError):
    """Raised when upload would exceed user's storage quota."""

    def __init__(
        self,
        quota_bytes: int,
        used_bytes: int,
        required_bytes: int,
    ) -> None:
        """Initialize QuotaExceededError.

        Args:
            quota_bytes: Total quota limit in bytes.
            used_bytes: Currently used bytes.
            required_bytes: Bytes needed for the operation.
        """
        self.quota_bytes = quota_bytes
        self.used_bytes = used_bytes
        self.required_bytes = required_bytes

        available = max(0, quota_bytes - used_bytes)
        super().__init__(
            f'Quota exceeded: need {required_bytes} bytes, '
            f'only {available} bytes available '
            f'(quota: {quota_bytes}, used: {used_bytes})',
        )


class StoreUnavailableError(FilesError):
    """Raised when the object store can't complete a request."""

    def __init__(self, operation: str, key: str) -> None:
        """Initialize StoreUnavailableError.

        Args:
            operation: Storage operation that failed (put, delete, ...).
            key: Object key the operation targeted.
        """
        self.operation = operation
        self.key = key
        super().__init__(f'Object store {operation} failed: {key}')
