"""chefherd exception classes."""


class ChefHerdError(Exception):
    """Base exception for all chefherd errors."""
    pass


class StoreError(ChefHerdError):
    """Raised when the configuration server rejects a request."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(StoreError):
    """Raised when authentication fails."""
    pass


class NetworkError(StoreError):
    """Raised when network operations fail."""
    pass


class ValidationError(ChefHerdError):
    """Raised when input validation fails."""
    pass


class InvalidLockType(ChefHerdError):
    """Raised when a mutex is created without a known lock type."""
    pass


class ResourceLocked(ChefHerdError):
    """Raised when a resource is locked by another client."""

    def __init__(self, message: str, holder: str = None, since: str = None, process_id: int = None):
        super().__init__(message)
        self.holder = holder
        self.since = since
        self.process_id = process_id


class ValidatorNotFound(ChefHerdError):
    """Raised by a remote connector when the validator key is missing."""
    pass


class ValidatorCredentialMissing(ChefHerdError):
    """Raised when a full bootstrap cannot find the validator key."""
    pass


class RemoteFileCopyError(ChefHerdError):
    """Raised when copying a file to a node fails."""
    pass


class RemoteCommandError(ChefHerdError):
    """Raised when a command run on a node fails."""
    pass
