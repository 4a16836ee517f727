class CloudDriveError(Exception):
    """Base class for every failure the storage and sharing core reports."""
    status_code: int = 500
    default_message: str = "Internal storage error"

    def __init__(self, message: str = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class InvalidPathError(CloudDriveError):
    status_code = 403
    default_message = "Invalid path"


class PathTraversalError(CloudDriveError):
    status_code = 403
    default_message = "Path traversal detected"


class NotFoundError(CloudDriveError):
    status_code = 404
    default_message = "Not found"


class QuotaExceededError(CloudDriveError):
    status_code = 400
    default_message = "Storage quota exceeded"


class AlreadySharedError(CloudDriveError):
    status_code = 409
    default_message = "File already has an active share"


class InvalidTargetError(CloudDriveError):
    status_code = 400
    default_message = "Only files can be shared"


class NameConflictError(CloudDriveError):
    status_code = 409
    default_message = "An item with this name already exists"


class TunnelUnavailableError(CloudDriveError):
    status_code = 503
    default_message = "Public tunnel is not available"


class StorageIOError(CloudDriveError):
    status_code = 500
    default_message = "Filesystem operation failed"


class InvalidShareOptionsError(CloudDriveError):
    status_code = 400
    default_message = "Invalid share options"
