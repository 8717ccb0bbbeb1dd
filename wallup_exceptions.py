"""
Custom exception hierarchy for the wallup upload pipeline.
Provides specific exceptions for each failure point of an upload job.
"""

class WallupException(Exception):
    """Base exception for all wallup errors"""
    retryable = False

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(WallupException):
    """Raised when a job cannot start (no user, offline, bad input)"""
    pass


class ThumbnailError(WallupException):
    """Raised when the source image cannot be decoded or re-encoded"""
    pass


class UploadError(WallupException):
    """Base class for remote upload errors"""
    retryable = True


class StorageError(UploadError):
    """Raised when the blob store rejects an upload or returns no URL"""
    def __init__(self, message: str, status: int = None, folder: str = None, details: dict = None):
        super().__init__(message, details)
        self.status = status
        self.folder = folder


class ThumbnailStorageWarning(UploadError):
    """Non-fatal thumbnail upload failure; the full image URL is used instead"""
    pass


class PersistenceError(UploadError):
    """Raised when the wallpaper record could not be saved"""
    def __init__(self, message: str, status: int = None, code: str = None, details: dict = None):
        super().__init__(message, details)
        self.status = status
        self.code = code


class NetworkError(WallupException):
    """Raised for transport-level failures (DNS, reset, abort)"""
    retryable = True


class TimeoutError(NetworkError):
    """Raised when an upload job exceeds its time budget"""
    pass

