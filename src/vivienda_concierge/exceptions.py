"""Custom exceptions for Vivienda Concierge."""

from enum import Enum, auto
from typing import Optional


class DriveErrorType(Enum):
    """Types of Google Drive errors."""

    NOT_FOUND = auto()
    FORBIDDEN = auto()
    API_ERROR = auto()


class CatalogErrorType(Enum):
    """Types of property catalog errors."""

    CORRUPTED = auto()
    INVALID_STRUCTURE = auto()
    CONFLICT = auto()
    NOT_FOUND = auto()
    ALREADY_EXISTS = auto()


class TelegramErrorType(Enum):
    """Types of Telegram bot errors."""

    FILE_DOWNLOAD_FAILED = auto()


class OAuthErrorType(Enum):
    """Types of Google re-authorization errors."""

    CONFIGURATION = auto()
    INVALID_STATE = auto()
    SESSION = auto()
    TOKEN_EXCHANGE = auto()
    STORAGE = auto()


class DriveError(Exception):
    """Base exception for all Drive-related errors."""

    def __init__(
        self,
        message: str,
        error_type: DriveErrorType = DriveErrorType.API_ERROR,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.error_type = error_type
        self.status_code = status_code

    def is_not_found(self) -> bool:
        """Check if this is a not-found error."""
        return self.error_type == DriveErrorType.NOT_FOUND

    def is_forbidden(self) -> bool:
        """Check if this is a permission error."""
        return self.error_type == DriveErrorType.FORBIDDEN


class CatalogError(Exception):
    """Base exception for the property catalog."""

    def __init__(self, message: str, error_type: CatalogErrorType):
        super().__init__(message)
        self.error_type = error_type

    def is_data_integrity_error(self) -> bool:
        """Corrupted or malformed catalog; never retried or repaired."""
        return self.error_type in (
            CatalogErrorType.CORRUPTED,
            CatalogErrorType.INVALID_STRUCTURE,
        )

    def is_conflict(self) -> bool:
        return self.error_type == CatalogErrorType.CONFLICT


class TelegramBotError(Exception):
    """Base exception for Telegram bot operations."""

    def __init__(
        self,
        message: str,
        error_type: TelegramErrorType = TelegramErrorType.FILE_DOWNLOAD_FAILED,
    ):
        super().__init__(message)
        self.error_type = error_type

    def is_download_error(self) -> bool:
        """Check if this is a download error."""
        return self.error_type == TelegramErrorType.FILE_DOWNLOAD_FAILED


class OAuthError(Exception):
    """Base exception for the Google re-authorization flow."""

    def __init__(self, message: str, error_type: OAuthErrorType):
        super().__init__(message)
        self.error_type = error_type


class SessionNotFoundError(LookupError):
    """Raised when a chat has no session of the requested kind."""


class DriveNotFoundError(DriveError):
    """Raised when Drive answers 404."""

    def __init__(self, message: str):
        super().__init__(message, DriveErrorType.NOT_FOUND, status_code=404)


class DriveForbiddenError(DriveError):
    """Raised when Drive answers 403."""

    def __init__(self, message: str):
        super().__init__(message, DriveErrorType.FORBIDDEN, status_code=403)


class DriveAPIError(DriveError):
    """Raised for any other Drive API failure."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message, DriveErrorType.API_ERROR, status_code)


class CatalogCorruptedError(CatalogError):
    """Raised when the catalog file is not valid JSON."""

    def __init__(self, message: str):
        super().__init__(message, CatalogErrorType.CORRUPTED)


class CatalogStructureError(CatalogError):
    """Raised when the catalog JSON lacks version or properties."""

    def __init__(self, message: str = "Catalog JSON has invalid structure"):
        super().__init__(message, CatalogErrorType.INVALID_STRUCTURE)


class CatalogConflictError(CatalogError):
    """Raised when the catalog changed between read and write."""

    def __init__(self, message: str):
        super().__init__(message, CatalogErrorType.CONFLICT)


class PropertyNotFoundError(CatalogError):
    """Raised when no record matches the requested address and status."""

    def __init__(self, message: str = "Property not found"):
        super().__init__(message, CatalogErrorType.NOT_FOUND)


class PropertyAlreadyExistsError(CatalogError):
    """Raised when a non-deleted record already uses the address."""

    def __init__(self, message: str = "Property already exists"):
        super().__init__(message, CatalogErrorType.ALREADY_EXISTS)


class FileDownloadError(TelegramBotError):
    """Raised when file download from Telegram fails."""

    def __init__(self, message: str):
        super().__init__(message, TelegramErrorType.FILE_DOWNLOAD_FAILED)


class OAuthConfigurationError(OAuthError):
    """Raised when the OAuth client JSON is unusable."""

    def __init__(self, message: str):
        super().__init__(message, OAuthErrorType.CONFIGURATION)


class OAuthStateError(OAuthError):
    """Raised when the state parameter is forged, malformed or expired."""

    def __init__(self, message: str):
        super().__init__(message, OAuthErrorType.INVALID_STATE)


class OAuthSessionError(OAuthError):
    """Raised on missing, duplicate or mismatched login sessions."""

    def __init__(self, message: str):
        super().__init__(message, OAuthErrorType.SESSION)


class OAuthTokenExchangeError(OAuthError):
    """Raised when Google refuses the authorization code."""

    def __init__(self, message: str):
        super().__init__(message, OAuthErrorType.TOKEN_EXCHANGE)


class TokenStorageError(OAuthError):
    """Raised when the refreshed token cannot be persisted."""

    def __init__(self, message: str):
        super().__init__(message, OAuthErrorType.STORAGE)


class SelfTestStepError(Exception):
    """Raised when a self-test step gets an unexpected business result."""
