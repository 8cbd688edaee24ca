"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class LiberatorError(Exception):
    """Base exception for all application-specific errors."""


class ConfigurationError(LiberatorError):
    """Raised for issues related to configuration loading or validation."""


class LicenseError(LiberatorError):
    """Raised when a download license cannot be obtained for a product."""


class VoucherDecryptionError(LicenseError):
    """Raised when the license voucher cannot be decrypted with the device keys."""


class DecryptError(LiberatorError):
    """Raised when the decrypt engine cannot be configured or started."""


class PlacementError(LiberatorError):
    """Raised when decrypted files cannot be moved into the library."""


class FileIntegrityError(LiberatorError):
    """Raised when a decrypted file fails a post-decrypt integrity check."""


class CatalogError(LiberatorError):
    """Raised when the library catalog cannot be read or written."""
