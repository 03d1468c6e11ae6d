"""
Error taxonomy for the image search integration
"""

from typing import Any, Optional


class ImageSearchError(Exception):
    """Base error; carries the vendor payload when one was received"""

    status_code = 500

    def __init__(self, message: str, payload: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.payload = payload


class ConfigurationError(ImageSearchError):
    """Vendor credentials are missing"""


class UpstreamAuthError(ImageSearchError):
    """Vendor rejected the credential exchange"""


class EnrollmentError(ImageSearchError):
    """Vendor did not return a signature for an enrolled image"""


class SearchError(ImageSearchError):
    """Vendor similarity query returned a malformed response"""


class DeletionError(ImageSearchError):
    """Vendor rejected a signature on delete"""


class ImageReadError(ImageSearchError):
    """Image source could not be resolved to bytes"""


class NotFoundError(ImageSearchError):
    """Product or image missing locally"""

    status_code = 404
