"""Custom exceptions for the pywaterdash package."""

from typing import Optional


class WaterDashError(Exception):
    """Base exception for water dashboard errors."""
    pass


class WaterDashAuthError(WaterDashError):
    """Exception raised when signing in or refreshing the identity fails.

    ``message`` is safe to show to the administrator; ``code`` is the raw
    provider error code when there is one.
    """

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class WaterDashAccessDenied(WaterDashAuthError):
    """Exception raised when the signed-in identity is not an administrator."""
    pass


class WaterDashAPIError(WaterDashError):
    """Exception raised when a feed or document store request fails."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class WaterDashInfluxDBError(WaterDashError):
    """Exception raised when an InfluxDB operation fails."""
    pass
