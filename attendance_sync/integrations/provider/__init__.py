"""Attendance provider HTTP client."""

from .client import AttendanceProviderClient, ProviderAPIError, ProviderClientError

__all__ = ["AttendanceProviderClient", "ProviderAPIError", "ProviderClientError"]
