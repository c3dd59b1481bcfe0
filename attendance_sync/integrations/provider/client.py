"""
Attendance provider API client.
"""

import logging
from typing import Any, Dict, List, Optional

import aiohttp
from pydantic import ValidationError

from attendance_sync.core.circuit_breaker import NonBreakerError
from attendance_sync.core.config import settings
from attendance_sync.schemas.provider import AttendanceDetail, Course, parse_courses

logger = logging.getLogger(__name__)

COURSES_ENDPOINT = "institutionuser/courses/withusers"
ATTENDANCE_ENDPOINT = "attendancereports/student/detailed"


class ProviderAPIError(Exception):
    """Provider unavailable or answering with something unusable; counts toward the breaker."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class ProviderClientError(NonBreakerError):
    """The provider rejected the request itself (4xx other than 429)."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class AttendanceProviderClient:
    """
    Thin aiohttp client for the two provider endpoints the sync needs.

    One ``ClientSession`` is shared across users; each call authenticates
    with the user's own bearer token and carries its own timeout.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        courses_timeout: Optional[float] = None,
        attendance_timeout: Optional[float] = None,
    ):
        base_url = base_url if base_url is not None else settings.PROVIDER_BASE_URL
        self.base_url = base_url.rstrip("/") + "/" if base_url else ""
        self.courses_timeout = aiohttp.ClientTimeout(
            total=courses_timeout or settings.PROVIDER_COURSES_TIMEOUT
        )
        self.attendance_timeout = aiohttp.ClientTimeout(
            total=attendance_timeout or settings.PROVIDER_ATTENDANCE_TIMEOUT
        )
        self._http_session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def start(self) -> None:
        if self._http_session is None or self._http_session.closed:
            self._http_session = aiohttp.ClientSession(
                headers={
                    "User-Agent": "Attendance-Sync/1.0",
                    "Accept": "application/json",
                }
            )

    async def close(self) -> None:
        if self._http_session is not None:
            await self._http_session.close()
            self._http_session = None

    async def _make_api_request(
        self,
        method: str,
        endpoint: str,
        token: str,
        timeout: aiohttp.ClientTimeout,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Issue one request and return the decoded JSON body."""
        if not self.base_url:
            raise ProviderAPIError("Provider base URL is not configured")
        await self.start()

        url = f"{self.base_url}{endpoint}"
        headers = {"Authorization": f"Bearer {token}"}

        try:
            async with self._http_session.request(
                method, url, headers=headers, json=json_body, timeout=timeout
            ) as response:
                if response.status != 200:
                    message = f"{endpoint} failed: HTTP {response.status}"
                    if 400 <= response.status < 500 and response.status != 429:
                        raise ProviderClientError(message, status=response.status)
                    raise ProviderAPIError(message, status=response.status)

                try:
                    return await response.json(content_type=None)
                except ValueError as e:
                    raise ProviderAPIError(f"{endpoint} failed: invalid JSON") from e

        except aiohttp.ClientError as e:
            raise ProviderAPIError(f"{endpoint} request error: {e}") from e

    async def fetch_courses(self, token: str) -> List[Course]:
        """
        Get the student's courses.

        Raises:
            ProviderAPIError: On 5xx/429, transport errors or an empty body
            ProviderClientError: On other 4xx responses
        """
        payload = await self._make_api_request("GET", COURSES_ENDPOINT, token, self.courses_timeout)
        if not isinstance(payload, list):
            raise ProviderAPIError(f"{COURSES_ENDPOINT} failed: empty or invalid JSON")
        courses = parse_courses(payload)
        logger.debug(f"Retrieved {len(courses)} courses from provider")
        return courses

    async def fetch_attendance_detail(self, token: str) -> AttendanceDetail:
        """
        Get the detailed attendance report.

        Raises:
            ProviderAPIError: On transport/status errors, a missing
                ``studentAttendanceData`` field or a payload that fails validation
            ProviderClientError: On 4xx responses other than 429
        """
        payload = await self._make_api_request(
            "POST", ATTENDANCE_ENDPOINT, token, self.attendance_timeout, json_body={}
        )
        # An empty report is valid for users with no classes recorded yet
        if not isinstance(payload, dict) or payload.get("studentAttendanceData") is None:
            raise ProviderAPIError(f"{ATTENDANCE_ENDPOINT} failed: missing studentAttendanceData")
        try:
            return AttendanceDetail.model_validate(payload)
        except ValidationError as e:
            raise ProviderAPIError(f"Invalid attendance data from provider: {e}") from e
