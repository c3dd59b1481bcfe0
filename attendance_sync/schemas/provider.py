"""
Pydantic schemas for payloads returned by the attendance provider.

Validating the shape up front means a type change on the provider side
(e.g. attendance becoming a float) fails the user's sync loudly instead of
silently producing wrong slot keys.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Optional, Union


class Course(BaseModel):
    """A course the student is enrolled in."""
    model_config = ConfigDict(extra="ignore")

    id: int = Field(..., gt=0)
    name: str
    code: Optional[str] = None


class OfficialSessionRaw(BaseModel):
    """One session entry of the detailed attendance report."""
    model_config = ConfigDict(extra="ignore")

    class_type: Optional[str] = None
    session: Optional[Union[int, str]] = None
    attendance: Optional[Union[int, str]] = None
    course: Optional[Union[int, str]] = None

    @property
    def is_holiday(self) -> bool:
        """Unscheduled slots carry no course or no attendance."""
        return self.course is None or self.attendance is None

    @property
    def is_revision(self) -> bool:
        return self.class_type == "Revision"


class AttendanceDetail(BaseModel):
    """Body of the detailed attendance report: ``{date: {session_key: entry}}``."""
    model_config = ConfigDict(extra="ignore")

    studentAttendanceData: Dict[str, Optional[Dict[str, OfficialSessionRaw]]]


def parse_courses(payload: object) -> List[Course]:
    """Keep the course rows that validate, drop the rest."""
    if not isinstance(payload, list):
        return []
    courses = []
    for row in payload:
        try:
            courses.append(Course.model_validate(row))
        except ValueError:
            continue
    return courses
