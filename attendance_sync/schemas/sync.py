"""
Pydantic schemas for the batch sync endpoint.
"""

from pydantic import BaseModel, ConfigDict
from enum import Enum


class BatchStatus(str, Enum):
    """Overall outcome of a sync batch."""
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    FAILURE = "failure"

    @property
    def http_status(self) -> int:
        return {
            BatchStatus.SUCCESS: 200,
            BatchStatus.PARTIAL_FAILURE: 207,
            BatchStatus.FAILURE: 500,
        }[self]


class SyncStatsResponse(BaseModel):
    """Aggregated counters reported by the sync endpoint."""
    success: bool
    processed: int = 0
    deletions: int = 0
    conflicts: int = 0
    updates: int = 0
    errors: int = 0

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "success": False,
                "processed": 3,
                "deletions": 5,
                "conflicts": 1,
                "updates": 1,
                "errors": 2
            }
        }
    )
