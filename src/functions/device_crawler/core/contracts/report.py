"""Result models reported by a polling cycle."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class FailureDetail(BaseModel):
    """Represents a failure encountered during a cycle stage."""

    stage: str = Field(..., description="listing|detail|persistence|backfill|cycle")
    message: str = Field(..., description="Human readable error message")
    daily_id: Optional[str] = Field(default=None)

    @field_validator("stage")
    @classmethod
    def _validate_stage(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            msg = "stage must be a non-empty string"
            raise ValueError(msg)
        return cleaned


class CycleReport(BaseModel):
    """Counts describing one polling cycle of one device."""

    device_id: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    dailies_fetched: int = Field(default=0, ge=0, description="Listing rows parsed into daily records")
    new_dailies: int = Field(default=0, ge=0)
    dailies_saved: int = Field(default=0, ge=0)
    details_fetched: int = Field(default=0, ge=0)
    details_saved: int = Field(default=0, ge=0)
    backfills: int = Field(default=0, ge=0, description="Trace-back records supplemented with newer details")
    recrawls: int = Field(default=0, ge=0, description="Trace-back records with no stored details, saved in full")
    skipped_future: int = Field(default=0, ge=0)
    skipped_known: int = Field(default=0, ge=0)
    rows_skipped: int = Field(default=0, ge=0, description="Rows that could not be parsed")
    transport_failures: int = Field(default=0, ge=0)
    persistence_failures: int = Field(default=0, ge=0)
    cancelled: bool = Field(default=False, description="Cycle stopped early by its cancellation token")
    errors: List[FailureDetail] = Field(default_factory=list)

    def add_error(self, stage: str, message: str, daily_id: Optional[str] = None) -> None:
        self.errors.append(FailureDetail(stage=stage, message=message, daily_id=daily_id))

    @property
    def succeeded(self) -> bool:
        return not self.errors

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return round((self.finished_at - self.started_at).total_seconds(), 3)
