"""Batch run models."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class RunOutcome(str, Enum):
    """How a batch run request ended."""

    COMPLETED = "completed"
    NOTHING_TO_DO = "nothing_to_do"
    ALREADY_RUNNING = "already_running"
    ENGINE_FAILED = "engine_failed"


class PageFailure(BaseModel):
    """A page-scoped failure observed during a run."""

    page_id: int
    page_name: str
    stage: str = Field(..., description="'ocr' or 'translation'")
    message: str


class RunSummary(BaseModel):
    """Result of one batch run request."""

    outcome: RunOutcome
    total: int = Field(default=0, ge=0, description="Eligible pages at run start")
    done: int = Field(default=0, ge=0)
    error: int = Field(default=0, ge=0)
    translation_failed: int = Field(default=0, ge=0)
    failures: list[PageFailure] = Field(default_factory=list)
    fatal_error: Optional[str] = None
    language: Optional[str] = None
    started_at: datetime = Field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None

    @property
    def processed(self) -> int:
        """Pages that reached a terminal status in this run."""
        return self.done + self.error

    @property
    def is_fatal(self) -> bool:
        """Check if the run aborted on an engine failure."""
        return self.outcome == RunOutcome.ENGINE_FAILED
