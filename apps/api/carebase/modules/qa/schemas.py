from __future__ import annotations

from typing import Literal, Optional
from pydantic import BaseModel, Field

Decision = Literal["APPROVED", "REJECTED"]


class ReviewIn(BaseModel):
    decision: Decision
    comment: Optional[str] = Field(default=None, max_length=2000)


class QaStatsOut(BaseModel):
    pending: int
    approved_today: int
    rejected_today: int
