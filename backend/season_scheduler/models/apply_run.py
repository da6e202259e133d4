from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Column, Field, SQLModel, Text


class ApplyRun(SQLModel, table=True):
    __tablename__ = "applyrun"

    id: Optional[int] = Field(default=None, primary_key=True)
    account_id: Optional[int] = Field(default=None, index=True)
    run_id: str = Field(index=True)
    mode: str = Field(default="all")
    all_or_nothing: bool = Field(default=False)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    input_hash: str = Field(max_length=16)
    status: str
    total_applied: int = Field(default=0)
    total_already_applied: int = Field(default=0)
    total_rejected: int = Field(default=0)
    duration_ms: int = Field(default=0)
    snapshot_json: Optional[str] = Field(default=None, sa_column=Column(Text))
