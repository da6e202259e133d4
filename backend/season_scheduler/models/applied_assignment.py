from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import JSON, DateTime, UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, SQLModel


class AppliedAssignment(SQLModel, table=True):
    """Idempotency marker: one row per (run, game) that apply has written."""

    __tablename__ = "appliedassignment"
    __table_args__ = (SAUniqueConstraint("run_id", "game_id", name="uq_appliedassignment_run_game"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    run_id: str = Field(index=True)
    game_id: str = Field(foreign_key="leaguegame.id", index=True)
    field_id: str
    start_time: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    end_time: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    umpire_ids: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
