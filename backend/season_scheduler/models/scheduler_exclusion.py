from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Column, Field, SQLModel


class SchedulerExclusion(SQLModel, table=True):
    """Season-wide, team or umpire blocked window for one account. Times are aware UTC."""

    __tablename__ = "schedulerexclusion"

    id: Optional[int] = Field(default=None, primary_key=True)
    account_id: Optional[int] = Field(default=None, index=True)
    kind: str = Field(index=True)  # "season" | "team" | "umpire"
    season_id: Optional[str] = Field(default=None, index=True)
    team_season_id: Optional[str] = Field(default=None, index=True)
    umpire_id: Optional[str] = Field(default=None, index=True)
    start_time: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    end_time: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    note: Optional[str] = Field(default=None, max_length=255)
    enabled: bool = Field(default=True)
