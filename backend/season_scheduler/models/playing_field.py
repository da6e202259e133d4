from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Column, Field, SQLModel


class PlayingField(SQLModel, table=True):
    __tablename__ = "playingfield"

    id: str = Field(primary_key=True)
    account_id: Optional[int] = Field(default=None, index=True)
    name: str
    has_lights: bool = Field(default=False)
    max_parallel_games: int = Field(default=1)  # >= 1; overlapping games allowed at once
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
