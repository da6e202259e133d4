from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import DateTime
from sqlmodel import Column, Field, SQLModel


class LeagueGame(SQLModel, table=True):
    __tablename__ = "leaguegame"

    id: str = Field(primary_key=True)
    account_id: Optional[int] = Field(default=None, index=True)
    league_season_id: str = Field(index=True)
    home_team_season_id: str = Field(index=True)
    visitor_team_season_id: str = Field(index=True)

    # Placement (nullable until scheduled). Aware UTC.
    field_id: Optional[str] = Field(default=None, foreign_key="playingfield.id", index=True)
    start_time: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True, index=True)
    )
    end_time: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))

    # Umpire slots, filled in order
    umpire_1: Optional[str] = Field(default=None)
    umpire_2: Optional[str] = Field(default=None)
    umpire_3: Optional[str] = Field(default=None)
    umpire_4: Optional[str] = Field(default=None)

    status: str = Field(default="unscheduled")  # "unscheduled" | "scheduled" | "cancelled"
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )

    @property
    def umpire_ids(self) -> List[str]:
        return [u for u in (self.umpire_1, self.umpire_2, self.umpire_3, self.umpire_4) if u]

    def set_umpires(self, umpire_ids: List[str]) -> None:
        slots = list(umpire_ids) + [None] * (4 - len(umpire_ids))
        self.umpire_1, self.umpire_2, self.umpire_3, self.umpire_4 = slots[:4]
