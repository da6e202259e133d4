from season_scheduler.models.applied_assignment import AppliedAssignment
from season_scheduler.models.apply_run import ApplyRun
from season_scheduler.models.league_game import LeagueGame
from season_scheduler.models.playing_field import PlayingField
from season_scheduler.models.scheduler_exclusion import SchedulerExclusion

__all__ = [
    "PlayingField",
    "LeagueGame",
    "SchedulerExclusion",
    "AppliedAssignment",
    "ApplyRun",
]
