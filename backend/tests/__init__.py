# Force SQLModel table registration at test discovery time
# This ensures all models are registered before any test database creation
from season_scheduler.models.applied_assignment import AppliedAssignment  # noqa: F401
from season_scheduler.models.apply_run import ApplyRun  # noqa: F401
from season_scheduler.models.league_game import LeagueGame  # noqa: F401
from season_scheduler.models.playing_field import PlayingField  # noqa: F401
from season_scheduler.models.scheduler_exclusion import SchedulerExclusion  # noqa: F401
