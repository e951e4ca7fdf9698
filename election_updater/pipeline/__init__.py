"""Pipeline orchestration for the daily update and the county refresh."""

from election_updater.pipeline.county_refresh import CountyRefreshPipeline
from election_updater.pipeline.orchestrator import DailyUpdatePipeline
from election_updater.pipeline.race_processor import RaceOutcome, RaceProcessor
from election_updater.pipeline.run_lease import RunLease
from election_updater.pipeline.run_log import RunLogWriter

__all__ = [
    "CountyRefreshPipeline",
    "DailyUpdatePipeline",
    "RaceOutcome",
    "RaceProcessor",
    "RunLease",
    "RunLogWriter",
]
