"""Historical reconstruction -- event-log replay and point-in-time reads."""

from vaultrate.backfill.engine import EventBackfillEngine, reconstruct_hourly
from vaultrate.backfill.point_in_time import PointInTimeFetcher

__all__ = ["EventBackfillEngine", "PointInTimeFetcher", "reconstruct_hourly"]
