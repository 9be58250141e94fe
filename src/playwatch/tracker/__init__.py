"""Tracker module: reconciliation core, engine, scheduler and Spotify client."""

from playwatch.tracker.engine import PassStats, TrackerEngine, TrackerState
from playwatch.tracker.scheduler import CheckScheduler

__all__ = ["CheckScheduler", "PassStats", "TrackerEngine", "TrackerState"]
