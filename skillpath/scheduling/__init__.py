"""
Scheduling algorithms.

The study engine depends only on the SchedulingAlgorithm protocol; the
tiered scheduler is the default implementation.
"""

from skillpath.scheduling.scheduler import TieredConfig, TieredScheduler

__all__ = ["TieredConfig", "TieredScheduler"]
