"""Scheduling: due-set computation, the poll engine, and reload supervision.

Architecture::

    scheduler.py    ScheduleEntry + pure due-set functions
    engine.py       PollEngine (cycle, run_forever, stop, health)
    supervisor.py   ConfigReloadSupervisor (durable reload flag)
"""

from cdc_spine.scheduling.engine import (
    CycleReport,
    EngineHealth,
    EngineState,
    PollEngine,
    PollStats,
    TargetOutcome,
    TargetResult,
)
from cdc_spine.scheduling.scheduler import (
    ScheduleEntry,
    build_schedule,
    due_targets,
    next_wakeup,
    smallest_interval,
)
from cdc_spine.scheduling.supervisor import ConfigReloadSupervisor

__all__ = [
    "CycleReport",
    "EngineHealth",
    "EngineState",
    "PollEngine",
    "PollStats",
    "TargetOutcome",
    "TargetResult",
    "ScheduleEntry",
    "build_schedule",
    "due_targets",
    "next_wakeup",
    "smallest_interval",
    "ConfigReloadSupervisor",
]
