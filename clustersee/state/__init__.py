"""Session state: the job store, configuration and time source."""

from clustersee.state.clock import Clock
from clustersee.state.clock import FrozenClock
from clustersee.state.clock import SystemClock
from clustersee.state.clock import get_clock
from clustersee.state.clock import reset_clock
from clustersee.state.clock import set_clock
from clustersee.state.config import DEFAULT_CONFIG
from clustersee.state.config import MonitorConfig
from clustersee.state.job_store import JobFilter
from clustersee.state.job_store import JobStore
from clustersee.state.job_store import SortMode
from clustersee.state.job_store import SourceHealth
from clustersee.state.job_store import StoreSnapshot

__all__ = [
    "Clock",
    "DEFAULT_CONFIG",
    "FrozenClock",
    "JobFilter",
    "JobStore",
    "MonitorConfig",
    "SortMode",
    "SourceHealth",
    "StoreSnapshot",
    "SystemClock",
    "get_clock",
    "reset_clock",
    "set_clock",
]
