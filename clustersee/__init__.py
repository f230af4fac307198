"""Clustersee: a live terminal view of Snakemake jobs on SLURM and LSF clusters."""

from importlib.metadata import version

from clustersee.merge.correlator import Correlator
from clustersee.models import DataSource
from clustersee.models import Job
from clustersee.models import JobStatus
from clustersee.models import MetadataRecord
from clustersee.models import SchedulerKind
from clustersee.models import SchedulerRecord
from clustersee.models import format_duration
from clustersee.polling import Poller
from clustersee.session import MonitorSession
from clustersee.session import open_session
from clustersee.state.config import MonitorConfig
from clustersee.state.job_store import JobFilter
from clustersee.state.job_store import JobStore
from clustersee.state.job_store import SortMode

__version__ = version("clustersee")

__all__ = [
    "Correlator",
    "DataSource",
    "Job",
    "JobFilter",
    "JobStatus",
    "JobStore",
    "MetadataRecord",
    "MonitorConfig",
    "MonitorSession",
    "Poller",
    "SchedulerKind",
    "SchedulerRecord",
    "SortMode",
    "format_duration",
    "open_session",
]
