"""Correlation and field-level merge of job records.

The pure helpers are re-exported here. The ``Correlator`` lives in
``clustersee.merge.correlator`` and is imported from there, since it
depends on the job store.
"""

from clustersee.merge.comment import CommentMatch
from clustersee.merge.comment import make_job_key
from clustersee.merge.comment import normalize_wildcards
from clustersee.merge.comment import parse_job_comment
from clustersee.merge.fields import fold_job
from clustersee.merge.status import error_for_state
from clustersee.merge.status import map_scheduler_state
from clustersee.merge.status import resolve_status

__all__ = [
    "CommentMatch",
    "error_for_state",
    "fold_job",
    "make_job_key",
    "map_scheduler_state",
    "normalize_wildcards",
    "parse_job_comment",
    "resolve_status",
]
