"""jiradetails - annotate Jira issue keys with their summaries.

High-level public API (stable):

from jiradetails import CacheStore, Reconciler, RemoteFetcher, extract_keys

cache = CacheStore('/tmp/jira.cache')
keys = extract_keys(branch_lines)
mapping = Reconciler(cache, fetcher).resolve(keys)

The CLI (``jiradetails`` / ``python -m jiradetails``) delegates to this
library and reads ``git branch`` output from stdin.
"""

from __future__ import annotations

# Defined before the submodule imports; jira_rest reads it for the User-Agent.
__version__ = "0.2.0"

from .cache_store import CacheStore  # noqa: E402
from .config import OutputMode, PresentationConfig, RunConfig, load_config  # noqa: E402
from .fetcher import RemoteFetcher  # noqa: E402
from .jira_rest import JiraRestClient  # noqa: E402
from .keys import BranchRecord, extract_keys, parse_branch_records  # noqa: E402
from .presenter import render, render_text  # noqa: E402
from .reconcile import Reconciler, ReconcileReport, resolve  # noqa: E402

__all__ = [
    "BranchRecord",
    "CacheStore",
    "JiraRestClient",
    "OutputMode",
    "PresentationConfig",
    "Reconciler",
    "ReconcileReport",
    "RemoteFetcher",
    "RunConfig",
    "extract_keys",
    "load_config",
    "parse_branch_records",
    "render",
    "render_text",
    "resolve",
    "__version__",
]
