"""
Content Understanding integration

  client.py   async REST client (submit + job status)
  poller.py   bounded polling loop over a job handle
"""

from taxdoc.analysis.client import AnalysisJob, ContentUnderstandingClient
from taxdoc.analysis.poller import JobPoller, PollOutcome, PollState

__all__ = [
    "AnalysisJob",
    "ContentUnderstandingClient",
    "JobPoller",
    "PollOutcome",
    "PollState",
]
