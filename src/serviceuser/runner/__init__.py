"""Multi-cluster orchestration.

The Orchestrator resolves a client per cluster, runs the Reconciler and
collects results into a RunReport.
"""

from serviceuser.runner.orchestrator import Orchestrator

__all__ = [
    "Orchestrator",
]
