"""Error taxonomy for serviceuser.

Validation errors abort a run before any cluster is contacted. Every other
error is scoped to a single cluster: the orchestrator logs it with the
cluster name, records the failure and moves on to the next cluster.
"""

from __future__ import annotations


class ServiceUserError(Exception):
    """Base class for all serviceuser errors."""

    def __init__(self, message: str, *, cluster: str | None = None) -> None:
        super().__init__(message)
        self.cluster = cluster


class ValidationError(ServiceUserError):
    """Raised for a missing team, bad flag combination or bad cluster list."""


class ConnectionConfigError(ServiceUserError):
    """Raised when a cluster's connection parameters cannot be resolved."""


class IdentityNotFoundError(ServiceUserError):
    """Raised when the team's service account does not exist."""


class IdentityAlreadyExistsError(ServiceUserError):
    """Raised when creating a service account that already exists."""


class NoSecretError(ServiceUserError):
    """Raised when a service account has no secret reference."""


class SecretFetchError(ServiceUserError):
    """Raised when a service account's token secret cannot be read."""


class ClusterApiError(ServiceUserError):
    """Raised for any other Kubernetes API failure."""

    def __init__(
        self,
        message: str,
        *,
        cluster: str | None = None,
        status: int | None = None,
        reason: str | None = None,
    ) -> None:
        super().__init__(message, cluster=cluster)
        self.status = status
        self.reason = reason


class OutputError(ServiceUserError):
    """Raised when the kubeconfig cannot be serialized or written."""
