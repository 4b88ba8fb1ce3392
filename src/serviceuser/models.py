"""Core data models for serviceuser.

Defines the schemas for:
- Run modes (what a run does to each cluster)
- Cluster results (what one cluster produced)
- Run reports (what the whole run produced)
- The merged kubeconfig document (what gets written out)
"""

from __future__ import annotations

import enum

from pydantic import BaseModel, ConfigDict, Field

# --- Enums ---


class Mode(enum.StrEnum):
    READ = "read"
    CREATE = "create"
    ROTATE = "rotate"
    REVOKE = "revoke"


# --- Per-cluster results ---


class ClusterResult(BaseModel):
    """Connection details and token obtained from one cluster."""

    cluster: str
    server: str
    token: str
    namespace: str
    service_account: str


class RunReport(BaseModel):
    """Outcome of reconciling every configured cluster."""

    mode: Mode
    clusters: list[str]
    results: dict[str, ClusterResult] = Field(default_factory=dict)
    failures: dict[str, str] = Field(default_factory=dict)
    revoked: list[str] = Field(default_factory=list)
    kubeconfig: Kubeconfig | None = None

    @property
    def ok(self) -> bool:
        return not self.failures


# --- Kubeconfig document ---
#
# Field aliases follow the kubeconfig wire format. Dump with
# ``model_dump(by_alias=True, exclude_none=True)``.


class _KubeconfigModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ClusterEntry(_KubeconfigModel):
    server: str
    insecure_skip_tls_verify: bool | None = Field(None, alias="insecure-skip-tls-verify")
    certificate_authority_data: str | None = Field(None, alias="certificate-authority-data")


class NamedCluster(_KubeconfigModel):
    name: str
    cluster: ClusterEntry


class UserEntry(_KubeconfigModel):
    token: str


class NamedUser(_KubeconfigModel):
    name: str
    user: UserEntry


class ContextEntry(_KubeconfigModel):
    cluster: str
    user: str
    namespace: str | None = None


class NamedContext(_KubeconfigModel):
    name: str
    context: ContextEntry


class Kubeconfig(_KubeconfigModel):
    """A merged client configuration with one context per cluster."""

    api_version: str = Field("v1", alias="apiVersion")
    kind: str = "Config"
    clusters: list[NamedCluster] = Field(default_factory=list)
    contexts: list[NamedContext] = Field(default_factory=list)
    current_context: str = Field("", alias="current-context")
    preferences: dict[str, str] = Field(default_factory=dict)
    users: list[NamedUser] = Field(default_factory=list)

    def context_names(self) -> list[str]:
        return [c.name for c in self.contexts]

    def token_for(self, name: str) -> str | None:
        """Return the bearer token of user *name*, or ``None``."""
        for user in self.users:
            if user.name == name:
                return user.user.token
        return None

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


RunReport.model_rebuild()
