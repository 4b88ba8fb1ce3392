"""Run configuration and ``serviceuser.yaml`` auto-discovery.

A run is described by a single immutable :class:`RunConfig`, built once at
startup from command-line flags layered over an optional project file and
the built-in defaults. The orchestrator and reconciler receive it
explicitly; nothing reads options from module state.

Searches for ``serviceuser.yaml`` in the current directory and parent
directories, parses it, and resolves a relative ``kubeconfig`` path against
the config file's location.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from serviceuser.errors import ValidationError
from serviceuser.models import Mode

CONFIG_FILENAME = "serviceuser.yaml"

DEFAULT_CLUSTERS: tuple[str, ...] = ("preprod-fss", "preprod-sbs", "prod-fss", "prod-sbs")
DEFAULT_NAMESPACE = "default"
SERVICE_ACCOUNT_TEMPLATE = "serviceuser-{team}"


class PropagationConfig(BaseModel):
    """How long to wait for a freshly created service account's token secret."""

    initial_delay: float = Field(0.1, ge=0)
    """Delay after creation before the first lookup."""

    timeout: float = Field(10.0, ge=0)
    """Give up polling this many seconds after creation. 0 means a single lookup."""

    backoff: float = Field(2.0, ge=1)
    """Multiplier applied to the delay between lookups."""

    max_delay: float = Field(2.0, gt=0)
    """Upper bound on the delay between lookups."""


@dataclass(frozen=True)
class ProjectConfig:
    """Parsed ``serviceuser.yaml`` project defaults."""

    config_path: Path | None = None
    clusters: tuple[str, ...] | None = None
    namespace: str | None = None
    kubeconfig: str | None = None
    insecure_skip_tls_verify: bool | None = None
    propagation: PropagationConfig | None = None


@dataclass(frozen=True)
class RunConfig:
    """Everything a single invocation needs, validated and immutable."""

    team: str
    clusters: tuple[str, ...] = DEFAULT_CLUSTERS
    create: bool = False
    rotate: bool = False
    revoke: bool = False
    debug: bool = False
    namespace: str = DEFAULT_NAMESPACE
    kubeconfig: str | None = None
    insecure_skip_tls_verify: bool = True
    propagation: PropagationConfig = field(default_factory=PropagationConfig)

    @property
    def mode(self) -> Mode:
        """The effective mode. Rotate takes precedence over create."""
        if self.revoke:
            return Mode.REVOKE
        if self.rotate:
            return Mode.ROTATE
        if self.create:
            return Mode.CREATE
        return Mode.READ

    @property
    def service_account_name(self) -> str:
        return service_account_name(self.team)

    @property
    def current_context(self) -> str:
        return self.clusters[0]


def service_account_name(team: str) -> str:
    """Derive the service account name for *team*."""
    return SERVICE_ACCOUNT_TEMPLATE.format(team=team)


def find_config(start: Path | None = None) -> Path | None:
    """Locate the nearest ``serviceuser.yaml`` at or above *start*.

    The search begins in the current directory when *start* is omitted and
    stops at the filesystem root.
    """
    origin = (start or Path.cwd()).resolve()
    for directory in (origin, *origin.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def load_config(
    path: str | Path | None = None,
    *,
    auto_discover: bool = True,
) -> ProjectConfig:
    """Read team-independent defaults for a run.

    An explicit *path* must exist. Without one, the nearest
    ``serviceuser.yaml`` is used when *auto_discover* is set; if none is
    found every field of the returned ``ProjectConfig`` is ``None``.
    """
    if path is None:
        discovered = find_config() if auto_discover else None
        return _parse_config(discovered) if discovered else ProjectConfig()

    explicit = Path(path).resolve()
    if not explicit.is_file():
        raise FileNotFoundError(f"serviceuser config not found: {explicit}")
    return _parse_config(explicit)


def _parse_config(config_path: Path) -> ProjectConfig:
    """Read and parse a YAML config file, resolving relative paths."""
    text = config_path.read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}

    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping in {config_path}, got {type(data).__name__}"
        raise ValueError(msg)

    clusters = data.get("clusters")
    if clusters is not None:
        if isinstance(clusters, str):
            clusters = split_clusters([clusters])
        elif isinstance(clusters, list):
            clusters = tuple(str(c) for c in clusters)
        else:
            msg = f"'clusters' in {config_path} must be a list, got {type(clusters).__name__}"
            raise ValueError(msg)

    kubeconfig = data.get("kubeconfig")
    if kubeconfig is not None:
        kubeconfig = str((config_path.parent / Path(kubeconfig).expanduser()).resolve())

    propagation: dict[str, Any] | None = data.get("propagation")

    return ProjectConfig(
        config_path=config_path,
        clusters=clusters,
        namespace=data.get("namespace"),
        kubeconfig=kubeconfig,
        insecure_skip_tls_verify=data.get("insecure_skip_tls_verify"),
        propagation=(
            PropagationConfig.model_validate(propagation) if propagation is not None else None
        ),
    )


def split_clusters(values: Iterable[str]) -> tuple[str, ...]:
    """Flatten ``["a,b", "c"]`` into ``("a", "b", "c")``, keeping order."""
    clusters: list[str] = []
    for value in values:
        clusters.extend(part.strip() for part in value.split(","))
    return tuple(clusters)


def build_run_config(
    team: str | None,
    *,
    clusters: Iterable[str] | None = None,
    create: bool = False,
    rotate: bool = False,
    revoke: bool = False,
    debug: bool = False,
    namespace: str | None = None,
    kubeconfig: str | None = None,
    project: ProjectConfig | None = None,
) -> RunConfig:
    """Merge explicit options over project config over defaults, then validate.

    Raises:
        ValidationError: If the team is missing, ``revoke`` is combined with
            ``create``/``rotate``, or the cluster list is empty, has blank
            entries or repeats a cluster.
    """
    project = project or ProjectConfig()

    team = (team or "").strip()
    if not team:
        raise ValidationError("team name must be specified")

    if revoke and (create or rotate):
        raise ValidationError("--revoke is mutually exclusive with --create and --rotate")

    resolved = tuple(clusters) if clusters else (
        project.clusters if project.clusters is not None else DEFAULT_CLUSTERS
    )
    if not resolved:
        raise ValidationError("at least one cluster must be specified")
    if any(not c for c in resolved):
        raise ValidationError("cluster names must not be empty")
    seen: set[str] = set()
    for cluster in resolved:
        if cluster in seen:
            raise ValidationError(f"cluster '{cluster}' is listed more than once")
        seen.add(cluster)

    insecure = project.insecure_skip_tls_verify
    return RunConfig(
        team=team,
        clusters=resolved,
        create=create,
        rotate=rotate,
        revoke=revoke,
        debug=debug,
        namespace=namespace or project.namespace or DEFAULT_NAMESPACE,
        kubeconfig=kubeconfig or project.kubeconfig,
        insecure_skip_tls_verify=True if insecure is None else bool(insecure),
        propagation=project.propagation or PropagationConfig(),
    )
