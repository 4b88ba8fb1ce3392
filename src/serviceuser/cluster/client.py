"""Cluster client factory.

Resolves one kubeconfig context into an isolated ``kubernetes`` API client.
Each call is independent: ``new_client_from_config`` builds its own
``Configuration`` and never touches the library's global default, so
resolving several clusters in one process cannot leak credentials between
them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import yaml
from kubernetes import client
from kubernetes.config import ConfigException, new_client_from_config

from serviceuser.errors import ConnectionConfigError

logger = logging.getLogger(__name__)


@dataclass
class ClusterClient:
    """A Kubernetes API handle bound to one cluster."""

    name: str
    server: str
    core: Any
    """A ``kubernetes.client.CoreV1Api``."""

    api_client: Any = None

    def close(self) -> None:
        if self.api_client is not None:
            self.api_client.close()


def resolve_client(cluster: str, kubeconfig: str | None = None) -> ClusterClient:
    """Build a client for the kubeconfig context named *cluster*.

    *kubeconfig* is the base credential source. When ``None`` the kubernetes
    client falls back to ``$KUBECONFIG`` and then ``~/.kube/config``.

    Raises:
        ConnectionConfigError: If the file is missing or malformed, or has
            no context named *cluster*.
    """
    logger.debug("resolving context '%s' from %s", cluster, kubeconfig or "default kubeconfig")
    try:
        api_client = new_client_from_config(config_file=kubeconfig, context=cluster)
    except ConfigException as exc:
        raise ConnectionConfigError(
            f"cannot load context '{cluster}': {exc}", cluster=cluster,
        ) from exc
    except (OSError, yaml.YAMLError) as exc:
        raise ConnectionConfigError(
            f"cannot read kubeconfig for context '{cluster}': {exc}", cluster=cluster,
        ) from exc

    server = api_client.configuration.host
    if not server:
        api_client.close()
        raise ConnectionConfigError(
            f"context '{cluster}' does not define a server address", cluster=cluster,
        )

    return ClusterClient(
        name=cluster,
        server=server,
        core=client.CoreV1Api(api_client),
        api_client=api_client,
    )
