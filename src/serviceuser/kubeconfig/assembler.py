"""Merged kubeconfig assembly.

Collects one cluster, user and context entry per successfully reconciled
cluster, all three named after the cluster, and serializes the result as a
kubeconfig YAML document.
"""

from __future__ import annotations

from typing import TextIO

import yaml

from serviceuser.errors import OutputError
from serviceuser.models import (
    ClusterEntry,
    ClusterResult,
    ContextEntry,
    Kubeconfig,
    NamedCluster,
    NamedContext,
    NamedUser,
    UserEntry,
)


class KubeconfigAssembler:
    """Accumulates cluster results in insertion order."""

    def __init__(self, insecure_skip_tls_verify: bool = True) -> None:
        self._insecure = insecure_skip_tls_verify
        self._results: dict[str, ClusterResult] = {}

    def __len__(self) -> int:
        return len(self._results)

    def __contains__(self, cluster: object) -> bool:
        return cluster in self._results

    def add(self, result: ClusterResult) -> None:
        """Add (or replace) the entries for ``result.cluster``."""
        self._results[result.cluster] = result

    def clear(self) -> None:
        self._results.clear()

    def build(self, current_context: str) -> Kubeconfig:
        """Build the document with *current_context* as the default context."""
        doc = Kubeconfig(current_context=current_context)
        for name, result in self._results.items():
            doc.clusters.append(NamedCluster(
                name=name,
                cluster=ClusterEntry(
                    server=result.server,
                    insecure_skip_tls_verify=True if self._insecure else None,
                ),
            ))
            doc.users.append(NamedUser(name=name, user=UserEntry(token=result.token)))
            doc.contexts.append(NamedContext(
                name=name,
                context=ContextEntry(cluster=name, user=name, namespace=result.namespace),
            ))
        return doc


def render(document: Kubeconfig) -> str:
    """Serialize *document* as kubeconfig YAML.

    Raises:
        OutputError: If serialization fails.
    """
    try:
        return yaml.safe_dump(document.to_dict(), default_flow_style=False, sort_keys=False)
    except yaml.YAMLError as exc:
        raise OutputError(f"while generating output: {exc}") from exc


def write(document: Kubeconfig, stream: TextIO) -> None:
    """Render *document* and write it to *stream* in one call.

    Raises:
        OutputError: If serialization or the write fails.
    """
    text = render(document)
    try:
        stream.write(text)
        stream.flush()
    except OSError as exc:
        raise OutputError(f"while writing output: {exc}") from exc
