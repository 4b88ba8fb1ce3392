"""Orchestrator: reconciles every configured cluster in order.

Lifecycle, per cluster:
  1. Resolve a client for the cluster's kubeconfig context
  2. Reconcile the team's service account
  3. Record the outcome (result, revocation or failure)

Every cluster is attempted even after an earlier one fails. Any failure
fails the whole run and discards the results collected so far, so callers
never receive a kubeconfig that is silently missing clusters.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from serviceuser.cluster.client import ClusterClient, resolve_client
from serviceuser.config import RunConfig
from serviceuser.errors import ServiceUserError
from serviceuser.identity.reconciler import Reconciler
from serviceuser.kubeconfig.assembler import KubeconfigAssembler
from serviceuser.models import ClusterResult, Mode, RunReport

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str, str | None], ClusterClient]
ReconcilerFactory = Callable[..., Reconciler]


class Orchestrator:
    """Runs the reconciler against each cluster of a :class:`RunConfig`."""

    def __init__(
        self,
        config: RunConfig,
        *,
        client_factory: ClientFactory | None = None,
        reconciler_factory: ReconcilerFactory | None = None,
    ) -> None:
        self._config = config
        self._client_factory = client_factory or resolve_client
        self._reconciler_factory = reconciler_factory or Reconciler

    @property
    def config(self) -> RunConfig:
        return self._config

    def run(self) -> RunReport:
        """Reconcile all clusters and return the report.

        Never raises for per-cluster failures; those are logged and
        collected in ``RunReport.failures``.
        """
        config = self._config
        report = RunReport(mode=config.mode, clusters=list(config.clusters))
        assembler = KubeconfigAssembler(
            insecure_skip_tls_verify=config.insecure_skip_tls_verify,
        )

        for cluster in config.clusters:
            logger.info("entering cluster '%s'", cluster)
            try:
                result = self._reconcile_cluster(cluster)
            except ServiceUserError as exc:
                logger.error("cluster '%s': %s", cluster, exc)
                report.failures[cluster] = str(exc)
                continue
            except Exception as exc:
                logger.error("cluster '%s': unexpected error: %s", cluster, exc)
                logger.debug("traceback for cluster '%s'", cluster, exc_info=True)
                report.failures[cluster] = f"unexpected error: {exc}"
                continue

            if result is None:
                report.revoked.append(cluster)
                continue

            report.results[cluster] = result
            assembler.add(result)
            logger.info("successfully generated configuration for cluster '%s'", cluster)

        if not report.ok:
            logger.error(
                "%d of %d clusters failed: %s",
                len(report.failures), len(config.clusters), ", ".join(report.failures),
            )
            assembler.clear()
            return report

        if config.mode is Mode.REVOKE:
            logger.info("successfully revoked keys")
            return report

        report.kubeconfig = assembler.build(current_context=config.current_context)
        return report

    def _reconcile_cluster(self, cluster: str) -> ClusterResult | None:
        handle = self._client_factory(cluster, self._config.kubeconfig)
        try:
            reconciler = self._reconciler_factory(handle.core, self._config, cluster=cluster)
            return reconciler.reconcile(handle.server)
        finally:
            handle.close()
