"""Tests for the multi-cluster orchestrator."""

from __future__ import annotations

import functools
import logging

import pytest

from serviceuser.cluster.client import ClusterClient
from serviceuser.errors import ConnectionConfigError
from serviceuser.identity.reconciler import Reconciler
from serviceuser.models import Mode
from serviceuser.runner.orchestrator import Orchestrator
from tests.fakes import FakeCoreV1Api, make_config

SA = "serviceuser-payments"


class _Clients:
    """Client factory over a dict of fake clusters; unknown names fail to resolve."""

    def __init__(self, *names: str) -> None:
        self.cores = {name: FakeCoreV1Api() for name in names}
        self.resolved: list[str] = []
        self.kubeconfigs: list[str | None] = []

    def __call__(self, cluster: str, kubeconfig: str | None) -> ClusterClient:
        self.resolved.append(cluster)
        self.kubeconfigs.append(kubeconfig)
        if cluster not in self.cores:
            raise ConnectionConfigError(f"cannot load context '{cluster}'", cluster=cluster)
        return ClusterClient(
            name=cluster, server=f"https://{cluster}.example.com", core=self.cores[cluster],
        )


def _orchestrator(clients: _Clients, **overrides) -> Orchestrator:
    return Orchestrator(
        make_config(**overrides),
        client_factory=clients,
        reconciler_factory=functools.partial(Reconciler, _sleep=lambda _: None),
    )


class TestCreateRun:
    def test_creates_on_every_cluster(self):
        clients = _Clients("a", "b")
        report = _orchestrator(clients, create=True).run()

        assert report.ok
        assert report.mode is Mode.CREATE
        assert list(report.results) == ["a", "b"]
        assert clients.cores["a"].exists(SA)
        assert clients.cores["b"].exists(SA)

        doc = report.kubeconfig
        assert doc is not None
        assert doc.context_names() == ["a", "b"]
        assert doc.current_context == "a"
        assert doc.clusters[1].cluster.server == "https://b.example.com"
        assert doc.token_for("a") == clients.cores["a"].current_token(SA)

    def test_create_twice_same_outcome(self):
        clients = _Clients("a", "b")
        first = _orchestrator(clients, create=True).run()
        second = _orchestrator(clients, create=True).run()
        assert second.ok
        assert first.kubeconfig == second.kubeconfig

    def test_current_context_is_first_configured(self):
        clients = _Clients("x", "y", "z")
        for core in clients.cores.values():
            core.seed(SA)
        report = _orchestrator(clients, clusters=("z", "x", "y")).run()
        assert report.kubeconfig.current_context == "z"
        assert report.kubeconfig.context_names() == ["z", "x", "y"]

    def test_passes_kubeconfig_path(self):
        clients = _Clients("a")
        _orchestrator(clients, clusters=("a",), create=True, kubeconfig="/tmp/kc").run()
        assert clients.kubeconfigs == ["/tmp/kc"]


class TestFailures:
    def test_read_missing_on_one_cluster_discards_all(self):
        clients = _Clients("a", "b")
        clients.cores["a"].seed(SA)

        report = _orchestrator(clients).run()

        assert not report.ok
        assert list(report.failures) == ["b"]
        assert "not found" in report.failures["b"]
        assert report.kubeconfig is None

    def test_failure_does_not_stop_later_clusters(self):
        clients = _Clients("a", "c")
        report = _orchestrator(clients, clusters=("a", "b", "c"), create=True).run()

        assert clients.resolved == ["a", "b", "c"]
        assert clients.cores["c"].exists(SA)
        assert list(report.failures) == ["b"]
        assert report.kubeconfig is None

    def test_all_failures_recorded(self):
        clients = _Clients()
        report = _orchestrator(clients).run()
        assert list(report.failures) == ["a", "b"]

    def test_unexpected_error_is_scoped_to_cluster(self):
        clients = _Clients("a", "b")
        clients.cores["b"].seed(SA)

        def boom(**_):
            raise RuntimeError("socket hang up")

        clients.cores["a"].read_namespaced_service_account = boom
        report = _orchestrator(clients).run()

        assert list(report.failures) == ["a"]
        assert "socket hang up" in report.failures["a"]
        assert "b" in report.results
        assert report.kubeconfig is None

    def test_failures_logged_with_cluster_name(self, caplog):
        caplog.set_level(logging.INFO, logger="serviceuser")
        _orchestrator(_Clients("a"), clusters=("a", "b")).run()
        errors = [r.getMessage() for r in caplog.records if r.levelno == logging.ERROR]
        assert any("cluster 'a'" in m for m in errors)
        assert any("cluster 'b'" in m for m in errors)


class TestRevokeRun:
    def test_revoke_deletes_and_emits_nothing(self):
        clients = _Clients("a", "b")
        clients.cores["a"].seed(SA)

        report = _orchestrator(clients, revoke=True).run()

        assert report.ok
        assert report.mode is Mode.REVOKE
        assert report.revoked == ["a", "b"]
        assert report.results == {}
        assert report.kubeconfig is None
        assert not clients.cores["a"].exists(SA)

    def test_revoke_failure(self):
        clients = _Clients("a")
        report = _orchestrator(clients, revoke=True).run()
        assert not report.ok
        assert report.revoked == ["a"]
        assert list(report.failures) == ["b"]


class TestRotateRun:
    def test_rotate_changes_tokens(self):
        clients = _Clients("a", "b")
        for core in clients.cores.values():
            core.seed(SA, token="old")

        report = _orchestrator(clients, rotate=True).run()

        assert report.ok
        for name in ("a", "b"):
            assert report.kubeconfig.token_for(name) != "old"
            assert report.kubeconfig.token_for(name) == clients.cores[name].current_token(SA)


@pytest.mark.parametrize("mode", ["create", "rotate"])
def test_closes_clients(mode):
    closed: list[str] = []

    class Closing(ClusterClient):
        def close(self) -> None:
            closed.append(self.name)

    core = FakeCoreV1Api()

    def factory(cluster, kubeconfig):
        return Closing(name=cluster, server="https://x", core=core)

    Orchestrator(
        make_config(clusters=("a",), **{mode: True}),
        client_factory=factory,
        reconciler_factory=functools.partial(Reconciler, _sleep=lambda _: None),
    ).run()
    assert closed == ["a"]
