"""Service account reconciler.

Drives one team's service account in one cluster to the state a run asks
for and reads back its bearer token:

- read:   the account must already exist; fetch it and its token.
- create: create the account unless it exists, then fetch.
- rotate: delete the account (if present) and create it again, which
          invalidates the old token, then fetch.
- revoke: delete the account (if present). Nothing is fetched.

Newly created accounts get their token secret asynchronously, so after a
create the reconciler polls with exponential backoff until the account
carries a secret reference or the propagation timeout expires.
"""

from __future__ import annotations

import base64
import binascii
import logging
import time
from collections.abc import Callable
from typing import Any

from kubernetes import client
from kubernetes.client.exceptions import ApiException

from serviceuser.config import RunConfig
from serviceuser.errors import (
    ClusterApiError,
    IdentityAlreadyExistsError,
    IdentityNotFoundError,
    NoSecretError,
    SecretFetchError,
)
from serviceuser.models import ClusterResult, Mode

logger = logging.getLogger(__name__)

TOKEN_KEY = "token"

# Floor for the poll interval so a zero initial delay still backs off.
_MIN_POLL_INTERVAL = 0.05


class Reconciler:
    """Reconciles the team's service account in a single cluster.

    ``core`` is a ``kubernetes.client.CoreV1Api`` (or anything with the same
    service account and secret methods).
    """

    def __init__(
        self,
        core: Any,
        config: RunConfig,
        *,
        cluster: str,
        _sleep: Callable[[float], None] | None = None,
        _clock: Callable[[], float] | None = None,
    ) -> None:
        self._core = core
        self._config = config
        self._cluster = cluster
        self._sleep = _sleep or time.sleep
        self._clock = _clock or time.monotonic

    @property
    def name(self) -> str:
        return self._config.service_account_name

    @property
    def namespace(self) -> str:
        return self._config.namespace

    def reconcile(self, server: str) -> ClusterResult | None:
        """Run the reconciliation for this cluster.

        Returns the cluster's server address and token, or ``None`` in
        revoke mode.

        Raises:
            ServiceUserError: Any failure scoped to this cluster.
        """
        mode = self._config.mode

        deleted = False
        if mode in (Mode.ROTATE, Mode.REVOKE):
            deleted = self.delete()
            if mode is Mode.REVOKE:
                if deleted:
                    logger.info("revoked access for service account '%s'", self.name)
                return None

        created = False
        if mode is Mode.ROTATE and deleted:
            self._recreate()
            created = True
        elif mode in (Mode.ROTATE, Mode.CREATE):
            created = self.create()

        if created:
            if self._config.create:
                logger.info("created service account '%s'", self.name)
            if self._config.rotate:
                logger.info("rotated token for service account '%s'", self.name)
            secret_name = self._wait_for_secret_ref()
        else:
            secret_name = self.secret_ref(self.get())

        token = self.token(secret_name)
        return ClusterResult(
            cluster=self._cluster,
            server=server,
            token=token,
            namespace=self.namespace,
            service_account=self.name,
        )

    # --- Mutations ---

    def delete(self) -> bool:
        """Delete the service account. Returns ``False`` if it was absent."""
        logger.debug(
            "attempting to delete service account '%s' in namespace %s",
            self.name, self.namespace,
        )
        try:
            self._core.delete_namespaced_service_account(
                name=self.name, namespace=self.namespace,
            )
        except ApiException as exc:
            if exc.status == 404:
                logger.debug("service account '%s' not found", self.name)
                return False
            raise self._api_error("while deleting service account", exc) from exc
        return True

    def create(self) -> bool:
        """Create the service account. Returns ``False`` if it already existed."""
        logger.debug(
            "attempting to create service account '%s' in namespace %s",
            self.name, self.namespace,
        )
        body = client.V1ServiceAccount(
            metadata=client.V1ObjectMeta(name=self.name, namespace=self.namespace),
        )
        try:
            self._core.create_namespaced_service_account(namespace=self.namespace, body=body)
        except ApiException as exc:
            if exc.status == 409:
                existing = IdentityAlreadyExistsError(
                    f"service account '{self.name}' already exists", cluster=self._cluster,
                )
                logger.info("%s", existing)
                return False
            raise self._api_error("while creating service account", exc) from exc
        return True

    # --- Reads ---

    def get(self) -> Any:
        """Read the service account.

        Raises:
            IdentityNotFoundError: If it does not exist.
        """
        logger.debug(
            "attempting to retrieve service account '%s' in namespace %s",
            self.name, self.namespace,
        )
        try:
            return self._core.read_namespaced_service_account(
                name=self.name, namespace=self.namespace,
            )
        except ApiException as exc:
            if exc.status == 404:
                raise IdentityNotFoundError(
                    f"service account '{self.name}' not found in namespace {self.namespace}",
                    cluster=self._cluster,
                ) from exc
            raise self._api_error("while retrieving service account", exc) from exc

    def secret_ref(self, service_account: Any) -> str:
        """Name of the account's first secret reference.

        Raises:
            NoSecretError: If the account has no secret references.
        """
        refs = service_account.secrets or []
        if not refs:
            raise NoSecretError(
                f"no secret associated with service account '{self.name}'",
                cluster=self._cluster,
            )
        if len(refs) > 1:
            logger.debug(
                "service account '%s' has %d secrets, using '%s'",
                self.name, len(refs), refs[0].name,
            )
        return refs[0].name

    def token(self, secret_name: str) -> str:
        """Read and decode the bearer token stored in *secret_name*.

        A secret without a token yields an empty string.

        Raises:
            SecretFetchError: If the secret cannot be read or decoded.
        """
        logger.debug(
            "attempting to retrieve secret '%s' in namespace %s", secret_name, self.namespace,
        )
        try:
            secret = self._core.read_namespaced_secret(name=secret_name, namespace=self.namespace)
        except ApiException as exc:
            raise SecretFetchError(
                f"while retrieving secret token: ({exc.status}) {exc.reason}",
                cluster=self._cluster,
            ) from exc

        encoded = (secret.data or {}).get(TOKEN_KEY)
        if not encoded:
            logger.warning(
                "secret '%s' of service account '%s' has no token", secret_name, self.name,
            )
            return ""
        try:
            return base64.b64decode(encoded, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as exc:
            raise SecretFetchError(
                f"secret '{secret_name}' holds a malformed token: {exc}", cluster=self._cluster,
            ) from exc

    # --- Private ---

    def _wait_for_secret_ref(self) -> str:
        """Poll until the new account has a secret reference or time runs out."""
        propagation = self._config.propagation
        deadline = self._clock() + propagation.timeout
        delay = propagation.initial_delay
        attempt = 0

        while True:
            if delay > 0:
                self._sleep(delay)
            attempt += 1
            try:
                return self.secret_ref(self.get())
            except (IdentityNotFoundError, NoSecretError) as exc:
                remaining = deadline - self._clock()
                if remaining <= 0:
                    raise
                logger.debug("attempt %d: %s, retrying", attempt, exc)
                delay = min(
                    max(delay, _MIN_POLL_INTERVAL) * propagation.backoff,
                    propagation.max_delay,
                    remaining,
                )

    def _recreate(self) -> None:
        """Create the account again after a delete.

        The old account may still be terminating (finalizers), in which case
        the API answers 409. Retries with the propagation backoff and raises
        ``ClusterApiError`` if the conflict outlasts the timeout.
        """
        propagation = self._config.propagation
        deadline = self._clock() + propagation.timeout
        delay = propagation.initial_delay

        while not self.create():
            remaining = deadline - self._clock()
            if remaining <= 0:
                raise ClusterApiError(
                    f"service account '{self.name}' is still terminating after delete",
                    cluster=self._cluster,
                    status=409,
                    reason="Conflict",
                )
            delay = min(max(delay, _MIN_POLL_INTERVAL), propagation.max_delay, remaining)
            logger.debug("service account '%s' still terminating, retrying", self.name)
            self._sleep(delay)
            delay *= propagation.backoff

    def _api_error(self, doing: str, exc: ApiException) -> ClusterApiError:
        return ClusterApiError(
            f"{doing}: ({exc.status}) {exc.reason}",
            cluster=self._cluster,
            status=exc.status,
            reason=exc.reason,
        )
