"""serviceuser: per-team Kubernetes service accounts and merged kubeconfigs."""

__version__ = "0.3.0"

from serviceuser.config import (  # noqa: E402
    DEFAULT_CLUSTERS,
    ProjectConfig,
    PropagationConfig,
    RunConfig,
    build_run_config,
    find_config,
    load_config,
    service_account_name,
)
from serviceuser.errors import (  # noqa: E402
    ClusterApiError,
    ConnectionConfigError,
    IdentityAlreadyExistsError,
    IdentityNotFoundError,
    NoSecretError,
    OutputError,
    SecretFetchError,
    ServiceUserError,
    ValidationError,
)
from serviceuser.models import ClusterResult, Kubeconfig, Mode, RunReport  # noqa: E402

__all__ = [
    "ClusterApiError",
    "ClusterResult",
    "ConnectionConfigError",
    "DEFAULT_CLUSTERS",
    "IdentityAlreadyExistsError",
    "IdentityNotFoundError",
    "Kubeconfig",
    "Mode",
    "NoSecretError",
    "OutputError",
    "ProjectConfig",
    "PropagationConfig",
    "RunConfig",
    "RunReport",
    "SecretFetchError",
    "ServiceUserError",
    "ValidationError",
    "build_run_config",
    "find_config",
    "load_config",
    "service_account_name",
    "__version__",
]
