from .step_10_repository import RepositoryStep
from .step_20_package import InstallPackageStep
from .step_30_cluster_secret import ClusterSecretGuardStep, CookieMismatchError
from .step_40_configure import ConfigureBrokerStep
from .step_45_plugins import EnablePluginsStep
from .step_50_service import ServiceStep
from .step_60_admin_cli import AdminCliStep
from .step_70_users import UsersStep

__all__ = [
    "RepositoryStep",
    "InstallPackageStep",
    "ClusterSecretGuardStep",
    "CookieMismatchError",
    "ConfigureBrokerStep",
    "EnablePluginsStep",
    "ServiceStep",
    "AdminCliStep",
    "UsersStep",
]
