"""
STACKCTL: Provisioning

Préparation idempotente de l'hôte: répertoires (mode, propriétaire),
réseau isolé, ressources disque/mémoire.
"""

from .host_resources import HostResourceChecker
from .interfaces import (
    DirectoryAction,
    DirectorySpec,
    HostSnapshot,
    IHostResourceChecker,
    IResourceProvisioner,
    NetworkSpec,
    ProvisionResult,
    ResourceCheck,
    ResourceStatus,
)
from .resource_provisioner import (
    HostResourceError,
    ProvisionError,
    ResourceProvisioner,
)

__all__ = [
    # Enums
    "ResourceStatus",
    "DirectoryAction",
    # Dataclasses
    "ResourceCheck",
    "HostSnapshot",
    "DirectorySpec",
    "NetworkSpec",
    "ProvisionResult",
    # Interfaces
    "IHostResourceChecker",
    "IResourceProvisioner",
    # Implementations
    "HostResourceChecker",
    "ResourceProvisioner",
    # Exceptions
    "ProvisionError",
    "HostResourceError",
]
