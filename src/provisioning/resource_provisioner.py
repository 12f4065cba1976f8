"""
STACKCTL - Provisioning - Resource Provisioner

Prépare l'hôte avant tout démarrage de service:
    1. Runtime de conteneurs joignable
    2. Ressources hôte (disque critique, mémoire en avertissement)
    3. Répertoires avec mode et propriétaire (modifiés seulement si différents)
    4. Réseau isolé (réutilisé s'il existe)

Toute erreur de permission est fatale: aucun service ne démarre sur un
système de fichiers mal préparé.
"""

import grp
import os
import pwd
import shutil
import stat
from typing import Optional, Sequence, Tuple

from src.logging.structured_logger import StructuredLogger
from src.runtime.compose_runtime import ContainerRuntimeError
from src.runtime.interfaces import IContainerRuntime

from .host_resources import HostResourceChecker
from .interfaces import (
    DirectoryAction,
    DirectorySpec,
    IHostResourceChecker,
    IResourceProvisioner,
    NetworkSpec,
    ProvisionResult,
)


class ProvisionError(Exception):
    """Erreur fatale de provisioning (avant rollout)."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(message)


class HostResourceError(ProvisionError):
    """Ressource hôte sous le seuil critique."""

    pass


class ResourceProvisioner(IResourceProvisioner):
    """Provisioning idempotent: une seconde exécution est un no-op."""

    def __init__(
        self,
        runtime: IContainerRuntime,
        logger: StructuredLogger,
        host_checker: Optional[IHostResourceChecker] = None,
    ):
        self._runtime = runtime
        self._log = logger.with_context(component="provisioner")
        self._host_checker = host_checker or HostResourceChecker()

    async def provision(
        self,
        paths: Sequence[DirectorySpec],
        network: Optional[NetworkSpec] = None,
    ) -> ProvisionResult:
        """
        Garantit répertoires et réseau.

        Args:
            paths: Répertoires à garantir
            network: Réseau isolé (optionnel)

        Returns:
            ProvisionResult (actions par répertoire, réseau, snapshot hôte)

        Raises:
            ProvisionError: Runtime injoignable, permission refusée, réseau
                impossible à créer
            HostResourceError: Disque libre sous le minimum
        """
        result = ProvisionResult()

        if not await self._runtime.check_available():
            raise ProvisionError("Container runtime is not reachable")

        result.host = self._host_checker.check()
        for check in result.host.warnings:
            self._log.warn(check.message or check.name, resource=check.name)
            result.warnings.append(check.message or check.name)
        for check in result.host.critical:
            self._log.critical(check.message or check.name, resource=check.name)
            raise HostResourceError(check.message or f"{check.name} below minimum")

        for spec in paths:
            action = self.ensure_directory(spec)
            result.directories[str(spec.path)] = action
            if action != DirectoryAction.UNCHANGED:
                self._log.info("Directory " + action.value, path=str(spec.path), mode=oct(spec.mode))

        if network is not None:
            try:
                result.network = await self._runtime.ensure_network(network.name, network.subnet)
            except ContainerRuntimeError as e:
                raise ProvisionError(f"Cannot create network {network.name}: {e}")

            if result.network.subnet_conflict:
                message = (
                    f"Network {network.name} exists with subnet(s) "
                    f"{', '.join(result.network.subnets)}, expected {network.subnet}; reusing it"
                )
                self._log.warn(message, network=network.name)
                result.warnings.append(message)
            elif result.network.created:
                self._log.info("Network created", network=network.name, subnet=network.subnet)

        self._log.info(
            "Provisioning complete",
            changed=result.changed,
            directories=len(result.directories),
        )
        return result

    def ensure_directory(self, spec: DirectorySpec) -> DirectoryAction:
        """
        Crée le répertoire si absent; corrige mode et propriétaire s'ils diffèrent.

        Raises:
            ProvisionError: Si le chemin existe sans être un répertoire, ou
                sur erreur de permission
        """
        path = spec.path
        action = DirectoryAction.UNCHANGED

        try:
            if path.exists() and not path.is_dir():
                raise ProvisionError(f"{path} exists and is not a directory", path=str(path))

            if not path.exists():
                path.mkdir(parents=True, exist_ok=True)
                action = DirectoryAction.CREATED

            current = path.stat()
            if stat.S_IMODE(current.st_mode) != spec.mode:
                os.chmod(path, spec.mode)
                action = action if action == DirectoryAction.CREATED else DirectoryAction.UPDATED

            uid, gid = self._resolve_owner(spec)
            if (uid != -1 and current.st_uid != uid) or (gid != -1 and current.st_gid != gid):
                shutil.chown(path, user=spec.owner, group=spec.group)
                action = action if action == DirectoryAction.CREATED else DirectoryAction.UPDATED

        except PermissionError as e:
            self._log.error("Permission denied", path=str(path), error=str(e))
            raise ProvisionError(f"Permission denied on {path}: {e}", path=str(path))
        except OSError as e:
            raise ProvisionError(f"Cannot prepare {path}: {e}", path=str(path))

        return action

    @staticmethod
    def _resolve_owner(spec: DirectorySpec) -> Tuple[int, int]:
        """uid/gid cibles, -1 si non configuré."""
        try:
            uid = pwd.getpwnam(spec.owner).pw_uid if spec.owner else -1
            gid = grp.getgrnam(spec.group).gr_gid if spec.group else -1
        except KeyError as e:
            raise ProvisionError(f"Unknown operator account: {e}")
        return uid, gid
