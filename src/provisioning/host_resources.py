"""
STACKCTL - Provisioning - Host Resources

Checks disque et mémoire avant le démarrage de la stack.
"""

import shutil
from pathlib import Path
from typing import Union

import psutil

from .interfaces import HostSnapshot, IHostResourceChecker, ResourceCheck, ResourceStatus

GIB = 1024**3
MIB = 1024**2


class HostResourceChecker(IHostResourceChecker):
    """
    Disque libre sous le minimum: critique (fatal pour le provisioning).
    Mémoire disponible sous le minimum: simple avertissement.
    """

    def __init__(
        self,
        disk_path: Union[str, Path] = "/",
        min_disk_gb: float = 10,
        min_memory_mb: float = 2048,
    ):
        self._disk_path = Path(disk_path)
        self._min_disk_gb = min_disk_gb
        self._min_memory_mb = min_memory_mb

    def check(self) -> HostSnapshot:
        return HostSnapshot(checks=[self._check_disk(), self._check_memory()])

    def _existing_ancestor(self) -> Path:
        # La racine de la stack peut ne pas encore exister
        path = self._disk_path
        while not path.exists() and path != path.parent:
            path = path.parent
        return path

    def _check_disk(self) -> ResourceCheck:
        """Check disque libre sur le volume de la stack."""
        try:
            usage = shutil.disk_usage(self._existing_ancestor())
        except OSError as e:
            return ResourceCheck(name="disk", status=ResourceStatus.CRITICAL, message=str(e))

        free_gb = round(usage.free / GIB, 2)
        if free_gb < self._min_disk_gb:
            status = ResourceStatus.CRITICAL
            message = f"Only {free_gb} GiB free, {self._min_disk_gb} GiB required"
        else:
            status = ResourceStatus.OK
            message = "Disk OK"

        return ResourceCheck(
            name="disk",
            status=status,
            available=free_gb,
            threshold=self._min_disk_gb,
            unit="GiB",
            message=message,
        )

    def _check_memory(self) -> ResourceCheck:
        """Check mémoire disponible."""
        memory = psutil.virtual_memory()
        available_mb = round(memory.available / MIB, 1)

        if available_mb < self._min_memory_mb:
            status = ResourceStatus.WARNING
            message = f"Only {available_mb} MiB available, {self._min_memory_mb} MiB recommended"
        else:
            status = ResourceStatus.OK
            message = "Memory OK"

        return ResourceCheck(
            name="memory",
            status=status,
            available=available_mb,
            threshold=self._min_memory_mb,
            unit="MiB",
            message=message,
        )
