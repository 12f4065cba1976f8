"""
STACKCTL - Deployment - Deployment Pipeline

Enchaîne les étapes d'un déploiement complet:

    ConfigLoader -> verrou d'exécution -> ServiceManifest
        -> ResourceProvisioner -> RolloutController -> FailureReporter
        -> CertificateCutover (optionnel)

Chaque classe d'échec est convertie en ExitCode; aucune étape n'est tentée
après un échec bloquant.
"""

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from src.certificates.certbot_client import CertbotClient
from src.certificates.certificate_cutover import CertificateCutover, CutoverLockedError, RollbackError
from src.certificates.interfaces import CutoverResult, ICertificateClient, IReverseProxy
from src.certificates.nginx_proxy import NginxReverseProxy
from src.certificates.pid_lock import PidLock
from src.certificates.proxy_templates import ProxyConfigRenderer
from src.core.config_loader import ConfigLoader, ConfigSourceError, ConfigValidationError
from src.core.interfaces import ConfigBundle, ConfigSource
from src.core.settings import DeploymentSettings
from src.logging.structured_logger import StructuredLogger
from src.provisioning.host_resources import HostResourceChecker
from src.provisioning.interfaces import (
    DirectorySpec,
    IHostResourceChecker,
    NetworkSpec,
    ProvisionResult,
)
from src.provisioning.resource_provisioner import ProvisionError, ResourceProvisioner
from src.runtime.compose_runtime import ComposeRuntime
from src.runtime.interfaces import ICommandRunner, IContainerRuntime
from src.runtime.probes import build_probe

from .failure_reporter import FailureReporter
from .interfaces import ExitCode, ExitStatus, RetryPolicy, RolloutResult, RolloutSummary, Tier
from .rollout_controller import ProbeFactory, RolloutController
from .service_manifest import ManifestError, ServiceManifest


class RunLockedError(Exception):
    """Une autre exécution de l'orchestrateur est en cours."""

    def __init__(self, path: Path, pid: Optional[int]):
        self.path = Path(path)
        self.pid = pid
        super().__init__(f"Another run holds {path} (pid {pid})")


@dataclass
class PipelineOptions:
    """Étapes à exécuter et surcharges de la ligne de commande."""

    env_source: ConfigSource = None
    manifest_path: Optional[Path] = None
    provision: bool = True
    rollout: bool = True
    cutover: bool = False
    force_renewal: bool = False
    staging: Optional[bool] = None
    dry_run: bool = False


@dataclass
class PipelineResult:
    """Résultat d'une exécution du pipeline."""

    exit_code: ExitCode = ExitCode.SUCCESS
    settings: Optional[DeploymentSettings] = None
    plan: List[Dict[str, Any]] = field(default_factory=list)
    provision: Optional[ProvisionResult] = None
    rollout: Optional[RolloutResult] = None
    summary: Optional[RolloutSummary] = None
    cutover: Optional[CutoverResult] = None
    report_path: Optional[Path] = None
    error: Optional[str] = None

    def fail(self, code: ExitCode, error: str) -> "PipelineResult":
        self.exit_code = code
        self.error = error
        return self


class DeploymentPipeline:
    """
    Orchestrateur de bout en bout.

    Les collaborateurs non fournis sont construits depuis les paramètres
    dérivés de la configuration validée.
    """

    def __init__(
        self,
        logger: StructuredLogger,
        config_loader: Optional[ConfigLoader] = None,
        runtime: Optional[IContainerRuntime] = None,
        proxy: Optional[IReverseProxy] = None,
        certificate_client: Optional[ICertificateClient] = None,
        host_checker: Optional[IHostResourceChecker] = None,
        runner: Optional[ICommandRunner] = None,
        probe_factory: ProbeFactory = build_probe,
    ):
        self._logger = logger
        self._log = logger.with_context(component="pipeline")
        self._loader = config_loader or ConfigLoader(logger=logger)
        self._runtime = runtime
        self._proxy = proxy
        self._client = certificate_client
        self._host_checker = host_checker
        self._runner = runner
        self._probe_factory = probe_factory

    async def run(self, options: Optional[PipelineOptions] = None) -> PipelineResult:
        """
        Exécute les étapes demandées.

        Returns:
            PipelineResult dont exit_code reflète la première classe d'échec
            (2 config, 3 provisioning, 4 rollout fatal, 5 bascule, 6 verrou)
        """
        options = options or PipelineOptions()
        result = PipelineResult()

        try:
            bundle = await self._loader.load(options.env_source)
        except (ConfigValidationError, ConfigSourceError) as e:
            self._log.error("Configuration rejected", error=str(e))
            return result.fail(ExitCode.CONFIG_INVALID, str(e))

        settings = self.settings_for(bundle, options)
        result.settings = settings

        lock = PidLock(settings.lock_path, held_error=RunLockedError, logger=self._logger, component="pipeline")
        try:
            lock.acquire()
        except RunLockedError as e:
            self._log.error("Run lock held", path=str(e.path), pid=e.pid)
            return result.fail(ExitCode.LOCKED, str(e))
        except OSError as e:
            self._log.error("Cannot create run lock", path=str(settings.lock_path), error=str(e))
            return result.fail(ExitCode.PROVISION_FAILED, f"Cannot create run lock: {e}")

        try:
            return await self._run_locked(settings, options, result)
        finally:
            lock.release()

    async def _run_locked(
        self,
        settings: DeploymentSettings,
        options: PipelineOptions,
        result: PipelineResult,
    ) -> PipelineResult:
        tiers: List[Tier] = []
        if options.rollout or options.dry_run:
            try:
                tiers = self.load_manifest(settings, options.manifest_path)
            except ManifestError as e:
                self._log.error("Manifest rejected", error=str(e), errors=e.errors)
                return result.fail(ExitCode.CONFIG_INVALID, str(e))
            result.plan = ServiceManifest.plan(tiers)

        if options.dry_run:
            self._log.info("Dry run, nothing changed", tiers=len(tiers))
            return result

        runtime = self._runtime or self.build_runtime(settings)

        if options.provision:
            try:
                result.provision = await self.provision(settings, runtime)
            except ProvisionError as e:
                self._log.error("Provisioning failed", error=str(e), path=e.path)
                return result.fail(ExitCode.PROVISION_FAILED, str(e))

        if options.rollout:
            rollout = await RolloutController(
                runtime,
                self._logger,
                runner=self._runner,
                probe_factory=self._probe_factory,
            ).rollout(tiers)
            result.rollout = rollout

            reporter = FailureReporter(self._logger, reports_dir=settings.reports_dir)
            result.summary = reporter.report(rollout)
            host = result.provision.host if result.provision and result.provision.host else None
            if host is None:
                host = self._host_checker_for(settings).check()
            result.report_path = reporter.write_report(rollout, result.summary, host.to_dict())

            if rollout.status == ExitStatus.FATAL:
                if options.cutover:
                    self._log.warn("Certificate cutover skipped after fatal rollout")
                return result.fail(
                    ExitCode.ROLLOUT_FATAL,
                    f"blocking failure in tier {rollout.halted_tier}",
                )

        if options.cutover:
            return await self._cutover(settings, options, result)

        return result

    async def _cutover(
        self,
        settings: DeploymentSettings,
        options: PipelineOptions,
        result: PipelineResult,
    ) -> PipelineResult:
        try:
            cutover = self.build_cutover(settings)
            result.cutover = await cutover.run(force=options.force_renewal)
        except CutoverLockedError as e:
            self._log.error("Cutover lock held", path=str(e.path), pid=e.pid)
            return result.fail(ExitCode.LOCKED, str(e))
        except RollbackError as e:
            self._log.critical("Cutover rollback failed", error=str(e))
            return result.fail(ExitCode.CUTOVER_FAILED, str(e))
        except OSError as e:
            self._log.error("Cannot create cutover lock", error=str(e))
            return result.fail(ExitCode.CUTOVER_FAILED, f"Cannot create cutover lock: {e}")
        except ValueError as e:
            return result.fail(ExitCode.CONFIG_INVALID, str(e))

        if not result.cutover.success:
            return result.fail(ExitCode.CUTOVER_FAILED, result.cutover.error or "cutover rolled back")
        return result

    @staticmethod
    def settings_for(bundle: ConfigBundle, options: PipelineOptions) -> DeploymentSettings:
        settings = DeploymentSettings.from_bundle(bundle)
        if options.staging is not None:
            settings = dataclasses.replace(settings, staging=options.staging)
        return settings

    @staticmethod
    def load_manifest(settings: DeploymentSettings, path: Optional[Path] = None) -> List[Tier]:
        """Charge le manifeste avec la politique de sonde de la configuration."""
        default_retry = RetryPolicy(
            interval=settings.health_check_interval,
            max_attempts=settings.health_check_retries,
        )
        return ServiceManifest(default_retry=default_retry).load(path or settings.manifest_path)

    async def provision(self, settings: DeploymentSettings, runtime: IContainerRuntime) -> ProvisionResult:
        provisioner = ResourceProvisioner(runtime, self._logger, host_checker=self._host_checker_for(settings))
        directories = [
            DirectorySpec(path=path, mode=mode, owner=settings.owner, group=settings.group)
            for path, mode in settings.layout()
        ]
        return await provisioner.provision(
            directories,
            NetworkSpec(name=settings.network_name, subnet=settings.subnet),
        )

    def build_runtime(self, settings: DeploymentSettings) -> IContainerRuntime:
        return ComposeRuntime(settings.compose_file, project_name=settings.project_name, runner=self._runner)

    def build_cutover(self, settings: DeploymentSettings) -> CertificateCutover:
        """
        Assemble la bascule de certificat.

        Raises:
            ValueError: Aucun domaine configuré
        """
        proxy = self._proxy or NginxReverseProxy(
            settings.proxy_config_path,
            settings.archive_dir,
            self._logger,
            runner=self._runner,
            validate_command=settings.proxy_validate_command,
            reload_command=settings.proxy_reload_command,
        )
        client = self._client or CertbotClient(
            settings.webroot,
            self._logger,
            runner=self._runner,
            binary=settings.certbot_binary,
            letsencrypt_dir=settings.letsencrypt_dir,
            timeout=settings.issue_timeout,
        )
        renderer = ProxyConfigRenderer(settings.domains, settings.webroot, upstream=settings.proxy_upstream)
        return CertificateCutover(
            proxy,
            client,
            renderer,
            self._logger,
            lock_path=settings.cutover_lock_path,
            domains=settings.domains,
            email=settings.email,
            staging=settings.staging,
            renew_before_days=settings.cert_renew_before_days,
            min_valid_days=settings.cert_min_valid_days,
            issue_timeout=settings.issue_timeout,
        )

    def _host_checker_for(self, settings: DeploymentSettings) -> IHostResourceChecker:
        return self._host_checker or HostResourceChecker(
            disk_path=settings.stack_root,
            min_disk_gb=settings.min_disk_gb,
            min_memory_mb=settings.min_memory_mb,
        )
