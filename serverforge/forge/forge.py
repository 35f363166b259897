import logging
import os
import time
from typing import Any, Callable

from pydantic import BaseModel

from serverforge.models import (Catalogue, Download, ForgeConfig, RunState, SecretBundle,
                                ServiceDefinition, StepResult, StepState, load_catalogue)

from .backup import BackupManager
from .errors import FatalError, ForgeError
from .firewall import FirewallConfigurator
from .inventory import InventoryReporter
from .process import CommandRunner
from .provisioner import ProvisionOutcome, ServiceProvisioner
from .retry import RetryExecutor
from .runtime import ContainerRuntime
from .secretstore import SecretStore
from .system import BASIC_PACKAGES, PackageManager
from .templates import get_jinja_env, render_to

logger = logging.getLogger(__name__)

NODESOURCE_URL = "https://deb.nodesource.com/setup_20.x"
GPU_KEY_URL = "https://repositories.intel.com/graphics/intel-graphics.key"
GPU_SOURCE = "deb [arch=amd64 signed-by={keyring}] https://repositories.intel.com/graphics/ubuntu {codename} main"
GPU_PACKAGES = ["intel-oneapi-runtime-opencl", "mesa-va-drivers", "intel-media-va-driver"]


class ForgeCounters(BaseModel):
    steps: int = 0
    services: int = 0
    warnings: int = 0
    time: float = 0.0

    start_time: float = 0.0

    def reset(self):
        self.steps = 0
        self.services = 0
        self.warnings = 0
        self.time = 0
        self.start_time = time.time()

    def stop(self):
        self.time = time.time() - self.start_time

    def __str__(self) -> str:
        return f"<ForgeCounters {self.stats_message()}>"

    def stats_message(self):
        return f"steps: {self.steps} services started: {self.services} warnings: {self.warnings} time: {self.time:.2f}s"


class PipelineStep(BaseModel):
    name: str
    title: str
    action: Callable[[], Any]
    fatal: bool = False
    state: StepState = StepState.NOT_STARTED
    message: str | None = None
    skipped: bool = False

    class Config:
        arbitrary_types_allowed = True

    def __str__(self) -> str:
        return f"<{self.__class__.__name__}:{self.name}>"


class Forge:
    """
    Provisions the host as an ordered list of idempotent steps.

    Each step runs at most once per invocation. A fatal step that fails (or
    any FatalError) aborts the run; other failures mark the step warned and
    the pipeline moves on. There is no rollback, re-running resumes.
    """

    def __init__(self, config: ForgeConfig, runner: CommandRunner | None = None,
                 retry: RetryExecutor | None = None, catalogue: Catalogue | None = None) -> None:
        self.config = config
        self.runner = runner or CommandRunner()
        self.retry = retry or RetryExecutor()
        self.catalogue = catalogue or load_catalogue()
        self.counters = ForgeCounters()
        self.state = RunState.NOT_STARTED
        self.secrets: SecretBundle | None = None
        self.summary: str | None = None
        self.service_outcomes: dict[str, ProvisionOutcome] = {}

        paths = config.paths
        self.packages = PackageManager(self.runner, self.retry, paths.keyrings_dir, paths.apt_sources_dir)
        self.runtime = ContainerRuntime(self.runner, self.packages)
        self.provisioner = ServiceProvisioner(self.runner, self.retry)
        self.firewall = FirewallConfigurator(self.runner)
        self.reporter = InventoryReporter()
        self.jinja_env = get_jinja_env()
        self.steps = self.pipeline()

    def __str__(self):
        return f"<{self.__class__.__name__} {self.config.domain}>"

    def pipeline(self) -> list[PipelineStep]:
        return [
            PipelineStep(name="secrets", title="generate credentials", action=self.ensure_secrets, fatal=True),
            PipelineStep(name="basics", title="install base packages", action=self.install_basics, fatal=True),
            PipelineStep(name="runtime", title="install container runtime", action=self.install_runtime, fatal=True),
            PipelineStep(name="services", title="provision services", action=self.provision_services),
            PipelineStep(name="firewall", title="configure firewall", action=self.configure_firewall, fatal=True),
            PipelineStep(name="hardening", title="enable intrusion bans and upgrades", action=self.harden),
            PipelineStep(name="devstacks", title="install development stacks", action=self.install_dev_stacks),
            PipelineStep(name="backup", title="schedule backups", action=self.setup_backup),
            PipelineStep(name="logrotate", title="configure log rotation", action=self.setup_logrotation),
            PipelineStep(name="accelerators", title="install accelerator drivers", action=self.install_gpu_drivers),
            PipelineStep(name="inventory", title="write inventory", action=self.report_inventory),
        ]

    def step(self, name: str) -> PipelineStep:
        for s in self.steps:
            if s.name == name:
                return s
        raise KeyError(name)

    @property
    def selected_services(self) -> list[ServiceDefinition]:
        exclude = [] if self.config.install_monitoring else ["monitoring"]
        return self.catalogue.select(exclude_groups=exclude)

    @property
    def skipped(self) -> list[str]:
        names = [s.name for s in self.steps if s.skipped]
        if not self.config.install_monitoring:
            names.append("monitoring")
        return names

    @property
    def provisioned_services(self) -> list[ServiceDefinition]:
        return [s for s in self.selected_services
                if self.service_outcomes.get(s.name) in (ProvisionOutcome.PRESENT, ProvisionOutcome.STARTED)]

    @property
    def failed_services(self) -> list[str]:
        return [name for name, outcome in self.service_outcomes.items() if outcome == ProvisionOutcome.FAILED]

    @property
    def degraded(self) -> list[str]:
        return [s.name for s in self.steps if s.state == StepState.WARNED] + self.failed_services

    def run(self) -> RunState:
        self.counters.reset()
        self.state = RunState.RUNNING
        logger.info(f"{self} starting {len(self.steps)} steps")

        for step in self.steps:
            if step.state != StepState.NOT_STARTED:
                continue
            self.run_step(step)
            if step.state == StepState.FAILED:
                self.state = RunState.ABORTED
                break
        else:
            self.state = RunState.COMPLETED

        self.counters.stop()
        logger.info(f"{self} {self.state.value}: {self.counters.stats_message()}")
        for step in self.steps:
            if step.state == StepState.WARNED:
                logger.warning(f"{step.name} degraded: {step.message}")
            elif step.skipped:
                logger.warning(f"{step.name} skipped: {step.message}")
            elif step.state == StepState.NOT_STARTED and self.state == RunState.ABORTED:
                logger.warning(f"{step.name} not attempted")
        return self.state

    def run_step(self, step: PipelineStep) -> StepState:
        step.state = StepState.RUNNING
        logger.info(f"==> {step.title}")
        try:
            result = step.action() or StepResult.satisfied()
        except FatalError as e:
            step.state, step.message = StepState.FAILED, str(e)
        except (ForgeError, OSError) as e:
            if step.fatal:
                step.state, step.message = StepState.FAILED, str(e)
            else:
                step.state, step.message = StepState.WARNED, str(e)
        else:
            step.state, step.message, step.skipped = result.state, result.message, result.skipped

        self.counters.steps += 1
        if step.state == StepState.FAILED:
            logger.error(f"{step.name} failed: {step.message}")
        elif step.state == StepState.WARNED:
            self.counters.warnings += 1
            logger.warning(f"{step.name}: {step.message}")
        return step.state

    def host_address(self) -> str:
        result = self.runner.run(["hostname", "-I"], check=False)
        addresses = (result.stdout or b"").decode().split()
        return addresses[0] if result.returncode == 0 and addresses else self.config.domain

    # steps

    def ensure_secrets(self) -> StepResult:
        store = SecretStore(self.config.paths.secrets_file)
        existed = store.exists()
        self.secrets = store.ensure()
        return StepResult.satisfied("reused existing secrets" if existed else "generated new secrets")

    def install_basics(self) -> StepResult:
        refreshed = self.packages.refresh()
        if not refreshed:
            raise FatalError(f"package index refresh failed after {refreshed.attempts} attempts: {refreshed.error}")
        self.packages.install(BASIC_PACKAGES)
        return StepResult.satisfied()

    def install_runtime(self) -> StepResult:
        installed = self.runtime.install()
        try:
            self.runtime.ensure_networks()
        except ForgeError as e:
            raise FatalError(f"cannot create container networks: {e}") from e
        return StepResult.satisfied("installed docker" if installed else "docker already installed")

    def provision_services(self) -> StepResult:
        self.service_outcomes = {}
        for service in self.selected_services:
            outcome = self.provisioner.ensure(service, self.secrets)
            self.service_outcomes[service.name] = outcome
            if outcome == ProvisionOutcome.STARTED:
                self.counters.services += 1

        failed = self.failed_services
        if failed:
            return StepResult.warned(f"services not started: {', '.join(failed)}")
        return StepResult.satisfied()

    def configure_firewall(self) -> StepResult:
        rules = self.firewall.apply(self.config)
        return StepResult.satisfied(f"{len(rules)} rules")

    def harden(self) -> StepResult:
        self.runner.run(["systemctl", "enable", "--now", "fail2ban"])
        self.packages.install(["unattended-upgrades", "apt-listchanges"])
        render_to(self.jinja_env, "unattended-upgrades.j2",
                  os.path.join(self.config.paths.apt_conf_dir, "52serverforge-unattended-upgrades"))
        return StepResult.satisfied()

    def install_dev_stacks(self) -> StepResult:
        venv = os.path.join(self.config.paths.venv_root, "ai")
        if not os.path.isdir(venv):
            os.makedirs(self.config.paths.venv_root, exist_ok=True)
            self.runner.run(["python3", "-m", "venv", venv])
            self.runner.run([os.path.join(venv, "bin", "pip"), "install", "--upgrade", "pip", "wheel", "setuptools"])

        if self.runner.which("node"):
            logger.info("node already installed")
            return StepResult.satisfied()

        script = self.retry.run(Download(url=NODESOURCE_URL).fetch, title="nodesource setup script")
        if not script:
            return StepResult.warned(f"node.js not installed: {script.error}")
        self.runner.run(["bash", "-s"], input=script.value)
        self.packages.install(["nodejs"], recommends=True)
        return StepResult.satisfied()

    def setup_backup(self) -> StepResult:
        manager = BackupManager(self.runner, self.secrets, paths=self.config.paths, runtime=self.runtime)
        manager.ensure_schedule(self.config.backup)
        return StepResult.satisfied()

    def setup_logrotation(self) -> StepResult:
        render_to(self.jinja_env, "logrotate.j2",
                  os.path.join(self.config.paths.logrotate_dir, "docker-containers"), rotate=7)
        return StepResult.satisfied()

    def install_gpu_drivers(self) -> StepResult:
        if not self.config.install_gpu:
            return StepResult.skip("accelerator drivers not requested")
        self.packages.add_repository("intel-graphics", GPU_KEY_URL, GPU_SOURCE)
        self.packages.install(GPU_PACKAGES, recommends=True)
        return StepResult.satisfied()

    def report_inventory(self) -> StepResult:
        # services that failed to start are listed as degraded, not as endpoints
        record = self.reporter.render(self.config, self.secrets, self.provisioned_services,
                                      host_address=self.host_address(),
                                      skipped=self.skipped, degraded=self.degraded)
        self.reporter.write(record)
        self.summary = self.reporter.summary(record, state="completed" if not self.degraded else "degraded",
                                             backup_unit=self.config.backup.unit_name)
        return StepResult.satisfied()
