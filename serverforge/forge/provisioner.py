import logging
from enum import Enum

from serverforge.models import SecretBundle, ServiceDefinition

from .errors import ProcessException
from .process import CommandRunner
from .retry import RetryExecutor

logger = logging.getLogger(__name__)


RUNNING_FORMAT = "{{.State.Running}}"
NETWORKS_FORMAT = "{{range $name, $_ := .NetworkSettings.Networks}}{{$name}} {{end}}"


class ProvisionOutcome(str, Enum):
    PRESENT = "present"
    STARTED = "started"
    FAILED = "failed"


class ServiceProvisioner:
    """
    Starts one catalogue service as a container.

    A running container under the service name is left alone. One that was
    created but never started (or was stopped) is started again, so a re-run
    picks up where a failed `docker run` left off. Failures are returned as
    ProvisionOutcome.FAILED so the caller can carry on with the next service.
    """

    def __init__(self, runner: CommandRunner, retry: RetryExecutor) -> None:
        self.runner = runner
        self.retry = retry

    def inspect(self, name: str, fmt: str) -> str | None:
        """
        None when no container has that name
        """
        result = self.runner.run(["docker", "container", "inspect", "-f", fmt, name], check=False)
        if result.returncode != 0:
            return None
        return (result.stdout or b"").decode().strip()

    def connect_networks(self, definition: ServiceDefinition) -> list[str]:
        attached = set((self.inspect(definition.name, NETWORKS_FORMAT) or "").split())
        missing = [n for n in definition.networks if n not in attached]
        for network in missing:
            self.runner.run(["docker", "network", "connect", network, definition.name])
            logger.debug(f"{definition} connected to {network}")
        return missing

    def ensure_volume(self, name: str) -> None:
        result = self.runner.run(["docker", "volume", "create", name], check=False)
        if result.returncode != 0:
            if self.runner.succeeds(["docker", "volume", "inspect", name]):
                logger.debug(f"volume {name} already exists")
                return
            raise ProcessException(["docker", "volume", "create", name], result.returncode)

    def pull(self, definition: ServiceDefinition):
        return self.retry.run(lambda: self.runner.run(["docker", "pull", definition.image]),
                              title=f"pull {definition.image}")

    def run_command(self, definition: ServiceDefinition, secrets: SecretBundle) -> tuple[list[str], dict[str, str]]:
        """
        Secret environment values travel through the process environment
        (`-e NAME`), never through the argument list.
        """
        cmd = ["docker", "run", "-d", "--name", definition.name, f"--restart={definition.restart}"]
        for port in definition.ports:
            cmd += ["-p", port.arg()]
        for volume in definition.volumes:
            cmd += ["-v", volume.arg()]
        if definition.networks:
            cmd += ["--network", definition.networks[0]]
        for key, value in definition.environment.items():
            cmd += ["-e", f"{key}={value}"]
        env = secrets.resolve(definition.secret_env)
        for key in env:
            cmd += ["-e", key]
        cmd += definition.extra_args
        cmd.append(definition.image)
        cmd += definition.command
        for flag, value in secrets.resolve(definition.secret_args).items():
            cmd += [flag, value]
        return cmd, env

    def ensure(self, definition: ServiceDefinition, secrets: SecretBundle) -> ProvisionOutcome:
        try:
            running = self.inspect(definition.name, RUNNING_FORMAT)
            if running == "true":
                self.connect_networks(definition)
                logger.info(f"{definition} already running, skipping")
                return ProvisionOutcome.PRESENT

            if running is not None:
                logger.info(f"{definition} exists but is not running, starting it")
                self.connect_networks(definition)
                self.runner.run(["docker", "start", definition.name])
                logger.info(f"{definition} started")
                return ProvisionOutcome.STARTED

            logger.info(f"{definition} installing from {definition.image}")
            for volume in definition.named_volumes:
                self.ensure_volume(volume)

            pulled = self.pull(definition)
            if not pulled:
                logger.warning(f"{definition} image {definition.image} unavailable: {pulled.error}")
                return ProvisionOutcome.FAILED

            cmd, env = self.run_command(definition, secrets)
            self.runner.run(cmd, env=env)
            self.connect_networks(definition)
        except (ProcessException, OSError) as e:
            logger.warning(f"{definition} failed to start: {e}")
            return ProvisionOutcome.FAILED

        logger.info(f"{definition} started")
        return ProvisionOutcome.STARTED
