import logging
import os

from .errors import FatalError, ForgeError, ProcessException
from .process import CommandRunner
from .system import PackageManager

logger = logging.getLogger(__name__)

DOCKER_KEY_URL = "https://download.docker.com/linux/ubuntu/gpg"
DOCKER_SOURCE = "deb [arch={arch} signed-by={keyring}] https://download.docker.com/linux/ubuntu {codename} stable"
DOCKER_PACKAGES = ["docker-ce", "docker-ce-cli", "containerd.io", "docker-buildx-plugin", "docker-compose-plugin"]

NETWORKS = ["backend", "frontend"]


class ContainerRuntime:
    """
    Docker engine installation; every service step depends on it, so any
    failure here is fatal.
    """

    def __init__(self, runner: CommandRunner, packages: PackageManager) -> None:
        self.runner = runner
        self.packages = packages

    def is_installed(self) -> bool:
        return self.runner.which("docker") is not None

    def is_available(self) -> bool:
        return self.is_installed() and self.runner.succeeds(["docker", "info"])

    def install(self) -> bool:
        """
        returns False when the engine was already present
        """
        if self.is_installed():
            logger.info("docker already installed")
            return False

        logger.info("installing docker engine")
        try:
            self.packages.add_repository("docker", DOCKER_KEY_URL, DOCKER_SOURCE)
            self.packages.install(DOCKER_PACKAGES, recommends=True)
            self.runner.run(["systemctl", "enable", "--now", "docker"])
        except ForgeError as e:
            raise FatalError(f"docker installation failed: {e}") from e

        sudo_user = os.environ.get("SUDO_USER")
        if sudo_user:
            self.runner.run(["usermod", "-aG", "docker", sudo_user])
            logger.info(f"added {sudo_user} to the docker group")
        return True

    def ensure_network(self, name: str) -> None:
        if self.runner.succeeds(["docker", "network", "inspect", name]):
            logger.debug(f"network {name} already exists")
            return
        result = self.runner.run(["docker", "network", "create", name], check=False)
        if result.returncode != 0 and not self.runner.succeeds(["docker", "network", "inspect", name]):
            raise ProcessException(["docker", "network", "create", name], result.returncode)
        logger.info(f"created network {name}")

    def ensure_networks(self, names: list[str] = NETWORKS) -> None:
        for name in names:
            self.ensure_network(name)
