import logging
import os
import subprocess

from serverforge.models import Download

from .errors import ForgeError
from .process import CommandRunner
from .retry import RetryExecutor, RetryResult

logger = logging.getLogger(__name__)

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}

BASIC_PACKAGES = [
    "curl", "gnupg", "ca-certificates", "lsb-release", "git", "ufw", "fail2ban",
    "software-properties-common", "python3-pip", "python3-venv",
    "htop", "ncdu", "tree", "jq", "borgbackup", "logrotate",
    "apt-transport-https",
]


class PackageManager:
    """
    apt wrapper; index refreshes and key downloads go through the retry executor
    """

    def __init__(self, runner: CommandRunner, retry: RetryExecutor, keyrings_dir: str, sources_dir: str) -> None:
        self.runner = runner
        self.retry = retry
        self.keyrings_dir = keyrings_dir
        self.sources_dir = sources_dir

    def refresh(self) -> RetryResult:
        return self.retry.run(lambda: self.runner.run(["apt-get", "update"], env=APT_ENV),
                              title="package index refresh")

    def install(self, packages: list[str], recommends: bool = False) -> subprocess.CompletedProcess:
        cmd = ["apt-get", "install", "-y"]
        if not recommends:
            cmd.append("--no-install-recommends")
        logger.info(f"installing {' '.join(packages)}")
        return self.runner.run(cmd + packages, env=APT_ENV)

    def architecture(self) -> str:
        return self.runner.run(["dpkg", "--print-architecture"]).stdout.decode().strip()

    def codename(self) -> str:
        return self.runner.run(["lsb_release", "-cs"]).stdout.decode().strip()

    def keyring_path(self, name: str) -> str:
        return os.path.join(self.keyrings_dir, f"{name}.gpg")

    def fetch_key(self, name: str, url: str) -> RetryResult:
        keyring = self.keyring_path(name)

        def fetch():
            key = Download(url=url).fetch()
            self.runner.run(["gpg", "--dearmor", "--yes", "-o", keyring], input=key)
            return keyring

        os.makedirs(self.keyrings_dir, mode=0o755, exist_ok=True)
        return self.retry.run(fetch, title=f"signing key {name}")

    def add_repository(self, name: str, key_url: str, line: str) -> None:
        """
        line is an apt source with {keyring} {arch} and {codename} placeholders
        """
        if not self.fetch_key(name, key_url):
            raise ForgeError(f"cannot retrieve signing key for {name} repository")

        source = line.format(keyring=self.keyring_path(name), arch=self.architecture(), codename=self.codename())
        os.makedirs(self.sources_dir, exist_ok=True)
        path = os.path.join(self.sources_dir, f"{name}.list")
        with open(path, "w") as f:
            f.write(source + "\n")
        logger.info(f"registered {name} repository in {path}")

        if not self.refresh():
            raise ForgeError(f"package index refresh failed after adding {name} repository")
