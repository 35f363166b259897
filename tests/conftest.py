import subprocess

import pytest

from serverforge.forge.retry import RetryExecutor
from serverforge.models import BackupConfig, ForgeConfig, ForgePaths


class FakeRunner:
    """
    Records commands instead of running them. Knows just enough docker to
    remember which containers, volumes and networks were created.

    Containers named in `unstartable` are created by `docker run` but fail to
    start, the way a port conflict leaves them behind.
    """

    def __init__(self, binaries=("docker", "node")):
        self.calls = []
        self.envs = []
        self.inputs = []
        self.rules = []
        self.binaries = set(binaries)
        # name -> {"running": bool, "networks": set}
        self.containers = {}
        self.unstartable = set()
        self.volumes = set()
        self.networks = set()

    def on(self, prefix, returncode=0, output=b""):
        """
        commands starting with prefix answer with returncode and output; later rules win
        """
        self.rules.insert(0, (list(prefix), returncode, output))

    def count(self, prefix):
        return len(self.matching(prefix))

    def matching(self, prefix):
        prefix = list(prefix)
        return [c for c in self.calls if c[:len(prefix)] == prefix]

    def _inspect_container(self, cmd):
        container = self.containers.get(cmd[-1])
        if container is None:
            return 1, b""
        if "State.Running" in cmd[-2]:
            return 0, b"true\n" if container["running"] else b"false\n"
        return 0, " ".join(sorted(container["networks"])).encode() + b"\n"

    def _docker(self, cmd):
        if cmd[:3] == ["docker", "container", "inspect"]:
            return self._inspect_container(cmd)
        if cmd[:3] == ["docker", "volume", "inspect"]:
            return (0 if cmd[3] in self.volumes else 1), b""
        if cmd[:3] == ["docker", "volume", "create"]:
            self.volumes.add(cmd[3])
            return 0, b""
        if cmd[:3] == ["docker", "network", "inspect"]:
            return (0 if cmd[3] in self.networks else 1), b""
        if cmd[:3] == ["docker", "network", "create"]:
            self.networks.add(cmd[3])
            return 0, b""
        if cmd[:3] == ["docker", "network", "connect"]:
            self.containers[cmd[4]]["networks"].add(cmd[3])
            return 0, b""
        if cmd[:2] == ["docker", "run"]:
            name = cmd[cmd.index("--name") + 1]
            networks = {cmd[cmd.index("--network") + 1]} if "--network" in cmd else set()
            running = name not in self.unstartable
            self.containers[name] = dict(running=running, networks=networks)
            return (0 if running else 125), b""
        if cmd[:2] == ["docker", "start"]:
            if cmd[2] in self.unstartable:
                return 1, b""
            self.containers[cmd[2]]["running"] = True
            return 0, b""
        return None

    def run(self, cmd, check=True, env=None, input=None):
        from serverforge.forge.errors import ProcessException

        self.calls.append(list(cmd))
        self.envs.append(dict(env or {}))
        self.inputs.append(input)

        returncode, output = 0, b""
        for prefix, rc, out in self.rules:
            if cmd[:len(prefix)] == prefix:
                returncode, output = rc, out
                break
        else:
            simulated = self._docker(cmd)
            if simulated is not None:
                returncode, output = simulated

        if check and returncode != 0:
            raise ProcessException(list(cmd), returncode, output.decode())
        return subprocess.CompletedProcess(cmd, returncode, stdout=output)

    def succeeds(self, cmd, env=None):
        return self.run(cmd, check=False, env=env).returncode == 0

    def which(self, binary):
        return f"/usr/bin/{binary}" if binary in self.binaries else None


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def retry(sleeps):
    return RetryExecutor(sleep=sleeps.append)


@pytest.fixture
def paths(tmp_path):
    root = tmp_path / "host"
    return ForgePaths(
        secrets_file=str(root / "root" / ".server-secrets"),
        backup_config=str(root / "root" / ".backup-config"),
        inventory_file=str(root / "root" / ".services-config"),
        systemd_dir=str(root / "etc" / "systemd" / "system"),
        logrotate_dir=str(root / "etc" / "logrotate.d"),
        apt_conf_dir=str(root / "etc" / "apt" / "apt.conf.d"),
        apt_sources_dir=str(root / "etc" / "apt" / "sources.list.d"),
        keyrings_dir=str(root / "etc" / "apt" / "keyrings"),
        venv_root=str(root / "opt" / "venvs"),
    )


@pytest.fixture
def config(paths, tmp_path):
    backup = BackupConfig(repository=str(tmp_path / "host" / "opt" / "backups" / "borg-repo"))
    return ForgeConfig(domain="example.org", assume_yes=True, paths=paths, backup=backup)
