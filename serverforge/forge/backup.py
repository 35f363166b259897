import json
import logging
import os
import sys
from datetime import datetime

import yaml
from pydantic import parse_obj_as

from serverforge.models import BackupConfig, ForgePaths, RetentionPolicy, SecretBundle, Snapshot

from .errors import ConfigError, ForgeError
from .files import write_private_file
from .process import CommandRunner
from .runtime import ContainerRuntime
from .templates import get_jinja_env, render_to

logger = logging.getLogger(__name__)

SNAPSHOT_FORMAT = "%Y-%m-%d_%H-%M"

# rule name -> strftime pattern identifying the period a snapshot belongs to
PERIOD_FORMATS = [
    ("daily", "%Y-%m-%d"),
    ("weekly", "%G-%V"),
    ("monthly", "%Y-%m"),
    ("yearly", "%Y"),
]


def select_retained(snapshots: list[Snapshot], policy: RetentionPolicy) -> list[Snapshot]:
    """
    For every rule keep the newest snapshot of each of the most recent N
    periods. A period whose newest snapshot is already kept by an earlier
    rule still counts as seen but does not use up the rule's quota, so at
    most policy.total snapshots survive.
    """
    ordered = sorted(snapshots, key=lambda s: s.time, reverse=True)
    kept: dict[str, str] = {}

    for rule, pattern in PERIOD_FORMATS:
        quota = getattr(policy, rule)
        if quota <= 0:
            continue
        last_period = None
        count = 0
        for snapshot in ordered:
            period = snapshot.time.strftime(pattern)
            if period == last_period:
                continue
            last_period = period
            if snapshot.name in kept:
                continue
            kept[snapshot.name] = rule
            count += 1
            if count == quota:
                break

    return [s for s in ordered if s.name in kept]


def load_backup_config(path: str) -> BackupConfig:
    try:
        with open(path) as f:
            return parse_obj_as(BackupConfig, yaml.safe_load(f.read()) or {})
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ConfigError(f"cannot load backup configuration {path}: {e}")


class BackupManager:
    """
    Encrypted borg repository for the container volumes, a daily
    snapshot/prune job and the systemd timer that triggers it.
    """

    def __init__(self, runner: CommandRunner, secrets: SecretBundle, paths: ForgePaths | None = None,
                 runtime: ContainerRuntime | None = None) -> None:
        self.runner = runner
        self.secrets = secrets
        self.paths = paths or ForgePaths()
        self.runtime = runtime
        self.jinja_env = get_jinja_env()

    def environment(self, config: BackupConfig) -> dict[str, str]:
        return dict(
            BORG_PASSPHRASE=self.secrets.value(config.passphrase_secret),
            BORG_RELOCATED_REPO_ACCESS_IS_OK="yes",
        )

    def repository_exists(self, config: BackupConfig) -> bool:
        return self.runner.succeeds(["borg", "info", config.repository], env=self.environment(config))

    def ensure_repository(self, config: BackupConfig) -> bool:
        """
        returns True when a new repository was initialized
        """
        if self.repository_exists(config):
            logger.debug(f"backup repository {config.repository} already initialized")
            return False

        os.makedirs(os.path.dirname(config.repository.rstrip("/")), exist_ok=True)
        self.runner.run(["borg", "init", f"--encryption={config.encryption}", config.repository],
                        env=self.environment(config))
        logger.info(f"initialized backup repository {config.repository}")
        return True

    def snapshot(self, config: BackupConfig, now: datetime | None = None) -> Snapshot:
        now = now or datetime.now()
        snapshot = Snapshot(name=now.strftime(SNAPSHOT_FORMAT), time=now)

        cmd = ["borg", "create", "--stats", "--compression", config.compression, "--exclude-caches"]
        for pattern in config.excludes:
            cmd += ["--exclude", pattern]
        cmd.append(f"{config.repository}::{snapshot.name}")
        cmd += config.source_paths

        logger.info(f"creating snapshot {snapshot.name} of {', '.join(config.source_paths)}")
        result = self.runner.run(cmd, env=self.environment(config))
        for line in (result.stdout or b"").decode(errors="replace").splitlines():
            if line.strip():
                logger.info(line)
        return snapshot

    def list_snapshots(self, config: BackupConfig) -> list[Snapshot]:
        result = self.runner.run(["borg", "list", "--json", config.repository], env=self.environment(config))
        archives = json.loads(result.stdout or b"{}").get("archives", [])
        return [Snapshot(name=a["name"], time=datetime.fromisoformat(a["time"])) for a in archives]

    def prune(self, config: BackupConfig) -> list[Snapshot]:
        snapshots = self.list_snapshots(config)
        retained = {s.name for s in select_retained(snapshots, config.retention)}
        removed = [s for s in snapshots if s.name not in retained]

        for snapshot in removed:
            self.runner.run(["borg", "delete", f"{config.repository}::{snapshot.name}"],
                            env=self.environment(config))
            logger.debug(f"deleted snapshot {snapshot.name}")

        if removed:
            self.runner.run(["borg", "compact", config.repository], env=self.environment(config))
        logger.info(f"pruned {len(removed)} snapshots, {len(retained)} retained")
        return removed

    def run(self, config: BackupConfig, now: datetime | None = None) -> Snapshot:
        logger.info(f"starting backup to {config.repository}")
        self.ensure_repository(config)
        snapshot = self.snapshot(config, now=now)
        self.prune(config)
        logger.info(f"backup finished: {snapshot.name}")
        return snapshot

    def write_config(self, config: BackupConfig) -> str:
        data = config.dict()
        data["secrets_file"] = self.secrets.path
        path = write_private_file(self.paths.backup_config,
                                  yaml.safe_dump(data, default_flow_style=False, sort_keys=False))
        logger.info(f"backup configuration saved to {path}")
        return path

    def write_units(self, config: BackupConfig) -> list[str]:
        exec_start = [sys.executable, "-m", "serverforge", "backup", "run", "--config", self.paths.backup_config]
        service = render_to(self.jinja_env, "backup.service.j2",
                            os.path.join(self.paths.systemd_dir, f"{config.unit_name}.service"),
                            exec_start=exec_start)
        timer = render_to(self.jinja_env, "backup.timer.j2",
                          os.path.join(self.paths.systemd_dir, f"{config.unit_name}.timer"),
                          unit_name=config.unit_name, randomized_delay=config.randomized_delay)
        return [service, timer]

    def ensure_schedule(self, config: BackupConfig) -> None:
        if self.runtime is not None and not self.runtime.is_available():
            raise ForgeError("container runtime is not available, backup schedule not installed")

        self.write_config(config)
        self.ensure_repository(config)
        self.write_units(config)
        self.runner.run(["systemctl", "daemon-reload"])
        self.runner.run(["systemctl", "enable", "--now", f"{config.unit_name}.timer"])
        logger.info(f"scheduled daily backup via {config.unit_name}.timer")
