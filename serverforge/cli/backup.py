import click
import logging

from serverforge.forge import ForgeError
from serverforge.forge.backup import BackupManager, load_backup_config
from serverforge.forge.process import CommandRunner
from serverforge.forge.secretstore import SecretStore
from serverforge.models import ForgePaths

logger = logging.getLogger(__name__)


def get_manager(config_file):
    config = load_backup_config(config_file)
    secrets_file = config.secrets_file or ForgePaths().secrets_file
    secrets = SecretStore(secrets_file).load()
    return BackupManager(CommandRunner(), secrets, paths=ForgePaths(backup_config=config_file)), config


@click.group()
def backup():
    """
    Backup job, normally started by the systemd timer.
    """
    pass


@backup.command()
@click.option("-c", "--config", "config_file", default=ForgePaths().backup_config, show_default=True,
              help="backup configuration written by install")
def run(config_file):
    """
    Initialize the repository if needed, take a snapshot and prune old ones.
    """
    try:
        manager, config = get_manager(config_file)
        manager.run(config)
    except (ForgeError, OSError) as e:
        logger.error(f"backup failed: {e}")
        return 1
    return 0


@backup.command()
@click.option("-c", "--config", "config_file", default=ForgePaths().backup_config, show_default=True,
              help="backup configuration written by install")
def snapshot(config_file):
    """
    Take a snapshot without pruning.
    """
    try:
        manager, config = get_manager(config_file)
        manager.snapshot(config)
    except (ForgeError, OSError) as e:
        logger.error(f"snapshot failed: {e}")
        return 1
    return 0


@backup.command()
@click.option("-c", "--config", "config_file", default=ForgePaths().backup_config, show_default=True,
              help="backup configuration written by install")
def prune(config_file):
    """
    Delete snapshots outside the retention policy.
    """
    try:
        manager, config = get_manager(config_file)
        for s in manager.prune(config):
            click.echo(f"deleted {s.name}")
    except (ForgeError, OSError) as e:
        logger.error(f"prune failed: {e}")
        return 1
    return 0
