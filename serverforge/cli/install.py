import click
import logging
import os, sys

from serverforge.forge import Forge, FatalError
from serverforge.forge.firewall import derive_rules
from serverforge.models import RunState, load_config

logger = logging.getLogger(__name__)


@click.command()
@click.option("-d", "--domain", help="Domain for the server [env: DOMAIN_NAME]", default=None)
@click.option("-t", "--trusted-ip", "trusted_scope", help="Trusted IP/CIDR for administrative ports [env: TRUSTED_IP]",
              default=None)
@click.option("--cockpit", "enable_admin_panel", is_flag=True, help="Enable the Cockpit web admin panel")
@click.option("--gpu", "install_gpu", is_flag=True, help="Install Intel GPU drivers")
@click.option("--no-monitoring", is_flag=True, help="Skip the monitoring stack")
@click.option("-y", "--yes", "assume_yes", is_flag=True, help="Run without interactive questions")
@click.option("-c", "--config", "config_file", help="YAML configuration file", default=None)
def install(config_file, no_monitoring: bool, **kwargs):
    """
    Provision this host: credentials, docker services, firewall, backups.
    """
    if os.geteuid() != 0:
        logger.error("run as root or with sudo")
        return 1

    # unset options and flags left off defer to the config file and environment
    overrides = {k: v for k, v in kwargs.items() if v not in (None, False)}
    if no_monitoring:
        overrides["install_monitoring"] = False

    try:
        config = load_config(config_file, **overrides)
    except FatalError as e:
        logger.error(str(e))
        return 1

    if not config.assume_yes:
        rules = derive_rules(config.trusted_scope, config.enable_admin_panel)
        click.echo(f"Provisioning {config.domain} with {len(rules)} firewall rules "
                   f"(trusted scope: {config.trusted_scope or 'none'}, "
                   f"monitoring: {'yes' if config.install_monitoring else 'no'})")
        click.confirm("Continue?", abort=True)

    logger.info(f"starting automated installation for {config.domain}")
    forge = Forge(config)
    state = forge.run()

    if forge.summary:
        click.echo(forge.summary)

    if state != RunState.COMPLETED:
        logger.error("installation aborted, fix the failed step and run again")
        return 1
    return 0
