import click
import logging

from serverforge.forge import FatalError
from serverforge.forge.firewall import derive_rules
from serverforge.models import load_config

logger = logging.getLogger(__name__)


@click.group()
def firewall():
    """
    Firewall rule set.
    """
    pass


@firewall.command()
@click.option("-t", "--trusted-ip", "trusted_scope", help="Trusted IP/CIDR [env: TRUSTED_IP]", default=None)
@click.option("--cockpit", "enable_admin_panel", is_flag=True, help="Include the Cockpit port")
@click.option("-c", "--config", "config_file", help="YAML configuration file", default=None)
def plan(config_file, **kwargs):
    """
    Print the rules install would apply, without touching ufw.
    """
    try:
        config = load_config(config_file, **{k: v for k, v in kwargs.items() if v not in (None, False)})
    except FatalError as e:
        logger.error(str(e))
        return 1

    for rule in derive_rules(config.trusted_scope, config.enable_admin_panel):
        click.echo(str(rule))
    return 0
