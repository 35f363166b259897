import click
import coloredlogs, logging
import os, sys

logger = logging.getLogger(__name__)

coloredlogs.install(level='DEBUG' if os.environ.get("DEBUG") else 'INFO', fmt='%(asctime)s %(levelname)s %(message)s')


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
def cli():
    pass


from .install import install
from .firewall import firewall
from .backup import backup

cli.add_command(install)
cli.add_command(firewall)
cli.add_command(backup)


def main(args=None):
    """
    console entry point; usage errors exit with 1 like every other fatal precondition
    """
    try:
        rv = cli.main(args=args, prog_name="serverforge", standalone_mode=False)
    except click.exceptions.Abort:
        click.echo("Aborted!", err=True)
        sys.exit(1)
    except click.ClickException as e:
        e.show()
        sys.exit(1)
    sys.exit(rv if isinstance(rv, int) else 0)
