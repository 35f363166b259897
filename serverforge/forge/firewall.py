import logging

from serverforge.models import FirewallRule, ForgeConfig

from .process import CommandRunner

logger = logging.getLogger(__name__)

PUBLIC_PORTS = [
    (22, "SSH"),
    (80, "HTTP"),
    (443, "HTTPS"),
]

# administrative ports, opened to the trusted scope only
TRUSTED_PORTS = [
    (22, "SSH from trusted scope"),
    (9443, "Portainer from trusted scope"),
    (8443, "Code-server from trusted scope"),
    (3000, "Grafana from trusted scope"),
    (9090, "Prometheus from trusted scope"),
    (81, "NPM admin from trusted scope"),
]

ADMIN_PANEL_PORT = 9090


def derive_rules(trusted_scope: str | None, panel_enabled: bool) -> list[FirewallRule]:
    """
    The complete inbound rule set for a host; depends on nothing but the arguments.
    """
    rules = [FirewallRule(port=port, label=label) for port, label in PUBLIC_PORTS]

    if trusted_scope:
        rules += [FirewallRule(port=port, source=trusted_scope, label=label) for port, label in TRUSTED_PORTS]

    if panel_enabled:
        # TODO: scope the admin panel to trusted_scope like the other administrative ports
        rules.append(FirewallRule(port=ADMIN_PANEL_PORT, label="Cockpit"))

    return rules


class FirewallConfigurator:
    """
    Rebuilds the ufw rule table from scratch on every run.
    """

    def __init__(self, runner: CommandRunner) -> None:
        self.runner = runner

    def plan(self, config: ForgeConfig) -> list[FirewallRule]:
        return derive_rules(config.trusted_scope, config.enable_admin_panel)

    def apply(self, config: ForgeConfig) -> list[FirewallRule]:
        rules = self.plan(config)

        if config.enable_admin_panel:
            logger.warning(f"admin panel port {ADMIN_PANEL_PORT} is opened to every source, not only the trusted scope")

        self.runner.run(["ufw", "--force", "reset"])
        self.runner.run(["ufw", "default", "deny", "incoming"])
        self.runner.run(["ufw", "default", "allow", "outgoing"])

        for rule in rules:
            self.runner.run(["ufw"] + rule.ufw_args())
            logger.debug(f"allowed {rule}")

        self.runner.run(["ufw", "--force", "enable"])
        logger.info(f"firewall enabled with {len(rules)} rules")
        return rules
