import pytest

from serverforge.forge.errors import ConfigError
from serverforge.forge.firewall import ADMIN_PANEL_PORT, FirewallConfigurator, derive_rules
from serverforge.models import ForgeConfig, load_config


def rule_set(rules):
    return {(r.port, r.protocol, r.source) for r in rules}


def test_without_trusted_scope_only_public_ports_open():
    assert rule_set(derive_rules(None, False)) == {(22, "tcp", None), (80, "tcp", None), (443, "tcp", None)}


def test_trusted_scope_restricts_console_ports():
    rules = derive_rules("10.0.0.0/24", False)

    public = {(22, "tcp", None), (80, "tcp", None), (443, "tcp", None)}
    scoped = {(port, "tcp", "10.0.0.0/24") for port in (22, 9443, 8443, 3000, 9090, 81)}
    assert rule_set(rules) == public | scoped
    assert all(r.source in (None, "10.0.0.0/24") for r in rules)


def test_admin_panel_is_unscoped():
    rules = derive_rules("10.0.0.0/24", True)
    panel = [r for r in rules if r.label == "Cockpit"]

    assert len(panel) == 1
    assert panel[0].port == ADMIN_PANEL_PORT
    assert panel[0].source is None


@pytest.mark.parametrize("scope,panel", [(None, False), (None, True), ("10.0.0.0/24", False), ("192.168.1.0/24", True)])
def test_rules_are_a_function_of_inputs(scope, panel):
    assert derive_rules(scope, panel) == derive_rules(scope, panel)


def test_apply_resets_before_rebuilding(runner):
    config = ForgeConfig(trusted_scope="10.0.0.0/24")
    FirewallConfigurator(runner).apply(config)

    assert runner.calls[0] == ["ufw", "--force", "reset"]
    assert runner.calls[1] == ["ufw", "default", "deny", "incoming"]
    assert runner.calls[2] == ["ufw", "default", "allow", "outgoing"]
    assert runner.calls[-1] == ["ufw", "--force", "enable"]
    assert ["ufw", "allow", "22/tcp", "comment", "SSH"] in runner.calls
    assert ["ufw", "allow", "from", "10.0.0.0/24", "to", "any", "port", "9443", "proto", "tcp",
            "comment", "Portainer from trusted scope"] in runner.calls


def test_apply_is_identical_on_every_run(runner):
    config = ForgeConfig(trusted_scope="10.0.0.0/24", enable_admin_panel=True)
    configurator = FirewallConfigurator(runner)

    configurator.apply(config)
    first = list(runner.calls)
    runner.calls.clear()
    configurator.apply(config)

    assert runner.calls == first


def test_bare_address_becomes_host_network():
    assert ForgeConfig(trusted_scope="10.0.0.7").trusted_scope == "10.0.0.7/32"


def test_empty_scope_means_no_scope():
    assert ForgeConfig(trusted_scope="").trusted_scope is None


def test_invalid_scope_is_a_config_error():
    with pytest.raises(ConfigError):
        load_config(environ={}, trusted_scope="not-a-network")
