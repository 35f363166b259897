import os
import stat
from datetime import datetime

import yaml

from serverforge.forge.inventory import InventoryReporter
from serverforge.forge.secretstore import SecretStore
from serverforge.models import load_catalogue


def render(config, paths, **kwargs):
    secrets = SecretStore(paths.secrets_file).ensure()
    services = load_catalogue().services
    record = InventoryReporter().render(config, secrets, services, host_address="203.0.113.10",
                                        now=datetime(2026, 10, 18, 12, 0), **kwargs)
    return record, secrets


def test_endpoints_use_host_address(config, paths):
    record, _ = render(config, paths)

    assert record.services["portainer"].url == "https://203.0.113.10:9443"
    assert record.services["grafana"].url == "http://203.0.113.10:3000"
    assert record.services["postgres"].url == "postgresql://postgres:5432"
    assert record.services["watchtower"].url is None


def test_credentials_are_references(config, paths):
    record, secrets = render(config, paths)

    assert record.services["code-server"].credential == "CODE_SERVER_PASSWORD"
    assert record.services["postgres"].username == "admin"
    assert record.files["secrets"] == paths.secrets_file
    assert record.services["portainer"].credential is None


def test_listed_credentials_reach_their_container():
    for service in load_catalogue().services:
        if service.credential:
            bound = set(service.secret_env.values()) | set(service.secret_args.values())
            assert service.credential in bound, service.name


def test_manifest_is_private_and_free_of_secret_values(config, paths):
    record, secrets = render(config, paths, skipped=["accelerators"])
    path = InventoryReporter().write(record)

    assert path == paths.inventory_file
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
    with open(path) as f:
        text = f.read()
    for name in secrets.names():
        assert secrets.value(name) not in text

    manifest = yaml.safe_load(text)
    assert manifest["domain"] == "example.org"
    assert manifest["services"]["redis"]["credential"] == "REDIS_PASSWORD"
    assert manifest["skipped"] == ["accelerators"]


def test_manifest_is_rebuilt_not_merged(config, paths):
    record, _ = render(config, paths)
    reporter = InventoryReporter()
    reporter.write(record)

    record.services.pop("grafana")
    reporter.write(record)

    with open(paths.inventory_file) as f:
        assert "grafana" not in yaml.safe_load(f.read())["services"]


def test_summary_lists_next_steps_and_attention(config, paths):
    record, secrets = render(config, paths, skipped=["monitoring"], degraded=["services"])
    summary = InventoryReporter().summary(record, state="degraded")

    assert "https://203.0.113.10:9443" in summary
    assert "Nginx Proxy Manager" in summary
    assert "systemctl start backup.service" in summary
    assert "PORTAINER_PASSWORD is reserved" in summary
    assert "skipped:  monitoring" in summary
    assert "degraded: services" in summary
    assert secrets.value("PORTAINER_PASSWORD") not in summary
