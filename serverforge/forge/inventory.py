import logging
from datetime import datetime

from serverforge.models import (ForgeConfig, InventoryEntry, InventoryRecord, SecretBundle,
                                ServiceDefinition)

from .files import write_private_file
from .templates import get_jinja_env

logger = logging.getLogger(__name__)


class InventoryReporter:
    """
    Read-only view over what was provisioned: endpoints plus the names of
    the secrets guarding them. Secret values stay in the secret file.
    """

    def __init__(self) -> None:
        self.jinja_env = get_jinja_env()

    def render(self, config: ForgeConfig, secrets: SecretBundle, services: list[ServiceDefinition],
               host_address: str, skipped: list[str] | None = None, degraded: list[str] | None = None,
               now: datetime | None = None) -> InventoryRecord:
        entries = {}
        for service in services:
            if service.credential and service.credential not in secrets.secrets:
                logger.warning(f"{service} references unknown secret {service.credential}")
            entries[service.name] = InventoryEntry(
                title=service.endpoint.title if service.endpoint else service.name,
                url=service.endpoint.url(host_address, service.name) if service.endpoint else None,
                username=service.username,
                credential=service.credential,
            )

        return InventoryRecord(
            domain=config.domain,
            host_address=host_address,
            trusted_scope=config.trusted_scope,
            generated=now or datetime.now(),
            services=entries,
            files=dict(
                secrets=secrets.path,
                inventory=config.paths.inventory_file,
                backup=config.paths.backup_config,
            ),
            skipped=list(skipped or []),
            degraded=list(degraded or []),
        )

    def write(self, record: InventoryRecord) -> str:
        manifest = record.dict(exclude={"generated"})
        content = self.jinja_env.get_template("inventory.yaml.j2").render(record=record, manifest=manifest)
        path = write_private_file(record.files["inventory"], content)
        logger.info(f"inventory saved to {path}")
        return path

    def summary(self, record: InventoryRecord, state: str, backup_unit: str = "backup") -> str:
        return self.jinja_env.get_template("summary.txt.j2").render(record=record, state=state,
                                                                    backup_unit=backup_unit)
