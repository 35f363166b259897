import ipaddress
import logging
import os
from typing import Any

import yaml
from pydantic import BaseModel, ValidationError, validator

from .backup import BackupConfig
from .spec import Spec

logger = logging.getLogger(__name__)

# environment variable -> config field, flags win over both
ENV_OVERRIDES = {
    "DOMAIN_NAME": "domain",
    "TRUSTED_IP": "trusted_scope",
}


class ForgePaths(BaseModel):
    secrets_file: str = "/root/.server-secrets"
    backup_config: str = "/root/.backup-config"
    inventory_file: str = "/root/.services-config"
    systemd_dir: str = "/etc/systemd/system"
    logrotate_dir: str = "/etc/logrotate.d"
    apt_conf_dir: str = "/etc/apt/apt.conf.d"
    apt_sources_dir: str = "/etc/apt/sources.list.d"
    keyrings_dir: str = "/etc/apt/keyrings"
    venv_root: str = "/opt/venvs"


class ForgeConfig(BaseModel):
    kind: str = "serverforge"
    domain: str = "intelliforge.io"
    trusted_scope: str | None = None
    enable_admin_panel: bool = False
    install_gpu: bool = False
    install_monitoring: bool = True
    assume_yes: bool = False
    paths: ForgePaths = ForgePaths()
    backup: BackupConfig = BackupConfig()

    def __str__(self) -> str:
        return f"<{self.__class__.__name__}:{self.domain}>"

    @validator("trusted_scope")
    def _check_trusted_scope(cls, v):
        if v is None or not v.strip():
            return None
        # a bare address becomes a single-host network
        return str(ipaddress.ip_network(v.strip(), strict=False))


def get_initial_config(**kwargs) -> ForgeConfig:
    return ForgeConfig(**kwargs)


def load_config(path: str | None = None, environ: dict[str, str] | None = None, **flags: Any) -> ForgeConfig:
    """
    defaults < config file < environment < flags; flags left as None are not set
    """
    from serverforge.forge.errors import ConfigError

    data = get_initial_config().dict()

    if path:
        if not os.path.isfile(path):
            raise ConfigError(f"config file {path} not found")
        try:
            data = Spec(path=path, merge_from=data).parse_obj_as(dict)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigError(f"cannot load {path}: {e}")
        logger.debug(f"loaded config file {path}")

    environ = os.environ if environ is None else environ
    for var, field in ENV_OVERRIDES.items():
        if environ.get(var):
            data[field] = environ[var]

    for field, value in flags.items():
        if value is not None:
            data[field] = value

    try:
        return ForgeConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"invalid configuration: {e}")
