from .config import ForgeConfig, ForgePaths, get_initial_config, load_config
from .secret import Secret, SecretBundle, REQUIRED_SECRETS, SECRET_LENGTH
from .service import ServiceDefinition, Catalogue, PortMapping, VolumeMount, Endpoint, load_catalogue
from .firewall import FirewallRule
from .backup import BackupConfig, RetentionPolicy, Snapshot
from .inventory import InventoryEntry, InventoryRecord
from .step import StepState, StepResult, RunState
from .download import Download


__all__ = ["ForgeConfig", "ForgePaths", "get_initial_config", "load_config",
           "Secret", "SecretBundle", "REQUIRED_SECRETS", "SECRET_LENGTH",
           "ServiceDefinition", "Catalogue", "PortMapping", "VolumeMount", "Endpoint", "load_catalogue",
           "FirewallRule", "BackupConfig", "RetentionPolicy", "Snapshot",
           "InventoryEntry", "InventoryRecord", "StepState", "StepResult", "RunState", "Download"]
