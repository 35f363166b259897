from .errors import ForgeError, FatalError, ConfigError, SecretStoreError, ProcessException, DownloadError
from .forge import Forge, ForgeCounters, PipelineStep


__all__ = ["Forge", "ForgeCounters", "PipelineStep", "ForgeError", "FatalError", "ConfigError",
           "SecretStoreError", "ProcessException", "DownloadError"]
