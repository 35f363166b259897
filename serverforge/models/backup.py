from datetime import datetime

from pydantic import BaseModel


class RetentionPolicy(BaseModel):
    """
    snapshots kept per period, applied in declaration order
    """
    daily: int = 7
    weekly: int = 4
    monthly: int = 6
    yearly: int = 2

    @property
    def total(self) -> int:
        return self.daily + self.weekly + self.monthly + self.yearly


class BackupConfig(BaseModel):
    source_paths: list[str] = ["/var/lib/docker/volumes"]
    repository: str = "/opt/backups/borg-repo"
    passphrase_secret: str = "BACKUP_PASSPHRASE"
    secrets_file: str | None = None
    encryption: str = "repokey"
    compression: str = "zstd"
    excludes: list[str] = ["*/cache/*", "*/tmp/*", "*/logs/*"]
    retention: RetentionPolicy = RetentionPolicy()
    unit_name: str = "backup"
    randomized_delay: int = 3600


class Snapshot(BaseModel):
    name: str
    time: datetime

    def __str__(self) -> str:
        return f"<{self.__class__.__name__}:{self.name}>"
