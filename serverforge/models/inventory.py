from datetime import datetime

from pydantic import BaseModel


class InventoryEntry(BaseModel):
    title: str
    url: str | None = None
    username: str | None = None
    # secret name, resolved by the operator from the secret file
    credential: str | None = None


class InventoryRecord(BaseModel):
    domain: str
    host_address: str
    trusted_scope: str | None = None
    generated: datetime
    services: dict[str, InventoryEntry] = {}
    files: dict[str, str] = {}
    skipped: list[str] = []
    degraded: list[str] = []
