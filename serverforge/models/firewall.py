from pydantic import BaseModel


class FirewallRule(BaseModel):
    port: int
    protocol: str = "tcp"
    # None opens the port to every source
    source: str | None = None
    label: str

    def __str__(self) -> str:
        return f"{self.port}/{self.protocol} from {self.source or 'anywhere'} ({self.label})"

    @property
    def scoped(self) -> bool:
        return self.source is not None

    def ufw_args(self) -> list[str]:
        if self.scoped:
            return ["allow", "from", self.source, "to", "any", "port", str(self.port),
                    "proto", self.protocol, "comment", self.label]
        return ["allow", f"{self.port}/{self.protocol}", "comment", self.label]
