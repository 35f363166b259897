from pydantic import BaseModel, SecretStr
import logging

logger = logging.getLogger(__name__)

SECRET_LENGTH = 25

REQUIRED_SECRETS = [
    "POSTGRES_PASSWORD",
    "REDIS_PASSWORD",
    "CODE_SERVER_PASSWORD",
    "PORTAINER_PASSWORD",
    "BACKUP_PASSPHRASE",
]


class Secret(BaseModel):
    name: str
    value: SecretStr

    def __str__(self) -> str:
        return f"<{self.__class__.__name__}:{self.name}>"


class SecretBundle(BaseModel):
    """
    credentials loaded from the secret file; everything else refers to them by name
    """
    path: str
    secrets: dict[str, Secret] = {}

    def __str__(self) -> str:
        return f"<{self.__class__.__name__}:{self.path} {len(self.secrets)} secrets>"

    def names(self) -> list[str]:
        return sorted(self.secrets)

    def value(self, name: str) -> str:
        from serverforge.forge.errors import SecretStoreError
        try:
            return self.secrets[name].value.get_secret_value()
        except KeyError:
            raise SecretStoreError(f"secret {name} is not defined in {self.path}")

    def resolve(self, bindings: dict[str, str]) -> dict[str, str]:
        """
        maps {target: secret name} to {target: secret value}
        """
        return {target: self.value(name) for target, name in bindings.items()}
