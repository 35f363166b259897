import base64
import logging
import os
import secrets
from datetime import datetime

import yaml

from serverforge.models import REQUIRED_SECRETS, SECRET_LENGTH, Secret, SecretBundle

from .errors import SecretStoreError
from .files import write_private_file

logger = logging.getLogger(__name__)

UNSAFE_CHARACTERS = str.maketrans("", "", "=+/")


def generate_secret(length: int = SECRET_LENGTH) -> str:
    value = ""
    while len(value) < length:
        value += base64.b64encode(secrets.token_bytes(32)).decode().translate(UNSAFE_CHARACTERS)
    return value[:length]


class SecretStore:
    """
    Generates the installation credentials once and reloads them on every
    later run. An existing secret file is never rewritten: regenerating would
    leave the running services on the old values.
    """

    def __init__(self, path: str, names: list[str] | None = None) -> None:
        self.path = path
        self.names = list(names or REQUIRED_SECRETS)

    def __str__(self) -> str:
        return f"<{self.__class__.__name__}:{self.path}>"

    def exists(self) -> bool:
        return os.path.isfile(self.path)

    def ensure(self) -> SecretBundle:
        if self.exists():
            bundle = self.load()
            missing = [n for n in self.names if n not in bundle.secrets]
            if missing:
                raise SecretStoreError(f"{self.path} lacks {', '.join(missing)}; "
                                       f"add them by hand or move the file away to regenerate every credential")
            logger.info(f"{self} reusing {len(bundle.secrets)} existing secrets")
            return bundle

        values = {name: generate_secret() for name in self.names}
        self.persist(values)
        logger.info(f"{self} generated {len(values)} secrets")
        return self._bundle(values)

    def load(self) -> SecretBundle:
        try:
            with open(self.path) as f:
                data = yaml.safe_load(f.read()) or {}
        except (OSError, yaml.YAMLError) as e:
            raise SecretStoreError(f"cannot read {self.path}: {e}")
        if not isinstance(data, dict):
            raise SecretStoreError(f"{self.path} is not a secret file")
        return self._bundle({str(k): str(v) for k, v in data.items()})

    def persist(self, values: dict[str, str]) -> None:
        header = (f"# generated by serverforge {datetime.now().isoformat(timespec='seconds')}\n"
                  "# services are configured with these values; changing one needs the service reconfigured\n")
        try:
            write_private_file(self.path, header + yaml.safe_dump(values, default_flow_style=False))
        except OSError as e:
            raise SecretStoreError(f"cannot write secret file {self.path}: {e}")

    def _bundle(self, values: dict[str, str]) -> SecretBundle:
        return SecretBundle(path=self.path,
                            secrets={name: Secret(name=name, value=value) for name, value in values.items()})
