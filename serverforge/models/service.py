import logging
import os

from pydantic import BaseModel

from .spec import Spec

logger = logging.getLogger(__name__)

CATALOGUE_PATH = os.path.join(os.path.dirname(os.path.dirname(__file__)), "catalogue.yaml")


class PortMapping(BaseModel):
    host: int
    container: int
    protocol: str = "tcp"

    def arg(self) -> str:
        return f"{self.host}:{self.container}/{self.protocol}"


class VolumeMount(BaseModel):
    source: str
    target: str
    options: str | None = None

    @property
    def named(self) -> bool:
        """
        named volumes are managed by the runtime, absolute sources are bind mounts
        """
        return not self.source.startswith("/")

    def arg(self) -> str:
        if self.options:
            return f"{self.source}:{self.target}:{self.options}"
        return f"{self.source}:{self.target}"


class Endpoint(BaseModel):
    title: str
    port: int
    scheme: str = "http"
    # reachable only on the container network, by service name
    internal: bool = False

    def url(self, host: str, service_name: str) -> str:
        if self.internal:
            host = service_name
        return f"{self.scheme}://{host}:{self.port}"


class ServiceDefinition(BaseModel):
    name: str
    image: str
    group: str = "core"
    ports: list[PortMapping] = []
    volumes: list[VolumeMount] = []
    networks: list[str] = []
    restart: str = "always"
    environment: dict[str, str] = {}
    # env var -> secret name
    secret_env: dict[str, str] = {}
    # command flag -> secret name
    secret_args: dict[str, str] = {}
    command: list[str] = []
    extra_args: list[str] = []
    endpoint: Endpoint | None = None
    username: str | None = None
    credential: str | None = None

    def __str__(self) -> str:
        return f"<{self.__class__.__name__}:{self.name}>"

    @property
    def named_volumes(self) -> list[str]:
        return [v.source for v in self.volumes if v.named]

    @property
    def secret_names(self) -> set[str]:
        names = set(self.secret_env.values()) | set(self.secret_args.values())
        if self.credential:
            names.add(self.credential)
        return names


class Catalogue(BaseModel):
    services: list[ServiceDefinition]

    def __str__(self) -> str:
        return f"<{self.__class__.__name__} {len(self.services)} services>"

    @property
    def groups(self) -> list[str]:
        return sorted({s.group for s in self.services})

    def select(self, exclude_groups: list[str] | None = None) -> list[ServiceDefinition]:
        exclude_groups = exclude_groups or []
        return [s for s in self.services if s.group not in exclude_groups]

    def get(self, name: str) -> ServiceDefinition:
        for s in self.services:
            if s.name == name:
                return s
        raise KeyError(f"service {name} is not in the catalogue")


def load_catalogue(path: str = CATALOGUE_PATH) -> Catalogue:
    catalogue = Spec(path=path).parse_obj_as(Catalogue)
    logger.debug(f"loaded {catalogue} from {path}")
    return catalogue
