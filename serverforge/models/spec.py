import logging
from typing import Any

import yaml
from deepmerge import Merger
from pydantic import BaseModel, parse_obj_as

logger = logging.getLogger(__name__)

# lists from a config file replace the defaults instead of extending them
config_merger = Merger([(list, ["override"]), (dict, ["merge"]), (set, ["union"])],
                       ["override"], ["override"])


class Spec(BaseModel):
    """
    yaml file merged over optional defaults
    """
    path: str
    source: str | None = None
    data: dict[str, Any] = {}
    merge_from: Any | None = None

    def render(self):
        logger.debug(f"loading {self.path}")
        with open(self.path) as f:
            self.source = f.read()

        self.data = {}

        if self.merge_from:
            self.data = config_merger.merge(self.data, self.merge_from)

        loaded = yaml.safe_load(self.source) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"{self.path} must contain a mapping, got {type(loaded).__name__}")
        self.data = config_merger.merge(self.data, loaded)

    def parse_obj_as(self, obj_type):
        self.render()
        return parse_obj_as(obj_type, self.data)
