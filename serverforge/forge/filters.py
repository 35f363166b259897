import shlex
from typing import Any

import yaml


def shell_join(args: list[str]) -> str:
    return shlex.join(str(a) for a in args)


def to_yaml(data: Any) -> str:
    return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
