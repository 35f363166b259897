import os

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from . import filters

TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates")


def get_jinja_env(template_root: str = TEMPLATES_DIR) -> Environment:
    jinja_env = Environment(loader=FileSystemLoader(template_root), keep_trailing_newline=True,
                            trim_blocks=True, lstrip_blocks=True,
                            undefined=StrictUndefined)
    jinja_env.filters['shell_join'] = filters.shell_join
    jinja_env.filters['to_yaml'] = filters.to_yaml
    return jinja_env


def render_to(jinja_env: Environment, template_name: str, dest: str, mode: int = 0o644, **kwargs) -> str:
    os.makedirs(os.path.dirname(dest), exist_ok=True)
    with open(dest, "w") as f:
        f.write(jinja_env.get_template(template_name).render(**kwargs))
    os.chmod(dest, mode)
    return dest
