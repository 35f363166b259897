import logging
import os
import shutil
import subprocess

from .errors import ProcessException

logger = logging.getLogger(__name__)


class CommandRunner:
    """
    runs external commands, waits for completion and raises ProcessException
    on non-zero exit when check is set
    """

    def run(self, cmd: list[str], check: bool = True, env: dict[str, str] | None = None,
            input: bytes | None = None) -> subprocess.CompletedProcess:
        logger.debug(f"running {cmd}")
        process = subprocess.run(cmd, env={**os.environ, **(env or {})}, input=input,
                                 stdout=subprocess.PIPE, stderr=subprocess.STDOUT)
        if check and process.returncode != 0:
            output = process.stdout.decode(errors="replace") if process.stdout else ""
            raise ProcessException(cmd, process.returncode, output)
        return process

    def succeeds(self, cmd: list[str], env: dict[str, str] | None = None) -> bool:
        return self.run(cmd, check=False, env=env).returncode == 0

    def which(self, binary: str) -> str | None:
        return shutil.which(binary)
