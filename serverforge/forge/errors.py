class ForgeError(Exception):
    pass


class FatalError(ForgeError):
    """
    aborts the whole run: no credentials, no runtime, no privileges
    """
    pass


class ConfigError(FatalError):
    pass


class SecretStoreError(FatalError):
    pass


class ProcessException(ForgeError):

    def __init__(self, cmd: list[str], returncode: int, output: str = "") -> None:
        self.cmd = cmd
        self.returncode = returncode
        self.output = output
        super().__init__(f"{' '.join(cmd)} failed with {returncode}")


class DownloadError(ForgeError):
    pass
