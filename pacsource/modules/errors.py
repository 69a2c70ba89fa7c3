from __future__ import annotations

from typing import Optional, Sequence


class PacsourceError(Exception):
    pass


class NotFoundError(PacsourceError):
    def __init__(self, name: str):
        super().__init__(f"Package not found: {name}")
        self.name = name


class ParseError(PacsourceError):
    """A PKGBUILD or pacman output that could not be understood."""

    def __init__(self, field: str, value: str = "", message: Optional[str] = None):
        super().__init__(message or f"Got bad ${field}: {value!r}.")
        self.field = field
        self.value = value


class ProcessError(PacsourceError):
    def __init__(self, cmd: Sequence[str], returncode: Optional[int] = None,
                 stderr: str = "", message: Optional[str] = None):
        cmdline = " ".join(cmd)
        if message is None:
            if returncode is None:
                message = f"Failed to run {cmdline}"
            else:
                message = f"{cmdline} exited with status {returncode}"
            if stderr:
                message += f": {stderr.strip()}"
        super().__init__(message)
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stderr = stderr


class NetworkError(PacsourceError):
    def __init__(self, url: str, reason: object):
        super().__init__(f"{url}: {reason}")
        self.url = url
        self.reason = reason


class AURError(NetworkError):
    """Error envelope returned by the AUR RPC interface."""

    def __init__(self, url: str, message: str):
        super().__init__(url, message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class InvariantError(PacsourceError):
    pass


class UsageError(PacsourceError):
    def __init__(self, arg: str = ""):
        super().__init__(f"Unknown argument: {arg}" if arg else "")
        self.arg = arg
