import configparser
import os
import tempfile
from dataclasses import dataclass, field
from typing import Dict, Optional

DEFAULT_LOCATIONS = [
    "/etc/pacsource/pacsource.conf",
    os.path.expanduser("~/.config/pacsource/pacsource.conf"),
]

DEFAULT_RPC_URL = "https://aur.archlinux.org/rpc/?v=5&type={type}&arg={arg}"
DEFAULT_PKGBUILD_URL = "https://aur.archlinux.org/cgit/aur.git/plain/PKGBUILD?h={name}"
DEFAULT_SNAPSHOT_URL = "https://aur.archlinux.org/cgit/aur.git/snapshot/{name}.tar.gz"

# executables that [tools] may point at
TOOLS = ("pacman", "makepkg", "vercmp", "sudo", "bash", "editor")


def default_locations():
    env = os.environ.get("PACSOURCE_CONFIG")
    if env:
        return [env] + DEFAULT_LOCATIONS
    return list(DEFAULT_LOCATIONS)


class SourceConfig:
    def __init__(self, locations=None):
        self.locations = locations or default_locations()
        self.config = configparser.ConfigParser()
        self.loaded_from = None
        self.reload()

    def reload(self):
        """(Re)load the first configuration file found. No file means defaults."""
        self.config = configparser.ConfigParser()
        self.loaded_from = None
        for path in self.locations:
            if os.path.isfile(path):
                self.config.read(path)
                self.loaded_from = path
                return

    def get(self, section, option, fallback=None):
        try:
            return self.config.get(section, option, fallback=fallback)
        except (configparser.NoSectionError, configparser.NoOptionError):
            return fallback

    def getboolean(self, section, option, fallback=False):
        try:
            return self.config.getboolean(section, option, fallback=fallback)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return fallback

    def getint(self, section, option, fallback=0):
        try:
            return self.config.getint(section, option, fallback=fallback)
        except (configparser.NoSectionError, configparser.NoOptionError, ValueError):
            return fallback

    def __getitem__(self, section):
        if section in self.config:
            return dict(self.config[section])
        raise KeyError(f"Section '{section}' not found.")

    def __contains__(self, section):
        return section in self.config


def default_tmp_dir() -> str:
    return os.path.join(tempfile.gettempdir(), f"pacsource-{os.getuid()}")


@dataclass
class Settings:
    """Runtime settings, built once at startup and carried by the Context."""

    tmp_dir: str = field(default_factory=default_tmp_dir)
    pkgext: str = ".pkg.tar.zst"
    rebuild_vcs: bool = False
    workers: int = 0
    rpc_url: str = DEFAULT_RPC_URL
    pkgbuild_url: str = DEFAULT_PKGBUILD_URL
    snapshot_url: str = DEFAULT_SNAPSHOT_URL
    timeout: int = 30
    tools: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def load(cls, cfg: Optional[SourceConfig] = None) -> "Settings":
        cfg = cfg or config
        tools = {}
        if "tools" in cfg:
            for tool, path in cfg["tools"].items():
                if tool in TOOLS and path:
                    tools[tool] = path
        return cls(
            tmp_dir=os.path.expanduser(cfg.get("pacsource", "tmp_dir", fallback="") or default_tmp_dir()),
            pkgext=cfg.get("pacsource", "pkgext", fallback=".pkg.tar.zst"),
            rebuild_vcs=cfg.getboolean("pacsource", "rebuild_vcs", fallback=False),
            workers=cfg.getint("pacsource", "workers", fallback=0),
            rpc_url=cfg.get("aur", "rpc_url", fallback=DEFAULT_RPC_URL),
            pkgbuild_url=cfg.get("aur", "pkgbuild_url", fallback=DEFAULT_PKGBUILD_URL),
            snapshot_url=cfg.get("aur", "snapshot_url", fallback=DEFAULT_SNAPSHOT_URL),
            timeout=cfg.getint("aur", "timeout", fallback=30),
            tools=tools,
        )

    def max_workers(self, items: int) -> int:
        """One worker per item unless the configuration caps it."""
        n = max(1, items)
        if self.workers > 0:
            return min(n, self.workers)
        return n


# Default global instance used by the other modules
config = SourceConfig()
