# pacsource/modules/package.py
"""
Package model.

Four flat variants share one capability set (name, version, deps, install,
info):

 - RepoPackage     a package in pacman's sync databases
 - LocalPackage    an installed package with no known remote origin
 - SourcePackage   an AUR package (RPC record + parsed PKGBUILD)
 - UnbuiltPackage  a PKGBUILD on disk that hasn't been built yet

Dependency lists are computed on first use and memoized for the lifetime of
the instance; the first computation runs under a per-instance lock so that
concurrent callers never spawn the same queries twice.
"""

from __future__ import annotations
import enum
import re
import threading
from typing import Any, Dict, List, Optional, Sequence, Tuple

from rich.markup import escape

from pacsource.modules import logger as _logger
from pacsource.modules.aur import record_field
from pacsource.modules.errors import InvariantError, ParseError, ProcessError
from pacsource.modules.pkgbuild import NONE, BuildSpecification

LOG = _logger.Logger("package")

# Fields of `pacman -Si` / `pacman -Qi` output.
VERSION_RE = re.compile(r"^Version\s+:\s+(.*)$", re.MULTILINE)
DEPS_RE = re.compile(r"^Depends\s+On\s+:\s+(.*)$")

INFO_LABEL_WIDTH = 15


class InstallResult(enum.Enum):
    SKIPPED = "skipped"
    INSTALLED = "installed"


def clean_name(name: str) -> str:
    """Strip a version constraint from a dependency: 'foo>=1.2' -> 'foo'."""
    for i, c in enumerate(name):
        if c in "<>=":
            return name[:i]
    return name


def same_package(p1: "Package", p2: "Package") -> bool:
    if type(p1) is not type(p2):
        return False
    if p1.name != p2.name:
        return False
    return p1.version() == p2.version()


def render_info(console, rows: Sequence[Tuple[str, str, str]]) -> None:
    """Print label-aligned (label, value, style) rows, pacman -Si style."""
    for label, value, style in rows:
        text = escape(value)
        if style:
            text = f"[{style}]{text}[/{style}]"
        console.print(f"[bold]{label.ljust(INFO_LABEL_WIDTH)}:[/bold] {text}")
    console.print()


def _join(items: List[str]) -> str:
    return " ".join(items).strip()


class Package:
    """Base class of the package variants."""

    rank = 0
    installable = False

    def __init__(self, resolver):
        self.resolver = resolver
        self._deps: Optional[List[Package]] = None
        self._dep_names: Optional[List[str]] = None
        self._lock = threading.RLock()

    @property
    def name(self) -> str:
        raise NotImplementedError

    def version(self) -> str:
        raise NotImplementedError

    def _declared_dependencies(self) -> List[str]:
        raise NotImplementedError

    def dependency_names(self) -> List[str]:
        """Names this package declares as run or build dependencies."""
        with self._lock:
            if self._dep_names is None:
                names = []
                for raw in self._declared_dependencies():
                    name = clean_name(raw)
                    if name and name != NONE and name not in names:
                        names.append(name)
                self._dep_names = names
            return self._dep_names

    def deps(self) -> List["Package"]:
        """
        The packages that have to be present before this one can be installed.
        Names that resolve neither remotely nor locally are left out, so the
        list may be empty.
        """
        with self._lock:
            if self._deps is None:
                self._deps = self.resolver.resolve_dependencies(self.dependency_names())
            return self._deps

    def install(self, requester: Optional["Package"] = None, as_deps: bool = False, args: Sequence[str] = ()):
        raise InvariantError(f"Don't know how to install {self.name}.")

    def info(self, *args: str) -> None:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class _PacmanBacked(Package):
    """Shared pacman scraping for RepoPackage and LocalPackage."""

    query = ""

    def __init__(self, resolver, name: str):
        super().__init__(resolver)
        self._name = name
        self._version: Optional[str] = None

    @property
    def name(self) -> str:
        return self._name

    def version(self) -> str:
        with self._lock:
            if self._version is None:
                out = self.resolver.ctx.tools.pacman_output(self.query, self.name)
                m = VERSION_RE.search(out)
                if not m:
                    raise ParseError("version", message=f"{type(self).__name__}: Couldn't determine version of {self.name}.")
                self._version = m.group(1).strip()
            return self._version

    def _declared_dependencies(self) -> List[str]:
        try:
            lines = self.resolver.ctx.tools.pacman_lines(self.query, "--", self.name)
        except ProcessError as e:
            LOG.warning(f"Couldn't read dependencies of {self.name}: {e}")
            return []
        for line in lines:
            m = DEPS_RE.match(line)
            if m:
                return m.group(1).split()
        return []


class RepoPackage(_PacmanBacked):
    """A package in pacman's sync database."""

    rank = 1
    installable = True
    query = "-Si"

    def install(self, requester=None, as_deps=False, args=()):
        flags = ["--asdeps"] if (requester is not None or as_deps) else []
        self.resolver.ctx.tools.as_root_pacman("-S", *flags, *args, self.name)
        return InstallResult.INSTALLED

    def info(self, *args: str) -> None:
        self.resolver.ctx.tools.pacman("-Si", *args, self.name)


class LocalPackage(_PacmanBacked):
    """An installed package."""

    rank = 0
    query = "-Qi"

    def info(self, *args: str) -> None:
        self.resolver.ctx.tools.pacman("-Qi", *args, self.name)


class _SpecBacked(Package):
    installable = True

    def __init__(self, resolver, spec: BuildSpecification):
        super().__init__(resolver)
        self.spec = spec

    def _declared_dependencies(self) -> List[str]:
        return self.spec.dependency_names()

    def refresh(self, spec: BuildSpecification) -> None:
        """Swap in a re-parsed PKGBUILD (after an edit or a build)."""
        with self._lock:
            old = self.spec.dependency_names()
            self.spec = spec
            if spec.dependency_names() != old:
                self._deps = None
                self._dep_names = None

    def is_vcs(self) -> bool:
        return self.spec.is_vcs()

    def _spec_rows(self) -> List[Tuple[str, str, str]]:
        pb = self.spec
        return [
            ("Groups", _join(pb.groups), ""),
            ("Provides", _join(pb.provides), ""),
            ("Depends On", _join(pb.depends), ""),
            ("Make Depends", _join(pb.makedepends), ""),
            ("Check Depends", _join(pb.checkdepends), ""),
            ("Optional Deps", ("\n" + " " * (INFO_LABEL_WIDTH + 2)).join(pb.optdepends), ""),
            ("Conflicts With", _join(pb.conflicts), ""),
            ("Replaces", _join(pb.replaces), ""),
            ("Architecture", _join(pb.arch), ""),
            ("Install Script", pb.install_script(), ""),
        ]


class SourcePackage(_SpecBacked):
    """A package in the AUR."""

    rank = 2

    def __init__(self, resolver, record: Dict[str, Any], spec: BuildSpecification):
        super().__init__(resolver, spec)
        self.record = record

    @property
    def name(self) -> str:
        return record_field(self.record, "Name")

    def version(self) -> str:
        return record_field(self.record, "Version")

    def install(self, requester=None, as_deps=False, args=()):
        as_deps = as_deps or "--asdeps" in args
        return self.resolver.ctx.installer.install_source(self, requester=requester, as_deps=as_deps)

    def info(self, *args: str) -> None:
        rows = [
            ("Repository", "aur", "magenta"),
            ("Name", self.name, "bold"),
            ("Version", self.version(), "green"),
            ("URL", record_field(self.record, "URL"), "cyan"),
            ("Licenses", record_field(self.record, "License") or _join(self.spec.licenses), ""),
        ]
        rows += self._spec_rows()
        rows.append(("Description", record_field(self.record, "Description"), ""))
        render_info(self.resolver.ctx.console, rows)


class UnbuiltPackage(_SpecBacked):
    """A PKGBUILD that hasn't been built yet."""

    rank = 3

    def __init__(self, resolver, spec: BuildSpecification, directory: str = ""):
        super().__init__(resolver, spec)
        self.directory = directory

    @property
    def name(self) -> str:
        return self.spec.name

    def version(self) -> str:
        return self.spec.version_string()

    def install(self, requester=None, as_deps=False, args=()):
        return self.resolver.ctx.installer.install_unbuilt(self, args, requester=requester)

    def info(self, *args: str) -> None:
        rows = [
            ("Name", self.name, "bold"),
            ("Version", self.version(), "green"),
            ("URL", self.spec.url, "cyan"),
            ("Licenses", _join(self.spec.licenses), ""),
        ]
        rows += self._spec_rows()
        rows.append(("Description", self.spec.description, ""))
        render_info(self.resolver.ctx.console, rows)
