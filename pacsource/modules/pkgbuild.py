# pacsource/modules/pkgbuild.py
"""
PKGBUILD parser.

A PKGBUILD is a bash script, so the only faithful way to read its variables is
to let bash evaluate it. parse_pkgbuild() streams the recipe into a bash
process followed by SCAN_SCRIPT, which echoes every variable of interest as a
"key:value" line; arrays are announced with a "<key>len:N" line followed by
one line per element.
"""

from __future__ import annotations
import platform
import shutil
import subprocess
from dataclasses import dataclass, field
from typing import IO, List, Optional, Union

from pacsource.modules import logger as _logger
from pacsource.modules.errors import ParseError, ProcessError

LOG = _logger.Logger("pkgbuild")

# Placeholder shown for empty lists. Never a dependency name.
NONE = "None"

ARRAYS = {
    # introspection key: (bash array, attribute)
    "license": ("license", "licenses"),
    "group": ("groups", "groups"),
    "provide": ("provides", "provides"),
    "dep": ("depends", "depends"),
    "makedep": ("makedepends", "makedepends"),
    "checkdep": ("checkdepends", "checkdepends"),
    "optdep": ("optdepends", "optdepends"),
    "conflict": ("conflicts", "conflicts"),
    "repl": ("replaces", "replaces"),
    "arch": ("arch", "arch"),
    "source": ("source", "sources"),
}

SCALARS = {
    "name": ("pkgname", "name"),
    "ver": ("pkgver", "version"),
    "url": ("url", "url"),
    "desc": ("pkgdesc", "description"),
    "install": ("install", "install"),
}

# Checked in this order; first pair with both variables set wins.
VCS_VARIABLES = [
    ("darcs", "_darcstrunk", "_darcsmod"),
    ("cvs", "_cvsroot", "_cvsmod"),
    ("git", "_gitroot", "_gitname"),
    ("svn", "_svntrunk", "_svnmod"),
    ("bzr", "_bzrtrunk", "_bzrmod"),
    ("hg", "_hgroot", "_hgrepo"),
]

VCS_SUFFIXES = ["darcs", "cvs", "git", "svn", "bzr", "hg"]


def _scan_script() -> str:
    lines = []
    for key, (var, _) in SCALARS.items():
        lines.append(f'echo "{key}:${{{var}}}"')
    lines.append('echo "rel:$pkgrel"')
    lines.append('echo "epoch:$epoch"')
    for key, (var, _) in ARRAYS.items():
        lines.append(f'echo "{key}len:${{#{var}[@]}}"')
        lines.append(f'for ((i=0; i<${{#{var}[@]}}; i++)); do')
        lines.append(f'\techo "{key}:${{{var}[i]}}"')
        lines.append("done")
    first = True
    for vcs, root, mod in VCS_VARIABLES:
        kw = "if" if first else "elif"
        lines.append(f'{kw} [[ -n "${root}" && -n "${mod}" ]]; then')
        lines.append(f'\techo "vcs:{vcs}"')
        first = False
    lines.append("fi")
    lines.append("exit 0")
    return "\n".join(lines) + "\n"


SCAN_SCRIPT = _scan_script()


@dataclass
class BuildSpecification:
    name: str = ""
    version: str = ""
    release: int = 0
    epoch: int = 0
    url: str = ""
    description: str = ""
    install: str = ""
    vcs: str = ""
    licenses: List[str] = field(default_factory=list)
    groups: List[str] = field(default_factory=list)
    provides: List[str] = field(default_factory=list)
    depends: List[str] = field(default_factory=list)
    makedepends: List[str] = field(default_factory=list)
    checkdepends: List[str] = field(default_factory=list)
    optdepends: List[str] = field(default_factory=list)
    conflicts: List[str] = field(default_factory=list)
    replaces: List[str] = field(default_factory=list)
    arch: List[str] = field(default_factory=list)
    sources: List[str] = field(default_factory=list)

    def has_deps(self) -> bool:
        return bool(self.dependency_names())

    def dependency_names(self) -> List[str]:
        """Run and build dependencies, without the display placeholder."""
        return [d for d in self.depends + self.makedepends if d and d != NONE]

    def has_install(self) -> bool:
        return self.install != ""

    def install_script(self) -> str:
        return "Yes" if self.has_install() else "No"

    def is_vcs(self) -> bool:
        return len(self.vcs) > 0

    def version_string(self) -> str:
        epoch = f"{self.epoch}:" if self.epoch != 0 else ""
        return f"{epoch}{self.version}-{self.release}"

    def local_arch(self) -> str:
        """The arch a package built from this PKGBUILD on this machine would have."""
        if self.arch == ["any"]:
            return "any"
        machine = platform.machine().lower()
        find = {
            "amd64": "x86_64",
            "x86_64": "x86_64",
            "i386": "i686",
            "i586": "i686",
            "i686": "i686",
        }.get(machine, machine)
        if find in self.arch:
            return find
        return ""

    def artifact_name(self, pkgext: str) -> str:
        return f"{self.name}-{self.version_string()}-{self.local_arch()}{pkgext}"


def _read(source: Union[bytes, str, IO[bytes]]) -> bytes:
    if isinstance(source, bytes):
        return source
    if isinstance(source, str):
        return source.encode("utf-8")
    return source.read()


def _to_int(key: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ParseError(key, value) from None


def _guess_vcs(spec: BuildSpecification) -> str:
    for suffix in VCS_SUFFIXES:
        if spec.name.endswith("-" + suffix):
            return suffix
    for src in spec.sources:
        location = src.split("::", 1)[-1]
        for vcs in ("git", "svn", "hg", "bzr"):
            if location.startswith(vcs + "+") or location.startswith(vcs + "://"):
                return vcs
    return ""


def parse_pkgbuild(source: Union[bytes, str, IO[bytes]], bash: Optional[str] = None) -> BuildSpecification:
    """
    Evaluate a PKGBUILD with bash and return its BuildSpecification.

    Raises ProcessError when bash can't be run or fails, ParseError when a
    numeric field is malformed or the PKGBUILD has no arch.
    """
    bash = bash or shutil.which("bash") or "bash"
    raw = _read(source)
    cmd = [bash]
    try:
        res = subprocess.run(cmd, input=raw + b"\n" + SCAN_SCRIPT.encode("utf-8"),
                             stdout=subprocess.PIPE, stderr=subprocess.PIPE)
    except BrokenPipeError as e:
        raise ProcessError(cmd, message=f"Broken pipe while talking to bash: {e}") from e
    except OSError as e:
        raise ProcessError(cmd, message=f"Failed to run bash: {e}") from e
    if res.returncode != 0:
        raise ProcessError(cmd, res.returncode, res.stderr.decode("utf-8", "replace"))

    spec = BuildSpecification()
    declared = {}
    out = res.stdout.decode("utf-8", "replace").strip()
    for line in out.split("\n"):
        key, sep, value = line.partition(":")
        if not sep:
            continue
        if key in SCALARS:
            setattr(spec, SCALARS[key][1], value)
        elif key == "rel":
            spec.release = _to_int("pkgrel", value)
        elif key == "epoch":
            spec.epoch = _to_int("epoch", value) if value else 0
        elif key.endswith("len") and key[:-3] in ARRAYS:
            base = key[:-3]
            declared[base] = _to_int(key, value)
            setattr(spec, ARRAYS[base][1], [])
        elif key in ARRAYS:
            getattr(spec, ARRAYS[key][1]).append(value)
        elif key == "vcs":
            spec.vcs = value

    for base, n in declared.items():
        got = len(getattr(spec, ARRAYS[base][1]))
        if got != n:
            LOG.debug(f"{spec.name}: {ARRAYS[base][0]} declared {n} entries, read {got}")

    if not spec.arch:
        raise ParseError("arch", message="PKGBUILD doesn't have an arch.")

    if not spec.vcs:
        spec.vcs = _guess_vcs(spec)

    for base in ("license", "group", "provide", "dep", "makedep", "checkdep",
                 "optdep", "conflict", "repl"):
        attr = ARRAYS[base][1]
        if not getattr(spec, attr):
            setattr(spec, attr, [NONE])

    return spec


def parse_pkgbuild_file(path: str, bash: Optional[str] = None) -> BuildSpecification:
    with open(path, "rb") as fh:
        return parse_pkgbuild(fh, bash=bash)
