# pacsource/modules/tools.py
"""
tools.py - locates and runs the external collaborators.

 - pacman (pacman-color preferred), makepkg and vercmp are mandatory.
 - sudo is preferred for root operations; su -c is the fallback.
 - the editor comes from $EDITOR, then vim, then nano.
 - bash evaluates PKGBUILDs.

Paths are discovered once (Toolchain.discover) and the Toolchain instance is
handed to everything that needs to spawn a process.
"""

from __future__ import annotations
import os
import shlex
import shutil
import subprocess
from typing import Dict, List, Optional

from pacsource.modules import logger as _logger
from pacsource.modules.errors import ProcessError

LOG = _logger.Logger("tools")


def _which(candidates: List[str]) -> Optional[str]:
    for c in candidates:
        found = shutil.which(c)
        if found:
            return found
    return None


class Toolchain:
    def __init__(self,
                 pacman: str,
                 makepkg: str,
                 vercmp: str,
                 as_root: Optional[str] = None,
                 sudo: bool = True,
                 editor: Optional[str] = None,
                 bash: Optional[str] = None):
        self.pacman_path = pacman
        self.makepkg_path = makepkg
        self.vercmp_path = vercmp
        self.as_root_path = as_root
        self.sudo = sudo
        self.editor_path = editor
        self.bash_path = bash

    @classmethod
    def discover(cls, overrides: Optional[Dict[str, str]] = None) -> "Toolchain":
        overrides = overrides or {}

        def find(key: str, candidates: List[str]) -> Optional[str]:
            if key in overrides:
                return _which([overrides[key]])
            return _which(candidates)

        pacman = find("pacman", ["pacman-color", "pacman"])
        if not pacman:
            raise ProcessError(["pacman"], message="Could not find pacman.")
        makepkg = find("makepkg", ["makepkg"])
        if not makepkg:
            raise ProcessError(["makepkg"], message="Could not find makepkg.")
        vercmp = find("vercmp", ["vercmp"])
        if not vercmp:
            raise ProcessError(["vercmp"], message="Could not find vercmp.")

        sudo = True
        as_root = find("sudo", ["sudo"])
        if not as_root:
            sudo = False
            as_root = _which(["su"])
            if as_root:
                LOG.warning("Could not find sudo. Using su.")
            else:
                LOG.warning("Could not find sudo or su.")

        editor_name = os.environ.get("EDITOR") or "vim"
        editor = find("editor", [editor_name, "nano"])
        if not editor:
            LOG.warning(f"Could not find {editor_name} or nano.")

        bash = find("bash", ["bash"])
        if not bash:
            LOG.error("Could not find bash.")

        return cls(pacman, makepkg, vercmp, as_root=as_root, sudo=sudo, editor=editor, bash=bash)

    # -----------------------
    # process helpers
    # -----------------------
    @staticmethod
    def _call(cmd: List[str], cwd: Optional[str] = None) -> int:
        LOG.debug(f"Running: {' '.join(cmd)} (cwd={cwd})")
        try:
            return subprocess.call(cmd, cwd=cwd)
        except OSError as e:
            raise ProcessError(cmd, message=f"Failed to run {cmd[0]}: {e}") from e

    def _check(self, cmd: List[str], cwd: Optional[str] = None) -> None:
        rc = self._call(cmd, cwd=cwd)
        if rc != 0:
            raise ProcessError(cmd, rc)

    def _output(self, cmd: List[str]) -> str:
        LOG.debug(f"Running: {' '.join(cmd)}")
        try:
            res = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
        except OSError as e:
            raise ProcessError(cmd, message=f"Failed to run {cmd[0]}: {e}") from e
        if res.returncode != 0:
            raise ProcessError(cmd, res.returncode, res.stderr)
        return res.stdout

    # -----------------------
    # pacman
    # -----------------------
    def pacman(self, *args: str) -> None:
        """Run pacman attached to the terminal."""
        self._check([self.pacman_path, *args])

    def pacman_status(self, *args: str) -> int:
        """Run pacman attached to the terminal and return its exit status."""
        return self._call([self.pacman_path, *args])

    def silent_pacman(self, *args: str) -> bool:
        """Run pacman with all output discarded; True on exit status 0."""
        cmd = [self.pacman_path, *args]
        try:
            res = subprocess.run(cmd, stdin=subprocess.DEVNULL,
                                 stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        except OSError as e:
            raise ProcessError(cmd, message=f"Failed to run {cmd[0]}: {e}") from e
        return res.returncode == 0

    def pacman_output(self, *args: str) -> str:
        return self._output([self.pacman_path, *args])

    def pacman_lines(self, *args: str) -> List[str]:
        return [line.strip() for line in self.pacman_output(*args).splitlines()]

    def as_root_pacman(self, *args: str) -> None:
        if not self.as_root_path:
            raise ProcessError(["sudo"], message="Could not find sudo or su.")
        inner = [self.pacman_path, *args]
        if self.sudo:
            cmd = [self.as_root_path, *inner]
        else:
            cmd = [self.as_root_path, "-c", shlex.join(inner)]
        self._check(cmd)

    # -----------------------
    # makepkg / vercmp / editor
    # -----------------------
    def makepkg_in(self, directory: Optional[str], *args: str) -> None:
        self._check([self.makepkg_path, *args], cwd=directory or None)

    def vercmp(self, ver1: str, ver2: str) -> int:
        """Three-way comparison of two version strings (-1, 0, 1)."""
        cmd = [self.vercmp_path, ver1, ver2]
        out = self._output(cmd).strip()
        try:
            res = int(out)
        except ValueError:
            raise ProcessError(cmd, message=f"Bad vercmp output: {out!r}") from None
        if res < 0:
            return -1
        if res > 0:
            return 1
        return 0

    def has_editor(self) -> bool:
        return bool(self.editor_path)

    def edit(self, path: str) -> None:
        if not self.editor_path:
            raise ProcessError(["editor"], message="No editor configured.")
        self._check([self.editor_path, path])

    @property
    def editor_name(self) -> str:
        return os.path.basename(self.editor_path or "")
