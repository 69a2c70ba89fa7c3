# pacsource/modules/upgrade.py
"""
upgrade.py - finds and installs updates for foreign (AUR) packages.

 - scan(): one task per installed foreign package, each looking the package
   up in the AUR and keeping it when the AUR version is newer (or, with the
   rebuild-VCS policy, whenever its PKGBUILD is a VCS one).
 - apply(): confirms the whole batch once, then installs every target,
   keeping the installed-as-dependency flag of each package.
"""

from __future__ import annotations
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional

from rich.markup import escape

from pacsource.modules import logger as _logger
from pacsource.modules.errors import PacsourceError
from pacsource.modules.package import LocalPackage, SourcePackage

LOG = _logger.Logger("upgrade")


def newer(tools, ver1: str, ver2: str) -> bool:
    """True if ver1 is newer than ver2 according to vercmp."""
    return tools.vercmp(ver1, ver2) == 1


class UpdateScanner:
    def __init__(self, ctx, rebuild_vcs: Optional[bool] = None):
        self.ctx = ctx
        if rebuild_vcs is None:
            rebuild_vcs = ctx.settings.rebuild_vcs
        self.rebuild_vcs = rebuild_vcs
        self._stopped = threading.Event()

    # -----------------------
    # scan
    # -----------------------
    def check(self, name: str) -> Optional[SourcePackage]:
        """The AUR package that updates the installed name, if there is one."""
        resolver = self.ctx.resolver
        record = resolver.lookup_aur(name)
        if record is None:
            LOG.debug(f"{name} is not in the AUR")
            return None
        remote = resolver.source_package(record)
        if self.rebuild_vcs and remote.is_vcs():
            return remote
        local = LocalPackage(resolver, name)
        if newer(self.ctx.tools, remote.version(), local.version()):
            return remote
        return None

    def stop(self) -> None:
        """Make a running scan skip the packages it hasn't started on."""
        self._stopped.set()

    def scan(self) -> List[SourcePackage]:
        names = self.ctx.resolver.list_foreign()
        found: List[SourcePackage] = []
        errors: Dict[str, PacsourceError] = {}
        lock = threading.Lock()

        def work(name: str) -> None:
            if self._stopped.is_set():
                return
            try:
                pkg = self.check(name)
            except PacsourceError as e:
                with lock:
                    errors[name] = e
                return
            if pkg is not None:
                with lock:
                    found.append(pkg)

        if names:
            ex = ThreadPoolExecutor(max_workers=self.ctx.settings.max_workers(len(names)))
            try:
                for fut in [ex.submit(work, name) for name in names]:
                    fut.result()
            except BaseException:
                ex.shutdown(wait=False, cancel_futures=True)
                raise
            ex.shutdown()

        for name in names:
            if name in errors:
                raise errors[name]
        return sorted(found, key=lambda p: p.name)

    # -----------------------
    # apply
    # -----------------------
    def apply(self, pkgs: List[SourcePackage]) -> List[SourcePackage]:
        """Install pkgs after one confirmation. Returns the ones that failed."""
        console = self.ctx.console
        console.print()
        if not pkgs:
            console.print(" there is nothing to do")
            return []
        targets = " ".join(escape(p.name) for p in pkgs)
        console.print(f"[yellow]Targets ({len(pkgs)}):[/yellow] {targets}")
        console.print()
        if not self.ctx.prompter.confirm("Proceed with installation?", True):
            return []

        failures: List[SourcePackage] = []
        for pkg in pkgs:
            try:
                as_deps = self.ctx.resolver.is_dependency(pkg.name)
                pkg.install(as_deps=as_deps)
            except PacsourceError as e:
                LOG.warning(f"Update of {pkg.name} failed ({e}). Skipping.")
                failures.append(pkg)
        return failures
