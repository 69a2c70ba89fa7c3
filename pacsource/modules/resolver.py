# pacsource/modules/resolver.py

from __future__ import annotations
import os
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Dict, List, Optional, Sequence

from pacsource.modules import logger as _logger
from pacsource.modules.errors import NotFoundError, PacsourceError, ParseError, ProcessError
from pacsource.modules.package import (LocalPackage, Package, RepoPackage,
                                       SourcePackage, UnbuiltPackage, clean_name)
from pacsource.modules.pkgbuild import parse_pkgbuild, parse_pkgbuild_file
from pacsource.modules.aur import record_field

LOG = _logger.Logger("resolver")


class DependencyResolver:
    """
    Turns package names into Package objects.

    Classification is sequential and short-circuits: the sync database is
    probed first, then the AUR; a name found in neither is a NotFoundError.
    """

    def __init__(self, ctx):
        self.ctx = ctx

    # -----------------------
    # probes
    # -----------------------
    def in_repo(self, name: str) -> bool:
        return self.ctx.tools.silent_pacman("-Si", "--", name)

    def in_local(self, name: str) -> bool:
        return self.ctx.tools.silent_pacman("-Q", "--", name)

    def lookup_aur(self, name: str) -> Optional[Dict[str, Any]]:
        return self.ctx.aur.lookup(name)

    # -----------------------
    # factories
    # -----------------------
    def resolve(self, name: str) -> Package:
        if self.in_repo(name):
            return RepoPackage(self, name)
        record = self.lookup_aur(name)
        if record is not None:
            return self.source_package(record)
        raise NotFoundError(name)

    def source_package(self, record: Dict[str, Any]) -> SourcePackage:
        """Build a SourcePackage, fetching and parsing its PKGBUILD right away."""
        name = record_field(record, "Name")
        raw = self.ctx.aur.fetch_pkgbuild(name)
        try:
            spec = parse_pkgbuild(raw, bash=self.ctx.tools.bash_path)
        except ParseError as e:
            raise ParseError(e.field, e.value, f"Error parsing {name}'s PKGBUILD: {e}") from e
        return SourcePackage(self, record, spec)

    def resolve_local(self, name: str) -> LocalPackage:
        if not self.in_local(name):
            raise NotFoundError(name)
        return LocalPackage(self, name)

    def unbuilt_package(self, path: str) -> UnbuiltPackage:
        spec = parse_pkgbuild_file(path, bash=self.ctx.tools.bash_path)
        return UnbuiltPackage(self, spec, directory=os.path.dirname(os.path.abspath(path)))

    def resolve_all(self, names: Sequence[str]) -> List[Package]:
        """Resolve every top-level name; the first unknown name aborts."""
        return [self.resolve(name) for name in names]

    # -----------------------
    # dependencies
    # -----------------------
    def resolve_dependency(self, name: str) -> Optional[Package]:
        """
        A dependency that is neither available remotely nor installed is
        skipped with a warning.
        """
        name = clean_name(name)
        try:
            return self.resolve(name)
        except PacsourceError as e:
            LOG.debug(f"Remote lookup of dependency {name} failed: {e}")
        try:
            return self.resolve_local(name)
        except NotFoundError:
            LOG.warning(f"Dependency {name} not found. Skipping.")
            return None

    def resolve_dependencies(self, names: Sequence[str]) -> List[Package]:
        """One task per name; result order is completion order."""
        pl: List[Package] = []
        if not names:
            return pl
        pll = threading.Lock()

        def work(name: str) -> None:
            pkg = self.resolve_dependency(name)
            if pkg is None:
                return
            with pll:
                pl.append(pkg)

        ex = ThreadPoolExecutor(max_workers=self.ctx.settings.max_workers(len(names)))
        try:
            for fut in as_completed([ex.submit(work, name) for name in names]):
                fut.result()
        except BaseException:
            # an interrupt must not wait for the other lookups
            ex.shutdown(wait=False, cancel_futures=True)
            raise
        ex.shutdown()
        return pl

    # -----------------------
    # installed packages
    # -----------------------
    def list_foreign(self) -> List[str]:
        """Names of installed packages that aren't in any sync database."""
        try:
            lines = self.ctx.tools.pacman_lines("-Qqm")
        except ProcessError as e:
            # pacman exits 1 without output when nothing matches
            if e.returncode == 1 and not e.stderr.strip():
                return []
            raise
        return [line for line in lines if line]

    def is_dependency(self, name: str) -> bool:
        info = self.ctx.tools.pacman_output("-Qi", name)
        return "Installed as a dependency" in info
