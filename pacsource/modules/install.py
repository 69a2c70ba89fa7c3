# pacsource/modules/install.py
"""
install.py - the installer.

install_source() walks an AUR package through

    CacheCheck -> Confirm -> Fetch -> OptionalEdit -> RecurseDeps -> Build

Every prompt may end the walk early (InstallResult.SKIPPED). Dependencies are
installed by recursing into install_source() with the package as requester,
so a dependency chain shows up as nested confirmations. The first failing
dependency aborts its dependents.

install_packages() is the batch entry point used by -S: repo packages go to
a single pacman call, everything else is ordered and installed one by one,
and a failure there only skips that package.
"""

from __future__ import annotations
import os
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence

from rich.markup import escape

from pacsource.modules import logger as _logger
from pacsource.modules.aur import extract_tar
from pacsource.modules.errors import InvariantError, PacsourceError, ParseError
from pacsource.modules.graph import install_order
from pacsource.modules.package import (InstallResult, Package, RepoPackage,
                                       SourcePackage, UnbuiltPackage, same_package)
from pacsource.modules.pkgbuild import parse_pkgbuild_file

LOG = _logger.Logger("install")


def wants_syncdeps(args: Sequence[str]) -> bool:
    """True for makepkg's -s/--syncdeps, also inside grouped short flags (-si)."""
    for arg in args:
        if arg == "--syncdeps":
            return True
        if arg.startswith("-") and not arg.startswith("--") and "s" in arg[1:]:
            return True
    return False


class Installer:
    def __init__(self, ctx):
        self.ctx = ctx

    # -----------------------
    # paths
    # -----------------------
    def staging_dir(self, name: str) -> str:
        return os.path.join(self.ctx.settings.tmp_dir, name)

    def build_dir(self, name: str) -> str:
        return os.path.join(self.staging_dir(name), name)

    def artifact_path(self, pkg: SourcePackage) -> str:
        return os.path.join(self.build_dir(pkg.name), pkg.spec.artifact_name(self.ctx.settings.pkgext))

    # -----------------------
    # helpers
    # -----------------------
    def _confirm(self, question: str, default: bool) -> bool:
        return self.ctx.prompter.confirm(question, default)

    def _install_artifact(self, path: str, as_deps: bool) -> None:
        flags = ["--asdeps"] if as_deps else []
        self.ctx.tools.as_root_pacman("-U", *flags, path)

    def reload(self, pkg: SourcePackage) -> None:
        """Re-read the staged PKGBUILD after an edit or a build."""
        path = os.path.join(self.build_dir(pkg.name), "PKGBUILD")
        try:
            spec = parse_pkgbuild_file(path, bash=self.ctx.tools.bash_path)
        except OSError as e:
            raise PacsourceError(f"Unable to reload PKGBUILD for {pkg.name}: {e}") from e
        except ParseError as e:
            raise ParseError(e.field, e.value, f"Unable to reload PKGBUILD for {pkg.name}: {e}") from e
        pkg.refresh(spec)

    # -----------------------
    # install_source stages
    # -----------------------
    def check_cache(self, pkg: SourcePackage, requester: Optional[Package]) -> Optional[str]:
        """Path of a previously built artifact the user agreed to reuse."""
        artifact = self.artifact_path(pkg)
        if not os.path.isfile(artifact):
            return None
        if requester is None:
            question = f":: Found cached package for {pkg.name}. Install?"
        else:
            question = f":: Found cached package for {pkg.name}. Install as dependency for {requester.name}?"
        if self._confirm(question, True):
            return artifact
        return None

    def confirm(self, pkg: SourcePackage, requester: Optional[Package]) -> bool:
        if requester is None:
            question = f":: Install {pkg.name}?"
        else:
            question = f":: Install {pkg.name} as a dependency for {requester.name}?"
        return self._confirm(question, True)

    def fetch(self, pkg: SourcePackage) -> List[str]:
        staging = self.staging_dir(pkg.name)
        os.makedirs(staging, exist_ok=True)
        tar = self.ctx.aur.source_tar(pkg.name)
        with tar:
            return extract_tar(staging, tar)

    def edit(self, pkg: SourcePackage) -> None:
        tools = self.ctx.tools
        if not tools.has_editor():
            return
        editor = tools.editor_name
        build_dir = self.build_dir(pkg.name)

        while self._confirm(f"Edit PKGBUILD using {editor}?", False):
            tools.edit(os.path.join(build_dir, "PKGBUILD"))
            self.reload(pkg)

        if not pkg.spec.has_install():
            return
        script = os.path.join(build_dir, pkg.spec.install)
        if not os.path.isfile(script):
            LOG.warning(f"Can't find {script} install script.")
            return
        while self._confirm(f":: Edit {pkg.spec.install} using {editor}?", False):
            tools.edit(script)

    def install_deps(self, pkg: Package) -> None:
        """
        Install the AUR dependencies of pkg that aren't installed yet.
        Repo dependencies are left to makepkg -s.
        """
        if isinstance(pkg, (SourcePackage, UnbuiltPackage)) and not pkg.spec.has_deps():
            return
        for dep in install_order(pkg.deps()):
            if not isinstance(dep, SourcePackage):
                continue
            if self.ctx.resolver.in_local(dep.name):
                LOG.debug(f"{dep.name} is already installed")
                continue
            dep.install(requester=pkg, as_deps=True)

    def build(self, pkg: SourcePackage, top_level: bool) -> None:
        build_dir = self.build_dir(pkg.name)
        if top_level:
            self.ctx.tools.makepkg_in(build_dir, "-s", "-c", "-i")
            return
        self.ctx.tools.makepkg_in(build_dir, "-s", "-c")
        self.reload(pkg)
        self._install_artifact(self.artifact_path(pkg), as_deps=True)

    # -----------------------
    # entry points
    # -----------------------
    def install_source(self, pkg: SourcePackage, requester: Optional[Package] = None,
                       as_deps: bool = False) -> InstallResult:
        top_level = requester is None and not as_deps
        console = self.ctx.console

        cached = self.check_cache(pkg, requester)
        if cached:
            LOG.info(f"Installing cached {cached}")
            self._install_artifact(cached, as_deps=not top_level)
            return InstallResult.INSTALLED

        if not self.confirm(pkg, requester):
            console.print(f"[red]Skipping[/red] [bold]{escape(pkg.name)}[/bold]...")
            console.print()
            return InstallResult.SKIPPED

        console.print(f"[green]==>[/green] [bold]Installing [magenta]{escape(pkg.name)}[/magenta] "
                      f"from the [cyan]AUR[/cyan].[/bold]")
        self.fetch(pkg)
        self.edit(pkg)
        self.install_deps(pkg)
        self.build(pkg, top_level)
        LOG.success(f"Installed {pkg.name} {pkg.version()}")
        return InstallResult.INSTALLED

    def install_unbuilt(self, pkg: UnbuiltPackage, args: Sequence[str],
                        requester: Optional[Package] = None) -> InstallResult:
        """makepkg drop-in: installs missing AUR dependencies when asked to sync them."""
        if requester is not None:
            raise InvariantError(f"{pkg.name} is a local PKGBUILD; it can't be installed for {requester.name}.")
        if wants_syncdeps(args):
            self.install_deps(pkg)
        self.ctx.tools.makepkg_in(pkg.directory or None, *args)
        return InstallResult.INSTALLED

    def install_packages(self, pkgs: Sequence[Package], args: Sequence[str] = ()) -> List[Package]:
        """
        Install a batch. Repo packages are handed to one pacman call while the
        rest is being ordered; returns the packages whose installation failed.
        A package listed twice is installed once.
        """
        repo: List[str] = []
        other: List[Package] = []
        seen: List[Package] = []
        for pkg in pkgs:
            if any(same_package(pkg, s) for s in seen):
                LOG.debug(f"{pkg.name} is listed more than once")
                continue
            seen.append(pkg)
            if isinstance(pkg, RepoPackage):
                repo.append(pkg.name)
            elif pkg.installable:
                other.append(pkg)
            else:
                LOG.warning(f"Don't know how to install {pkg.name}. Skipping.")

        ex = ThreadPoolExecutor(max_workers=1)
        try:
            ordering = ex.submit(install_order, other)
            if repo:
                self.ctx.tools.as_root_pacman("-S", *args, *repo)
            other = ordering.result()
        except BaseException:
            ex.shutdown(wait=False, cancel_futures=True)
            raise
        ex.shutdown()

        failures: List[Package] = []
        for pkg in other:
            try:
                pkg.install(args=args)
            except PacsourceError as e:
                LOG.warning(f"Installation of {pkg.name} failed ({e}). Skipping.")
                failures.append(pkg)
        return failures

    def info_packages(self, pkgs: Sequence[Package], args: Sequence[str] = ()) -> None:
        for pkg in pkgs:
            pkg.info(*args)

    def download(self, names: Sequence[str], dest: str) -> List[str]:
        """-G: extract the snapshots of names into dest; failures are skipped."""
        fetched = []
        for name in names:
            try:
                tar = self.ctx.aur.source_tar(name)
            except PacsourceError as e:
                LOG.warning(f"Failed to get source tar for {name}. Skipping... ({e})")
                continue
            try:
                with tar:
                    extract_tar(dest, tar)
            except (PacsourceError, OSError) as e:
                LOG.warning(f"Failed to extract {name}. Skipping... ({e})")
                continue
            LOG.success(f"Downloaded {name} build files")
            fetched.append(name)
        return fetched
