# pacsource/modules/cli.py
"""
Command-line entry point for pacsource.

The first argument selects the operation, pacman style; everything after it
is passed through to the operation (and usually on to pacman or makepkg).

  pacsource -S <packages>        install from the repos or the AUR
  pacsource -Si <packages>       info about remote packages
  pacsource -Ss <keywords>       search the repos and the AUR
  pacsource -Syu [--upvcs]       system upgrade, AUR packages included
  pacsource -G <packages>        download AUR build files into the cwd
  pacsource -M [makepkg opts]    makepkg with AUR dependency support
  pacsource -h [operation]       help

--noconfirm makes every question take its default answer. Arguments after
"--" are always package names.
"""

from __future__ import annotations
import argparse
import os
import shutil
import sys
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Sequence, Tuple

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from pacsource import __version__
from pacsource.modules import logger as _logger
from pacsource.modules.context import Context
from pacsource.modules.errors import PacsourceError, ParseError, UsageError
from pacsource.modules.search import Searcher
from pacsource.modules.upgrade import UpdateScanner

LOG = _logger.Logger("cli")

PROG = "pacsource"


class Command:
    def __init__(self, handler: str, help: str, usage: str, more: str = ""):
        self.handler = handler
        self.help = help
        self.usage = usage
        self.more = more


COMMANDS: Dict[str, Command] = {
    "-S": Command("cmd_sync", "Install packages from a repo or the AUR.",
                  "-S [pacman opts] <packages>",
                  "Installs the listed packages, getting everything it can from pacman first\n"
                  "and then building the rest from the AUR. Fails if a package can't be found.\n"
                  "All options are passed straight through to pacman.\n"),
    "-Si": Command("cmd_info", "Get info about a remote package.",
                   "-Si [pacman opts] <packages>",
                   "Prints information about the given packages, AUR packages included.\n"),
    "-Ss": Command("cmd_search", "List packages matching keywords.",
                   "-Ss [pacman opts] <keywords>",
                   "Lists the repo and AUR packages matching the keywords, with their\n"
                   "version and an installed marker.\n"),
    "-Ssq": Command("cmd_search", "List the names of packages matching keywords.",
                    "-Ssq [pacman opts] <keywords>"),
    "-Su": Command("cmd_update", "Install updates.",
                   "-Su [pacman opts] [--upvcs]",
                   "Upgrades the repo packages through pacman, then looks for newer versions\n"
                   "of the installed AUR packages and offers to install them.\n\n"
                   "  --upvcs  also rebuild VCS (git, svn, ...) AUR packages\n"),
    "-Syu": Command("cmd_update", "Update the package databases and install updates.",
                    "-Syu [pacman opts] [--upvcs]",
                    "Like -Su, but pacman refreshes its package databases first.\n"),
    "-Scc": Command("cmd_clean", "Clean leftover files.", "-Scc",
                    "Runs pacman -Scc and then offers to remove the build directory.\n"),
    "-G": Command("cmd_get", "Download the build files of AUR packages.",
                  "-G <packages>",
                  "Downloads and extracts the build files of the given packages into the\n"
                  "current directory, skipping the ones that fail.\n"),
    "-M": Command("cmd_make", "Drop-in replacement for makepkg with AUR support.",
                  "-M [makepkg opts]",
                  "Runs makepkg on ./PKGBUILD. With -s/--syncdeps the PKGBUILD's AUR\n"
                  "dependencies are installed first.\n"),
    "-Mi": Command("cmd_make_info", "Print pacman-like info about local PKGBUILDs.",
                   "-Mi [PKGBUILDs...]",
                   "Prints info about the given PKGBUILDs, ./PKGBUILD by default.\n"),
    "-V": Command("cmd_version", "Print the version.", "-V"),
}

HELP_OPS = ("-h", "-help", "--help")


def make_console() -> Console:
    return Console()


def split_args(args: Sequence[str]) -> Tuple[List[str], List[str]]:
    """Separate options from package names; everything after -- is a name."""
    opts: List[str] = []
    names: List[str] = []
    it = iter(args)
    for arg in it:
        if arg == "--":
            names.extend(it)
            break
        if arg.startswith("-"):
            opts.append(arg)
        else:
            names.append(arg)
    return opts, names


def print_usage(console: Console, op: str = "") -> None:
    cmd = COMMANDS.get(op)
    if cmd is not None:
        console.print(f"Usage: {PROG} {escape(cmd.usage)}")
        if cmd.more:
            console.print()
            console.print(escape(cmd.more), end="")
        return
    console.print(f"Usage: {PROG} <operation> \\[options]")
    console.print()
    table = Table(title="Operations", show_header=False, box=None, title_justify="left")
    table.add_column("Op", style="bold cyan")
    table.add_column("Help")
    for name, c in COMMANDS.items():
        table.add_row(name, c.help)
    console.print(table)


def build_argparser() -> argparse.ArgumentParser:
    # "-" isn't a prefix here: the operation itself looks like a flag
    ap = argparse.ArgumentParser(prog=PROG, add_help=False, prefix_chars="+")
    ap.add_argument("op", nargs="?", default="")
    return ap


class CLI:
    def __init__(self, ctx: Context):
        self.ctx = ctx
        self.console = ctx.console

    # -----------------------
    # -S / -Si
    # -----------------------
    def cmd_sync(self, op: str, args: List[str]) -> int:
        opts, names = split_args(args)
        if not names:
            raise UsageError()
        pkgs = self.ctx.resolver.resolve_all(names)
        failures = self.ctx.installer.install_packages(pkgs, opts)
        return 1 if failures else 0

    def cmd_info(self, op: str, args: List[str]) -> int:
        opts, names = split_args(args)
        if not names:
            raise UsageError()
        pkgs = self.ctx.resolver.resolve_all(names)
        self.ctx.installer.info_packages(pkgs, opts)
        return 0

    # -----------------------
    # -Ss / -Ssq
    # -----------------------
    def cmd_search(self, op: str, args: List[str]) -> int:
        Searcher(self.ctx).search(args, quiet=(op == "-Ssq"))
        return 0

    # -----------------------
    # -Su / -Syu
    # -----------------------
    def cmd_update(self, op: str, args: List[str]) -> int:
        upvcs = "--upvcs" in args
        opts, names = split_args([a for a in args if a != "--upvcs"])
        if names:
            raise PacsourceError(f"Using {op} with specific packages is not yet supported.")
        scanner = UpdateScanner(self.ctx, rebuild_vcs=upvcs or self.ctx.settings.rebuild_vcs)

        ex = ThreadPoolExecutor(max_workers=1)
        try:
            scan = ex.submit(scanner.scan)
            self.ctx.tools.as_root_pacman(op, *opts)
            self.console.print()
            self.console.print("[blue]::[/blue] [bold]Calculating AUR updates...[/bold]")
            pkgs = scan.result()
        except BaseException:
            scanner.stop()
            ex.shutdown(wait=False, cancel_futures=True)
            raise
        ex.shutdown()

        failures = scanner.apply(pkgs)
        return 1 if failures else 0

    # -----------------------
    # -Scc
    # -----------------------
    def cmd_clean(self, op: str, args: List[str]) -> int:
        extra = [a for a in args if a != "--noconfirm"]
        if extra:
            raise UsageError(extra[0])
        self.ctx.tools.as_root_pacman("-Scc")
        tmp = self.ctx.settings.tmp_dir
        self.console.print()
        self.console.print(f"[bold]TmpDir:[/bold] {escape(tmp)}")
        if self.ctx.prompter.confirm("Do you want to remove TmpDir?", False):
            self.console.print("removing TmpDir...")
            if os.path.exists(tmp):
                shutil.rmtree(tmp)
        return 0

    # -----------------------
    # -G
    # -----------------------
    def cmd_get(self, op: str, args: List[str]) -> int:
        if not args:
            raise UsageError()
        names = []
        for arg in args:
            if arg.startswith("-"):
                raise UsageError(arg)
            names.append(arg)
        self.ctx.installer.download(names, os.getcwd())
        return 0

    # -----------------------
    # -M / -Mi
    # -----------------------
    def cmd_make(self, op: str, args: List[str]) -> int:
        try:
            pkg = self.ctx.resolver.unbuilt_package("PKGBUILD")
        except ParseError as e:
            raise ParseError(e.field, e.value, f"Error parsing PKGBUILD: {e}") from e
        pkg.install(args=args)
        return 0

    def cmd_make_info(self, op: str, args: List[str]) -> int:
        status = 0
        for path in args or ["PKGBUILD"]:
            try:
                pkg = self.ctx.resolver.unbuilt_package(path)
            except OSError as e:
                self.console.print(f"[red]error:[/red] {escape(str(e))}")
                status = 1
                continue
            except PacsourceError as e:
                self.console.print(f"[red]error:[/red] Failed to parse {escape(path)}: {escape(str(e))}")
                status = 1
                continue
            pkg.info()
        return status

    def cmd_version(self, op: str, args: List[str]) -> int:
        self.console.print(f"{PROG} {__version__}")
        return 0


def run(ctx: Context, op: str, args: Sequence[str]) -> int:
    """Dispatch op to its handler. Errors are reported here, not raised."""
    console = ctx.console
    command = COMMANDS[op]
    try:
        return getattr(CLI(ctx), command.handler)(op, list(args)) or 0
    except UsageError as e:
        if e.arg:
            console.print(f"[magenta]{escape(op)}:[/magenta] [red]error:[/red] {escape(str(e))}")
        print_usage(console, op)
        return 2
    except KeyboardInterrupt:
        console.print()
        console.print("[red]Interrupted.[/red]")
        return 1
    except (PacsourceError, OSError) as e:
        LOG.debug(f"{op} failed: {e!r}")
        console.print(f"[magenta]{escape(op)}:[/magenta] [red]error:[/red] {escape(str(e))}")
        return 1


def main(argv: Optional[List[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    console = make_console()

    if os.getuid() == 0:
        console.print("[red]error:[/red] Can't run as root.")
        return 1

    # only the operation is parsed here; the rest is passed through untouched
    ns = build_argparser().parse_args(argv[:1])
    op, args = ns.op, list(argv[1:])
    if not op:
        print_usage(console)
        return 2
    if op in HELP_OPS:
        print_usage(console, args[0] if args else "")
        return 0
    if op not in COMMANDS:
        console.print(f"[red]error:[/red] Unknown operation: {escape(op)}")
        print_usage(console)
        return 2
    if op == "-V":
        console.print(f"{PROG} {__version__}")
        return 0

    try:
        ctx = Context.create(noconfirm="--noconfirm" in args)
        os.makedirs(ctx.settings.tmp_dir, mode=0o755, exist_ok=True)
    except (PacsourceError, OSError) as e:
        console.print(f"[red]error:[/red] {escape(str(e))}")
        return 1
    return run(ctx, op, args)


if __name__ == "__main__":
    raise SystemExit(main())
