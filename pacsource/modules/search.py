# pacsource/modules/search.py
"""
Keyword search over the sync databases and the AUR.

pacman prints its own matches while the AUR search runs in a worker thread;
the AUR hits are printed afterwards, each marked when installed.
"""

from __future__ import annotations
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Sequence

from rich.markup import escape

from pacsource.modules import logger as _logger
from pacsource.modules.aur import record_field
from pacsource.modules.errors import ProcessError, UsageError

LOG = _logger.Logger("search")


def keywords(args: Sequence[str]) -> List[str]:
    return [a for a in args if not a.startswith("-")]


class Searcher:
    def __init__(self, ctx):
        self.ctx = ctx

    def installed_markers(self, results: List[Dict[str, Any]]) -> List[bool]:
        names = [record_field(r, "Name") for r in results]
        if not names:
            return []
        with ThreadPoolExecutor(max_workers=self.ctx.settings.max_workers(len(names))) as ex:
            return list(ex.map(self.ctx.resolver.in_local, names))

    def search(self, args: Sequence[str], quiet: bool = False) -> List[Dict[str, Any]]:
        """Run -Ss/-Ssq. Returns the AUR records that were printed."""
        words = keywords(args)
        if not words:
            raise UsageError()
        quiet = quiet or "-q" in args or "--quiet" in args
        op = "-Ssq" if quiet else "-Ss"

        ex = ThreadPoolExecutor(max_workers=1)
        try:
            pending = ex.submit(self.ctx.aur.search, " ".join(words))
            rc = self.ctx.tools.pacman_status(op, *args)
            # 1 means no match in the sync databases
            if rc not in (0, 1):
                raise ProcessError([self.ctx.tools.pacman_path, op, *args], rc)
            results = pending.result()
        except BaseException:
            ex.shutdown(wait=False, cancel_futures=True)
            raise
        ex.shutdown()
        LOG.debug(f"{len(results)} AUR results for {words}")

        console = self.ctx.console
        markers = self.installed_markers(results) if not quiet else [False] * len(results)
        for record, installed in zip(results, markers):
            name = escape(record_field(record, "Name"))
            if quiet:
                console.print(name, highlight=False)
                continue
            mark = " [cyan]\\[installed][/cyan]" if installed else ""
            version = escape(record_field(record, "Version"))
            console.print(f"[magenta]aur/[/magenta][bold]{name}[/bold] [green]{version}[/green]{mark}",
                          highlight=False)
            console.print(f"    {escape(record_field(record, 'Description'))}", highlight=False)
        return results
