# pacsource/modules/graph.py
"""
Install ordering.

A package that another package in the set depends on is installed first.
Unrelated packages are ordered by variant rank (local, repo, aur, unbuilt)
and then by name, so the order is stable from one run to the next.
"""

from __future__ import annotations
import heapq
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Sequence, Set

from pacsource.modules import logger as _logger
from pacsource.modules.package import Package

LOG = _logger.Logger("graph")


def depends_on(a: Package, b: Package) -> bool:
    """True when a declares b as a direct dependency."""
    return b.name in a.dependency_names()


def compare(a: Package, b: Package) -> int:
    """-1 if a goes before b, 1 if after, 0 if they are interchangeable."""
    if depends_on(b, a):
        return -1
    if depends_on(a, b):
        return 1
    ka, kb = (a.rank, a.name), (b.rank, b.name)
    if ka < kb:
        return -1
    if ka > kb:
        return 1
    return 0


def _prefetch(pkgs: Sequence[Package]) -> None:
    # dependency_names() may query pacman; warm the memos in parallel
    with ThreadPoolExecutor(max_workers=max(1, len(pkgs))) as ex:
        for fut in [ex.submit(p.dependency_names) for p in pkgs]:
            fut.result()


def install_order(pkgs: Sequence[Package]) -> List[Package]:
    """
    Return pkgs in an order where every dependency precedes its dependents.
    Dependency cycles can't be satisfied; their members are appended by
    (rank, name) after everything else.
    """
    pkgs = list(pkgs)
    if len(pkgs) < 2:
        return pkgs
    _prefetch(pkgs)

    index: Dict[str, List[int]] = {}
    for i, p in enumerate(pkgs):
        index.setdefault(p.name, []).append(i)

    # edges[i] holds the packages that have to wait for pkgs[i]
    edges: Dict[int, Set[int]] = {i: set() for i in range(len(pkgs))}
    waiting = [0] * len(pkgs)
    for i, p in enumerate(pkgs):
        for dep in p.dependency_names():
            for j in index.get(dep, []):
                if j != i and i not in edges[j]:
                    edges[j].add(i)
                    waiting[i] += 1

    ready = [(p.rank, p.name, i) for i, p in enumerate(pkgs) if waiting[i] == 0]
    heapq.heapify(ready)
    ordered: List[Package] = []
    done: Set[int] = set()
    while ready:
        _, _, i = heapq.heappop(ready)
        ordered.append(pkgs[i])
        done.add(i)
        for j in edges[i]:
            waiting[j] -= 1
            if waiting[j] == 0:
                heapq.heappush(ready, (pkgs[j].rank, pkgs[j].name, j))

    if len(ordered) < len(pkgs):
        rest = sorted((i for i in range(len(pkgs)) if i not in done),
                      key=lambda i: (pkgs[i].rank, pkgs[i].name, i))
        LOG.warning("Dependency cycle between: " + ", ".join(pkgs[i].name for i in rest))
        ordered.extend(pkgs[i] for i in rest)
    return ordered
