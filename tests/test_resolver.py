"""Tests for package classification and dependency fan-out."""

import threading

import pytest

from pacsource.modules.errors import NetworkError, NotFoundError, ParseError, ProcessError
from pacsource.modules.package import LocalPackage, RepoPackage, SourcePackage

from conftest import make_spec


class TestResolve:
    """Name -> package variant."""

    def test_repo_package_never_asks_the_aur(self, ctx, tools, aur):
        tools.repo["vim"] = ("9.0-1", [])

        pkg = ctx.resolver.resolve("vim")

        assert isinstance(pkg, RepoPackage)
        assert aur.lookups == []

    def test_aur_package(self, ctx, aur):
        aur.add(make_spec("yay", "12.0", depends=["git"]))

        pkg = ctx.resolver.resolve("yay")

        assert isinstance(pkg, SourcePackage)
        assert pkg.name == "yay"
        assert pkg.version() == "12.0-1"
        assert pkg.dependency_names() == ["git"]

    def test_unknown_name(self, ctx):
        with pytest.raises(NotFoundError) as exc:
            ctx.resolver.resolve("nope")

        assert "nope" in str(exc.value)

    def test_parse_errors_name_the_package(self, ctx, monkeypatch, aur):
        aur.add(make_spec("broken"))

        def bad_parse(raw, bash=None):
            raise ParseError("pkgrel", "x")

        monkeypatch.setattr("pacsource.modules.resolver.parse_pkgbuild", bad_parse)
        with pytest.raises(ParseError) as exc:
            ctx.resolver.resolve("broken")

        assert "broken's PKGBUILD" in str(exc.value)

    def test_unreachable_aur_is_not_a_missing_package(self, ctx, monkeypatch, aur):
        def lookup(name):
            raise NetworkError("rpc", "timed out")

        monkeypatch.setattr(aur, "lookup", lookup)
        with pytest.raises(NetworkError):
            ctx.resolver.resolve("yay")

    def test_resolve_all_fails_fast(self, ctx, tools):
        tools.repo["a"] = ("1-1", [])

        with pytest.raises(NotFoundError):
            ctx.resolver.resolve_all(["a", "missing", "b"])


class TestResolveDependencies:
    """Concurrent dependency fan-out."""

    def test_mixed_sources(self, ctx, tools, aur):
        tools.repo["glibc"] = ("2.38-1", [])
        aur.add(make_spec("libfoo"))
        tools.local["oldthing"] = ("0.1-1", [])

        pkgs = ctx.resolver.resolve_dependencies(["glibc", "libfoo>=1", "oldthing"])
        by_name = {p.name: p for p in pkgs}

        assert isinstance(by_name["glibc"], RepoPackage)
        assert isinstance(by_name["libfoo"], SourcePackage)
        assert isinstance(by_name["oldthing"], LocalPackage)

    def test_unresolvable_is_skipped(self, ctx, tools):
        tools.repo["glibc"] = ("2.38-1", [])

        pkgs = ctx.resolver.resolve_dependencies(["glibc", "ghost"])

        assert [p.name for p in pkgs] == ["glibc"]

    def test_unreachable_aur_falls_back_to_installed(self, ctx, tools, aur, monkeypatch):
        tools.local["oldthing"] = ("0.1-1", [])

        def lookup(name):
            raise NetworkError("rpc", "timed out")

        monkeypatch.setattr(aur, "lookup", lookup)
        pkgs = ctx.resolver.resolve_dependencies(["oldthing"])

        assert [type(p) for p in pkgs] == [LocalPackage]

    def test_interrupt_does_not_wait_for_other_lookups(self, ctx, monkeypatch):
        release = threading.Event()
        finished = []

        def resolve_dependency(name):
            if name == "boom":
                raise KeyboardInterrupt
            release.wait(5)
            finished.append(name)

        monkeypatch.setattr(ctx.resolver, "resolve_dependency", resolve_dependency)
        try:
            with pytest.raises(KeyboardInterrupt):
                ctx.resolver.resolve_dependencies(["slow", "boom"])
            assert finished == []
        finally:
            release.set()

    def test_empty(self, ctx):
        assert ctx.resolver.resolve_dependencies([]) == []


class TestInstalledQueries:
    def test_list_foreign(self, ctx, tools):
        tools.foreign = ["yay", "paru"]

        assert ctx.resolver.list_foreign() == ["yay", "paru"]

    def test_no_foreign_packages(self, ctx, tools):
        assert ctx.resolver.list_foreign() == []

    def test_list_foreign_propagates_real_failures(self, ctx, tools, monkeypatch):
        def broken(*args):
            raise ProcessError(["pacman", "-Qqm"], 1, "error: could not open database")

        monkeypatch.setattr(tools, "pacman_lines", broken)
        with pytest.raises(ProcessError):
            ctx.resolver.list_foreign()

    def test_is_dependency(self, ctx, tools):
        tools.local["a"] = ("1-1", [])
        tools.local["b"] = ("1-1", [])
        tools.asdeps.add("b")

        assert not ctx.resolver.is_dependency("a")
        assert ctx.resolver.is_dependency("b")
