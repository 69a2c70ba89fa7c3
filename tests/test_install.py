"""Tests for the recursive installer."""

import os

import pytest

from pacsource.modules.errors import NetworkError, ProcessError
from pacsource.modules.install import wants_syncdeps
from pacsource.modules.package import InstallResult, RepoPackage, UnbuiltPackage

from conftest import make_spec, make_tar


def snapshot(name):
    return make_tar({f"{name}/": "", f"{name}/PKGBUILD": f"pkgname={name}\n"})


@pytest.fixture
def reparse(monkeypatch, aur):
    """Re-reading a staged PKGBUILD returns the spec the fake AUR holds."""
    def fake_parse_file(path, bash=None):
        name = os.path.basename(os.path.dirname(path))
        return aur.pkgbuilds[name]

    monkeypatch.setattr("pacsource.modules.install.parse_pkgbuild_file", fake_parse_file)


def add(aur, name, depends=()):
    spec = make_spec(name, depends=depends)
    aur.add(spec, tar=snapshot(name))
    return spec


class TestInstallSource:
    """The CacheCheck -> Confirm -> Fetch -> Edit -> Deps -> Build walk."""

    def test_declined_does_nothing(self, ctx, tools, aur, prompter):
        add(aur, "foo")
        prompter.answers = [False]
        pkg = ctx.resolver.resolve("foo")

        result = pkg.install()

        assert result is InstallResult.SKIPPED
        assert prompter.questions == [":: Install foo?"]
        assert aur.fetched == []
        assert tools.makepkg_calls == []
        assert not os.path.exists(ctx.installer.staging_dir("foo"))

    def test_top_level_builds_and_installs_with_makepkg(self, ctx, tools, aur):
        add(aur, "foo")
        pkg = ctx.resolver.resolve("foo")

        result = pkg.install()

        assert result is InstallResult.INSTALLED
        build_dir = ctx.installer.build_dir("foo")
        assert os.path.isfile(os.path.join(build_dir, "PKGBUILD"))
        assert tools.makepkg_calls == [(build_dir, ("-s", "-c", "-i"))]
        assert tools.root_calls == []

    def test_aur_dependency_is_built_first(self, ctx, tools, aur, prompter, reparse):
        add(aur, "libbar")
        add(aur, "foo", depends=["libbar"])
        pkg = ctx.resolver.resolve("foo")

        pkg.install()

        assert prompter.questions == [":: Install foo?", ":: Install libbar as a dependency for foo?"]
        assert [d for d, _ in tools.makepkg_calls] == [ctx.installer.build_dir("libbar"),
                                                       ctx.installer.build_dir("foo")]
        assert tools.makepkg_calls[0][1] == ("-s", "-c")
        artifact = ctx.installer.artifact_path(ctx.resolver.resolve("libbar"))
        assert tools.root_calls == [("-U", "--asdeps", artifact)]

    def test_installed_dependency_is_skipped(self, ctx, tools, aur, prompter):
        add(aur, "libbar")
        add(aur, "foo", depends=["libbar"])
        tools.local["libbar"] = ("1.0-1", [])
        pkg = ctx.resolver.resolve("foo")

        pkg.install()

        assert prompter.questions == [":: Install foo?"]
        assert aur.fetched == ["foo"]

    def test_repo_dependency_is_left_to_makepkg(self, ctx, tools, aur, prompter):
        tools.repo["glibc"] = ("2.38-1", [])
        add(aur, "foo", depends=["glibc"])

        ctx.resolver.resolve("foo").install()

        assert prompter.questions == [":: Install foo?"]
        assert tools.root_calls == []

    def test_failing_dependency_aborts(self, ctx, tools, aur):
        add(aur, "foo", depends=["libbar"])
        aur.add(make_spec("libbar"))  # no snapshot to download
        pkg = ctx.resolver.resolve("foo")

        with pytest.raises(NetworkError):
            pkg.install()

        assert tools.makepkg_calls == []

    def test_as_deps_builds_then_installs_the_artifact(self, ctx, tools, aur, reparse):
        add(aur, "foo")
        pkg = ctx.resolver.resolve("foo")

        pkg.install(args=("--asdeps",))

        assert tools.makepkg_calls[0][1] == ("-s", "-c")
        assert tools.root_calls == [("-U", "--asdeps", ctx.installer.artifact_path(pkg))]


class TestCache:
    """A previously built artifact short-circuits the walk."""

    def write_artifact(self, ctx, pkg):
        path = ctx.installer.artifact_path(pkg)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as fh:
            fh.write(b"pkg")
        return path

    def test_cached_artifact_is_installed(self, ctx, tools, aur, prompter):
        add(aur, "foo")
        pkg = ctx.resolver.resolve("foo")
        path = self.write_artifact(ctx, pkg)

        result = pkg.install()

        assert result is InstallResult.INSTALLED
        assert prompter.questions == [":: Found cached package for foo. Install?"]
        assert tools.root_calls == [("-U", path)]
        assert aur.fetched == []
        assert tools.makepkg_calls == []

    def test_declined_cache_falls_through_to_confirm(self, ctx, tools, aur, prompter):
        add(aur, "foo")
        pkg = ctx.resolver.resolve("foo")
        self.write_artifact(ctx, pkg)
        prompter.answers = [False, False]

        result = pkg.install()

        assert result is InstallResult.SKIPPED
        assert prompter.questions == [":: Found cached package for foo. Install?", ":: Install foo?"]


class TestEdit:
    def test_edit_loop(self, ctx, tools, aur, prompter, reparse):
        tools.editor_path = "/usr/bin/vim"
        add(aur, "foo")
        prompter.answers = [True, True, True, False]

        ctx.resolver.resolve("foo").install()

        edits = [c for c in tools.calls if c[0] == "edit"]
        assert len(edits) == 2
        assert prompter.questions[1] == "Edit PKGBUILD using vim?"


class TestInstallUnbuilt:
    def test_makepkg_runs_in_the_recipe_directory(self, ctx, tools, tmp_path):
        pkg = UnbuiltPackage(ctx.resolver, make_spec("local"), directory=str(tmp_path))

        pkg.install(args=("-f",))

        assert tools.makepkg_calls == [(str(tmp_path), ("-f",))]

    def test_syncdeps_installs_aur_deps_first(self, ctx, tools, aur, prompter, reparse, tmp_path):
        add(aur, "libbar")
        pkg = UnbuiltPackage(ctx.resolver, make_spec("local", depends=["libbar"]), directory=str(tmp_path))

        pkg.install(args=("-si",))

        assert prompter.questions == [":: Install libbar as a dependency for local?"]
        assert tools.makepkg_calls[-1] == (str(tmp_path), ("-si",))

    def test_wants_syncdeps(self):
        assert wants_syncdeps(["-s"])
        assert wants_syncdeps(["-fsi"])
        assert wants_syncdeps(["--syncdeps"])
        assert not wants_syncdeps(["-f", "--skipinteg"])


class TestInstallPackages:
    """Batch installs."""

    def test_repo_packages_share_one_pacman_call(self, ctx, tools, aur):
        tools.repo["a"] = ("1-1", [])
        tools.repo["b"] = ("1-1", [])
        add(aur, "c")
        pkgs = ctx.resolver.resolve_all(["a", "c", "b"])

        failures = ctx.installer.install_packages(pkgs, ["--needed"])

        assert failures == []
        assert tools.root_calls == [("-S", "--needed", "a", "b")]
        assert len(tools.makepkg_calls) == 1

    def test_a_failure_does_not_stop_the_batch(self, ctx, tools, aur):
        add(aur, "good")
        aur.add(make_spec("bad"))  # download fails
        pkgs = ctx.resolver.resolve_all(["bad", "good"])

        failures = ctx.installer.install_packages(pkgs)

        assert [p.name for p in failures] == ["bad"]
        assert [d for d, _ in tools.makepkg_calls] == [ctx.installer.build_dir("good")]

    def test_duplicates_are_installed_once(self, ctx, tools, aur):
        tools.repo["a"] = ("1-1", [])
        add(aur, "c")
        pkgs = ctx.resolver.resolve_all(["a", "c", "a", "c"])

        failures = ctx.installer.install_packages(pkgs)

        assert failures == []
        assert tools.root_calls == [("-S", "a")]
        assert len(tools.makepkg_calls) == 1

    def test_repo_failure_is_fatal(self, ctx, tools):
        tools.repo["a"] = ("1-1", [])
        tools.fail_root = True

        with pytest.raises(ProcessError):
            ctx.installer.install_packages([RepoPackage(ctx.resolver, "a")])


class TestDownload:
    def test_extracts_and_skips_failures(self, ctx, aur, tmp_path):
        add(aur, "foo")

        fetched = ctx.installer.download(["foo", "missing"], str(tmp_path))

        assert fetched == ["foo"]
        assert (tmp_path / "foo" / "PKGBUILD").is_file()
