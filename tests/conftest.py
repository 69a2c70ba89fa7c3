"""Shared fixtures: a scripted toolchain, AUR and prompter."""

import io
import os
import re
import tarfile
import tempfile

# Keep the test run away from the user's configuration and log file.
_CONF_DIR = tempfile.mkdtemp(prefix="pacsource-tests-")
_CONF = os.path.join(_CONF_DIR, "pacsource.conf")
with open(_CONF, "w", encoding="utf-8") as _fh:
    _fh.write("[logging]\nlog_to_file = false\nlog_to_console = false\n")
os.environ["PACSOURCE_CONFIG"] = _CONF

import pytest  # noqa: E402
from rich.console import Console  # noqa: E402

from pacsource.modules.config import Settings  # noqa: E402
from pacsource.modules.context import Context  # noqa: E402
from pacsource.modules.errors import NetworkError, AURError, ProcessError  # noqa: E402
from pacsource.modules.pkgbuild import NONE, BuildSpecification  # noqa: E402
from pacsource.modules.prompt import Prompter  # noqa: E402


def make_spec(name, version="1.0", release=1, depends=(), makedepends=(), arch=("any",),
              vcs="", install=""):
    return BuildSpecification(
        name=name,
        version=version,
        release=release,
        vcs=vcs,
        install=install,
        depends=list(depends) or [NONE],
        makedepends=list(makedepends) or [NONE],
        arch=list(arch),
    )


def make_record(name, version="1.0-1", description=""):
    return {"Name": name, "Version": version, "Description": description, "URL": ""}


def make_tar(files):
    """gzip'd tarball bytes from {path: content}; paths ending in / are directories."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for path, content in files.items():
            if path.endswith("/"):
                info = tarfile.TarInfo(path.rstrip("/"))
                info.type = tarfile.DIRTYPE
                info.mode = 0o755
                tar.addfile(info)
                continue
            data = content.encode("utf-8")
            info = tarfile.TarInfo(path)
            info.size = len(data)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def _vkey(version):
    return [int(p) for p in re.split(r"\D+", version) if p]


class FakeToolchain:
    """Answers pacman/makepkg/vercmp calls from in-memory state and records them."""

    def __init__(self):
        self.pacman_path = "pacman"
        self.bash_path = None
        self.editor_path = None
        self.repo = {}          # name -> (version, [deps])
        self.local = {}         # name -> (version, [deps])
        self.asdeps = set()     # installed as a dependency
        self.foreign = []
        self.search_rc = 0
        self.calls = []
        self.root_calls = []
        self.makepkg_calls = []
        self.on_makepkg = None
        self.fail_root = False

    def silent_pacman(self, *args):
        self.calls.append(("silent",) + args)
        name = args[-1]
        if args[0] == "-Si":
            return name in self.repo
        if args[0] == "-Q":
            return name in self.local
        return False

    def pacman_output(self, *args):
        self.calls.append(("output",) + args)
        query, name = args[0], args[-1]
        db = self.repo if query == "-Si" else self.local
        if name not in db:
            raise ProcessError(["pacman", *args], 1, f"error: package '{name}' was not found")
        version, deps = db[name]
        lines = [
            f"Name            : {name}",
            f"Version         : {version}",
            f"Depends On      : {'  '.join(deps) or 'None'}",
        ]
        if query == "-Qi":
            reason = "Installed as a dependency for another package" if name in self.asdeps \
                else "Explicitly installed"
            lines.append(f"Install Reason  : {reason}")
        return "\n".join(lines) + "\n"

    def pacman_lines(self, *args):
        if args[0] == "-Qqm":
            self.calls.append(("output",) + args)
            if not self.foreign:
                raise ProcessError(["pacman", "-Qqm"], 1, "")
            return list(self.foreign)
        return [line.strip() for line in self.pacman_output(*args).splitlines()]

    def pacman(self, *args):
        self.calls.append(("pacman",) + args)

    def pacman_status(self, *args):
        self.calls.append(("pacman",) + args)
        return self.search_rc

    def as_root_pacman(self, *args):
        self.root_calls.append(args)
        if self.fail_root:
            raise ProcessError(["sudo", "pacman", *args], 1)

    def makepkg_in(self, directory, *args):
        self.makepkg_calls.append((directory, args))
        if self.on_makepkg is not None:
            self.on_makepkg(directory, args)

    def vercmp(self, ver1, ver2):
        a, b = _vkey(ver1), _vkey(ver2)
        return (a > b) - (a < b)

    def has_editor(self):
        return bool(self.editor_path)

    def edit(self, path):
        self.calls.append(("edit", path))

    @property
    def editor_name(self):
        return os.path.basename(self.editor_path or "")


class FakeAUR:
    def __init__(self):
        self.records = {}
        self.pkgbuilds = {}
        self.tars = {}
        self.search_results = []
        self.lookups = []
        self.fetched = []

    def add(self, spec, version=None, tar=None):
        record = make_record(spec.name, version or spec.version_string())
        self.records[spec.name] = record
        self.pkgbuilds[spec.name] = spec
        if tar is not None:
            self.tars[spec.name] = tar
        return record

    def info(self, name):
        if name not in self.records:
            raise AURError("rpc", "No results found")
        return self.records[name]

    def lookup(self, name):
        self.lookups.append(name)
        return self.records.get(name)

    def search(self, keywords):
        return list(self.search_results)

    def fetch_pkgbuild(self, name):
        if name not in self.pkgbuilds:
            raise NetworkError(name, "404")
        return name.encode("utf-8")

    def source_tar(self, name):
        self.fetched.append(name)
        if name not in self.tars:
            raise NetworkError(name, "404")
        return tarfile.open(fileobj=io.BytesIO(self.tars[name]), mode="r:gz")


class ScriptedPrompter(Prompter):
    """Pops scripted answers; once they run out every question gets its default."""

    def __init__(self, answers=None):
        self.answers = list(answers or [])
        self.questions = []

    def confirm(self, question, default):
        self.questions.append(question)
        if self.answers:
            return self.answers.pop(0)
        return default


@pytest.fixture
def tools():
    return FakeToolchain()


@pytest.fixture
def aur():
    return FakeAUR()


@pytest.fixture
def prompter():
    return ScriptedPrompter()


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=120, color_system=None)


@pytest.fixture
def ctx(tmp_path, tools, aur, prompter, console, monkeypatch):
    """A Context over the fakes. PKGBUILD "parsing" returns the spec FakeAUR holds."""
    def fake_parse(raw, bash=None):
        return aur.pkgbuilds[raw.decode("utf-8")]

    monkeypatch.setattr("pacsource.modules.resolver.parse_pkgbuild", fake_parse)
    settings = Settings(tmp_dir=str(tmp_path / "build"), workers=4)
    return Context(settings, tools, aur, prompter, console)
