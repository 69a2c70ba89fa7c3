# pacsource/modules/aur.py
"""
aur.py - client for the AUR (community build-recipe repository).

 - info(name): point lookup, returns the package record (dict).
 - search(keywords): substring search, returns a list of records.
 - fetch_pkgbuild(name): raw PKGBUILD text of a package.
 - source_tar(name): the gzip'd snapshot of the package's build files.
 - extract_tar(dest, tar): unpacks a snapshot into a staging directory.

Every RPC answer is an envelope: {"type": "error", ...} carries a message,
anything else carries "results" (a record for lookups, a list for searches).
"""

from __future__ import annotations
import io
import json
import os
import tarfile
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Dict, List, Optional

from pacsource.modules import logger as _logger
from pacsource.modules.config import (DEFAULT_PKGBUILD_URL, DEFAULT_RPC_URL,
                                      DEFAULT_SNAPSHOT_URL)
from pacsource.modules.errors import AURError, NetworkError

LOG = _logger.Logger("aur")

NO_RESULTS = ("No results found", "No result found")


def _field(record: Dict[str, Any], key: str) -> Any:
    """Record keys are CamelCase; older servers used lowercase envelopes."""
    if key in record:
        return record[key]
    return record.get(key.lower())


class AURClient:
    def __init__(self,
                 rpc_url: str = DEFAULT_RPC_URL,
                 pkgbuild_url: str = DEFAULT_PKGBUILD_URL,
                 snapshot_url: str = DEFAULT_SNAPSHOT_URL,
                 timeout: int = 30):
        self.rpc_url = rpc_url
        self.pkgbuild_url = pkgbuild_url
        self.snapshot_url = snapshot_url
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "AURClient":
        return cls(settings.rpc_url, settings.pkgbuild_url, settings.snapshot_url, settings.timeout)

    # -----------------------
    # HTTP
    # -----------------------
    def _get(self, url: str) -> bytes:
        LOG.debug(f"GET {url}")
        try:
            with urllib.request.urlopen(url, timeout=self.timeout) as resp:
                return resp.read()
        except (urllib.error.URLError, OSError) as e:
            raise NetworkError(url, getattr(e, "reason", e)) from e

    def _rpc(self, rtype: str, arg: str) -> Any:
        url = self.rpc_url.format(type=rtype, arg=urllib.parse.quote(arg, safe=""))
        raw = self._get(url)
        try:
            envelope = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise NetworkError(url, f"invalid RPC response: {e}") from e
        if not isinstance(envelope, dict):
            raise NetworkError(url, "invalid RPC response")

        if _field(envelope, "Type") == "error":
            message = envelope.get("error") or _field(envelope, "Results") or "unknown error"
            raise AURError(url, str(message))
        return _field(envelope, "Results")

    # -----------------------
    # RPC operations
    # -----------------------
    def info(self, name: str) -> Dict[str, Any]:
        results = self._rpc("info", name)
        if isinstance(results, list):
            results = results[0] if results else None
        if not isinstance(results, dict):
            raise AURError(self.rpc_url, NO_RESULTS[0])
        return results

    def lookup(self, name: str) -> Optional[Dict[str, Any]]:
        """
        Like info() but answers None when the package is not in the AUR.
        Transport and protocol failures still raise.
        """
        try:
            return self.info(name)
        except AURError as e:
            if e.message not in NO_RESULTS:
                raise
            LOG.debug(f"{name} is not in the AUR")
            return None

    def search(self, keywords: str) -> List[Dict[str, Any]]:
        try:
            results = self._rpc("search", keywords)
        except AURError as e:
            if e.message in NO_RESULTS:
                return []
            raise
        if not results:
            return []
        if not isinstance(results, list):
            raise NetworkError(self.rpc_url, "search returned a non-list result")
        return results

    # -----------------------
    # build files
    # -----------------------
    def fetch_pkgbuild(self, name: str) -> bytes:
        return self._get(self.pkgbuild_url.format(name=urllib.parse.quote(name, safe="")))

    def source_tar(self, name: str) -> tarfile.TarFile:
        url = self.snapshot_url.format(name=urllib.parse.quote(name, safe=""))
        raw = self._get(url)
        try:
            return tarfile.open(fileobj=io.BytesIO(raw), mode="r:gz")
        except tarfile.TarError as e:
            raise NetworkError(url, f"bad source archive: {e}") from e


def record_field(record: Dict[str, Any], key: str, default: str = "") -> str:
    value = _field(record, key)
    if value is None:
        return default
    if isinstance(value, list):
        return " ".join(str(v) for v in value)
    return str(value)


def extract_tar(dest: str, tar: tarfile.TarFile) -> List[str]:
    """
    Extract the members of tar into dest, sequentially.
    Directories are created, every other member is written as a file with
    the mode bits recorded in the archive. Links are written as copies of
    their target; a link whose target isn't in the archive becomes an empty
    file. Returns the extracted paths.
    """
    root = os.path.realpath(dest)
    written = []
    for member in tar:
        target = os.path.realpath(os.path.join(root, member.name))
        if target != root and not target.startswith(root + os.sep):
            raise NetworkError(member.name, "archive member escapes the staging directory")
        if member.isdir():
            os.makedirs(target, mode=0o755, exist_ok=True)
            continue
        if member.isfile():
            with tar.extractfile(member) as fh:
                data = fh.read()
        elif member.issym() or member.islnk():
            data = _link_data(tar, member)
        else:
            raise NetworkError(member.name, "unsupported archive member type")
        os.makedirs(os.path.dirname(target), exist_ok=True)
        with open(target, "wb") as out:
            out.write(data)
        os.chmod(target, member.mode & 0o7777)
        written.append(target)
    return written


def _link_data(tar: tarfile.TarFile, member: tarfile.TarInfo) -> bytes:
    try:
        fh = tar.extractfile(member)
    except KeyError:
        LOG.debug(f"{member.name} links to {member.linkname}, which isn't in the archive")
        return b""
    if fh is None:
        return b""
    with fh:
        return fh.read()
