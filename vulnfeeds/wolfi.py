"""Wolfi security database feed."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from vulnfeeds.store import Store, VulnSrc as _VulnSrcBase, file_walk
from vulnfeeds.types import WOLFI, Advisory, DataSource

WOLFI_DIR = "wolfi"
DISTRO_NAME = "wolfi"

SOURCE = DataSource(
    id=WOLFI,
    name="Wolfi Secdb",
    url="https://packages.wolfi.dev/os/security.json",
)

_DECODE_ERROR = "failed to decode Wolfi advisory"


@dataclass
class WolfiAdvisory:
    """The security fixes recorded for one Wolfi package."""

    pkg_name: str = ""
    secfixes: dict[str, list[str]] = field(default_factory=dict)
    apkurl: str = ""
    archs: list[str] = field(default_factory=list)
    urlprefix: str = ""
    reponame: str = ""
    distroversion: str = ""


def _string(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{_DECODE_ERROR}: {key} must be a string")
    return value


def _string_list(value: Any, what: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValueError(f"{_DECODE_ERROR}: {what} must be a list of strings")
    return list(value)


def _parse_advisory(content: bytes) -> WolfiAdvisory:
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ValueError(f"{_DECODE_ERROR}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"{_DECODE_ERROR}: expected an object")
    secfixes = data.get("secfixes") or {}
    if not isinstance(secfixes, dict):
        raise ValueError(f"{_DECODE_ERROR}: secfixes must be an object")
    return WolfiAdvisory(
        pkg_name=_string(data, "name"),
        secfixes={version: _string_list(ids, "secfixes") for version, ids in secfixes.items()},
        apkurl=_string(data, "apkurl"),
        archs=_string_list(data.get("archs"), "archs"),
        urlprefix=_string(data, "urlprefix"),
        reponame=_string(data, "reponame"),
        distroversion=_string(data, "distroversion"),
    )


def _cve_ids(entry: str):
    # An entry may carry remarks, e.g. "CVE-2017-2616 (+ regression fix)".
    for word in entry.split():
        cve_id = word.replace("CVE_", "CVE-")
        if cve_id.startswith("CVE-"):
            yield cve_id


class VulnSrc(_VulnSrcBase):
    """Loads Wolfi security fixes into a store."""

    def __init__(self, store: Store) -> None:
        self._store = store

    def name(self) -> str:
        return SOURCE.id

    def update(self, directory: str | os.PathLike[str]) -> None:
        root = Path(directory, "vuln-list", WOLFI_DIR)
        advisories = [_parse_advisory(path.read_bytes()) for path in file_walk(root)]
        with self._store.transaction():
            for advisory in advisories:
                self._store.put_data_source(DISTRO_NAME, SOURCE)
                self._save_secfixes(DISTRO_NAME, advisory.pkg_name, advisory.secfixes)

    def _save_secfixes(self, platform: str, pkg_name: str, secfixes: dict[str, list[str]]) -> None:
        for fixed_version, vuln_ids in secfixes.items():
            advisory = Advisory(fixed_version=fixed_version)
            for entry in vuln_ids:
                for cve_id in _cve_ids(entry):
                    self._store.put_advisory_detail(cve_id, pkg_name, [platform], advisory)
                    self._store.put_vulnerability_id(cve_id)

    def get(self, release: str, pkg_name: str) -> list[Advisory]:
        """Return the advisories of ``pkg_name``; Wolfi has no releases, so ``release`` is ignored."""
        return self._store.get_advisories(DISTRO_NAME, pkg_name)