"""Rocky Linux updateinfo feed."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from vulnfeeds.store import Store, StoreError, VulnSrc as _VulnSrcBase, file_walk
from vulnfeeds.types import ROCKY, Advisories, Advisory, DataSource, Severity, VulnerabilityDetail

logger = logging.getLogger(__name__)

ROCKY_DIR = "rocky"
PLATFORM_FORMAT = "rocky {}"
TARGET_REPOS = ("BaseOS", "AppStream", "extras")
TARGET_ARCHES = ("x86_64", "aarch64")

SOURCE = DataSource(
    id=ROCKY,
    name="Rocky Linux updateinfo",
    url="https://download.rockylinux.org/pub/rocky/",
)

_DECODE_ERROR = "failed to decode Rocky erratum"
_MODULAR_MARKER = ".module+el"

_SEVERITIES = {
    "low": Severity.LOW,
    "moderate": Severity.MEDIUM,
    "important": Severity.HIGH,
    "critical": Severity.CRITICAL,
}


@dataclass
class Package:
    """An affected binary package."""

    name: str = ""
    epoch: str = ""
    version: str = ""
    release: str = ""
    arch: str = ""
    filename: str = ""


@dataclass
class Reference:
    """A reference attached to an erratum."""

    href: str = ""
    id: str = ""
    title: str = ""
    type: str = ""


@dataclass
class RLSA:
    """One Rocky Linux security advisory."""

    id: str = ""
    title: str = ""
    severity: str = ""
    description: str = ""
    packages: list[Package] = field(default_factory=list)
    references: list[Reference] = field(default_factory=list)
    cve_ids: list[str] = field(default_factory=list)
    issued_date: str = ""


@dataclass
class PutInput:
    """Everything stored for one CVE on one platform."""

    platform_name: str = ""
    cve_id: str = ""
    vuln: VulnerabilityDetail = field(default_factory=VulnerabilityDetail)
    advisories: dict[str, Advisories] = field(default_factory=dict)
    erratum: RLSA = field(default_factory=RLSA)


def _string(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{_DECODE_ERROR}: {key} must be a string")
    return value


def _object(value: Any, what: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{_DECODE_ERROR}: {what} must be an object")
    return value


def _objects(value: Any, what: str) -> list[dict[str, Any]]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"{_DECODE_ERROR}: {what} must be a list")
    return [_object(item, what) for item in value]


def _string_list(value: Any, what: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValueError(f"{_DECODE_ERROR}: {what} must be a list of strings")
    return list(value)


def _parse_erratum(content: bytes) -> RLSA:
    try:
        data = json.loads(content)
    except ValueError as exc:
        raise ValueError(f"{_DECODE_ERROR}: {exc}") from exc
    data = _object(data, "erratum")
    issued = _object(data.get("issued"), "issued")
    return RLSA(
        id=_string(data, "id"),
        title=_string(data, "title"),
        severity=_string(data, "severity"),
        description=_string(data, "description"),
        packages=[
            Package(
                name=_string(pkg, "name"),
                epoch=_string(pkg, "epoch"),
                version=_string(pkg, "version"),
                release=_string(pkg, "release"),
                arch=_string(pkg, "arch"),
                filename=_string(pkg, "filename"),
            )
            for pkg in _objects(data.get("packages"), "packages")
        ],
        references=[
            Reference(
                href=_string(ref, "href"),
                id=_string(ref, "id"),
                title=_string(ref, "title"),
                type=_string(ref, "type"),
            )
            for ref in _objects(data.get("references"), "references")
        ],
        cve_ids=_string_list(data.get("cveids"), "cveids"),
        issued_date=_string(issued, "date"),
    )


def _construct_version(epoch: str, version: str, release: str) -> str:
    text = f"{epoch}:" if epoch not in ("", "0") else ""
    text += version
    if release:
        text += f"-{release}"
    return text


def generalize_severity(severity: str) -> Severity:
    """Map a Rocky severity, in any letter case, to a severity."""
    return _SEVERITIES.get(severity.lower(), Severity.UNKNOWN)


def fixed_version(prev_version: str, new_version: str, arch: str) -> str:
    """Take the new version only for x86_64 and noarch packages.

    Used for the backward-compatible top-level fixed version alone.
    """
    if arch in ("x86_64", "noarch"):
        return new_version
    return prev_version


class VulnSrc(_VulnSrcBase):
    """Loads Rocky Linux errata into a store and reads them back per architecture."""

    def __init__(self, store: Store) -> None:
        self._store = store

    def name(self) -> str:
        return SOURCE.id

    def update(self, directory: str | os.PathLike[str]) -> None:
        root = Path(directory, "vuln-list", ROCKY_DIR)
        errata = self.parse(root)
        with self._store.transaction():
            for major_version, major_errata in errata.items():
                platform_name = PLATFORM_FORMAT.format(major_version)
                self._store.put_data_source(platform_name, SOURCE)
                self._commit(platform_name, major_errata)

    def parse(self, root_dir: str | os.PathLike[str]) -> dict[str, list[RLSA]]:
        """Read every erratum below ``root_dir``, grouped by major release."""
        root = Path(root_dir)
        errata: dict[str, list[RLSA]] = {}
        for path in file_walk(root):
            erratum = _parse_erratum(path.read_bytes())
            dirs = path.relative_to(root).parts
            if len(dirs) != 5:
                logger.warning("Invalid path: %s", path)
                continue
            # Errata may live in directories named after a minor release, like 8.5.
            major_version = dirs[0].split(".", 1)[0]
            repo, arch = dirs[1], dirs[2]
            if repo not in TARGET_REPOS:
                logger.warning("Unsupported Rocky repo: %s", repo)
                continue
            if arch not in TARGET_ARCHES:
                logger.warning("Unsupported Rocky arch: %s", arch)
                continue
            errata.setdefault(major_version, []).append(erratum)
        return errata

    def _commit(self, platform_name: str, errata: list[RLSA]) -> None:
        saved: dict[str, PutInput] = {}
        for erratum in errata:
            for cve_id in erratum.cve_ids:
                put_input = saved[cve_id] if cve_id in saved else PutInput()
                for pkg in erratum.packages:
                    # Modular packages are skipped: their errata are incomplete upstream.
                    if _MODULAR_MARKER in pkg.release:
                        continue
                    entry = Advisory(
                        fixed_version=_construct_version(pkg.epoch, pkg.version, pkg.release),
                        arches=[pkg.arch],
                        vendor_ids=[erratum.id],
                    )
                    advisories = put_input.advisories.get(pkg.name)
                    if advisories is None:
                        # Non-x86_64 packages get "0.0.0" so that older readers see no fix.
                        put_input.advisories[pkg.name] = Advisories(
                            fixed_version=fixed_version("0.0.0", entry.fixed_version, pkg.arch),
                            entries=[entry],
                        )
                        continue
                    advisories.fixed_version = fixed_version(
                        advisories.fixed_version, entry.fixed_version, pkg.arch
                    )
                    existing = next(
                        (e for e in advisories.entries if e.fixed_version == entry.fixed_version),
                        None,
                    )
                    if existing is None:
                        advisories.entries.append(entry)
                        continue
                    if pkg.arch not in existing.arches:
                        existing.arches.append(pkg.arch)
                    if erratum.id not in existing.vendor_ids:
                        existing.vendor_ids.append(erratum.id)

                if not put_input.advisories:
                    continue

                put_input.platform_name = platform_name
                put_input.cve_id = cve_id
                put_input.vuln = VulnerabilityDetail(
                    severity=generalize_severity(erratum.severity),
                    references=[ref.href for ref in erratum.references],
                    title=erratum.title,
                    description=erratum.description,
                )
                put_input.erratum = erratum
                saved[cve_id] = put_input

        for put_input in saved.values():
            self.put(put_input)

    def put(self, put_input: PutInput) -> None:
        """Store the details and per-package advisories of one CVE."""
        self._store.put_vulnerability_detail(put_input.cve_id, SOURCE.id, put_input.vuln)
        self._store.put_vulnerability_id(put_input.cve_id)
        for pkg_name, advisories in put_input.advisories.items():
            for entry in advisories.entries:
                entry.arches.sort()
                entry.vendor_ids.sort()
            self._store.put_advisory_detail(
                put_input.cve_id, pkg_name, [put_input.platform_name], advisories
            )

    def get(self, release: str, pkg_name: str, arch: str) -> list[Advisory]:
        """Return the advisories of ``pkg_name`` that apply to ``arch``."""
        bucket = PLATFORM_FORMAT.format(release)
        result: list[Advisory] = []
        for vuln_id, raw in self._store.for_each_advisory([bucket], pkg_name).items():
            try:
                advisories = Advisories.from_dict(json.loads(raw.content))
            except (ValueError, TypeError, AttributeError) as exc:
                raise StoreError(f"failed to unmarshal advisory JSON: {exc}") from exc

            # Older databases hold no entries, only a fixed version and custom data.
            if not advisories.entries:
                result.append(
                    Advisory(
                        vulnerability_id=vuln_id,
                        fixed_version=advisories.fixed_version,
                        data_source=raw.source,
                        custom=advisories.custom,
                    )
                )
                continue

            for entry in advisories.entries:
                if arch not in entry.arches:
                    continue
                entry.vulnerability_id = vuln_id
                entry.data_source = raw.source
                result.append(entry)
        return result