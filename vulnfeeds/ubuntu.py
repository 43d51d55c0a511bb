"""Ubuntu CVE Tracker feed."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from vulnfeeds.store import Store, VulnSrc as _VulnSrcBase, file_walk
from vulnfeeds.types import UBUNTU, Advisory, DataSource, Severity, VulnerabilityDetail

logger = logging.getLogger(__name__)

UBUNTU_DIR = "ubuntu"
PLATFORM_FORMAT = "ubuntu {}"
TARGET_STATUSES = ("needed", "deferred", "released")

UBUNTU_RELEASES_MAPPING = {
    "precise": "12.04",
    "quantal": "12.10",
    "raring": "13.04",
    "saucy": "13.10",
    "trusty": "14.04",
    "utopic": "14.10",
    "vivid": "15.04",
    "wily": "15.10",
    "xenial": "16.04",
    "yakkety": "16.10",
    "zesty": "17.04",
    "artful": "17.10",
    "bionic": "18.04",
    "cosmic": "18.10",
    "disco": "19.04",
    "eoan": "19.10",
    "focal": "20.04",
    "groovy": "20.10",
    "hirsute": "21.04",
    "impish": "21.10",
    "jammy": "22.04",
    "kinetic": "22.10",
    "lunar": "23.04",
    "mantic": "23.10",
    "noble": "24.04",
    "oracular": "24.10",
    # ESM versions
    "precise/esm": "12.04-ESM",
    "trusty/esm": "14.04-ESM",
    "esm-infra/xenial": "16.04-ESM",
}

SOURCE = DataSource(
    id=UBUNTU,
    name="Ubuntu CVE Tracker",
    url="https://git.launchpad.net/ubuntu-cve-tracker",
)

_DECODE_ERROR = "failed to decode Ubuntu JSON"

_PRIORITIES = {
    "untriaged": Severity.UNKNOWN,
    "negligible": Severity.LOW,
    "low": Severity.LOW,
    "medium": Severity.MEDIUM,
    "high": Severity.HIGH,
    "critical": Severity.CRITICAL,
}


@dataclass
class Status:
    """The state of a package in one release; ``note`` holds the fixed version when released."""

    status: str = ""
    note: str = ""


@dataclass
class UbuntuCVE:
    """One CVE entry of the Ubuntu CVE Tracker."""

    description: str = ""
    candidate: str = ""
    priority: str = ""
    patches: dict[str, dict[str, Status]] = field(default_factory=dict)
    references: list[str] = field(default_factory=list)
    public_date: str = ""


def _field(data: dict[str, Any], name: str) -> Any:
    """Look a key up exactly first, then ignoring case."""
    if name in data:
        return data[name]
    lowered = name.lower()
    return next((value for key, value in data.items() if key.lower() == lowered), None)


def _string(data: dict[str, Any], name: str) -> str:
    value = _field(data, name)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{_DECODE_ERROR}: {name} must be a string")
    return value


def _object(value: Any, what: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{_DECODE_ERROR}: {what} must be an object")
    return value


def _parse_cve(content: bytes) -> UbuntuCVE:
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ValueError(f"{_DECODE_ERROR}: {exc}") from exc
    data = _object(data, "document")

    patches = {
        pkg_name: {
            release: Status(status=_string(status, "Status"), note=_string(status, "Note"))
            for release, raw_status in _object(patch, "patch").items()
            for status in [_object(raw_status, "status")]
        }
        for pkg_name, patch in _object(_field(data, "Patches"), "Patches").items()
    }
    references = _field(data, "References") or []
    if not isinstance(references, list) or not all(isinstance(ref, str) for ref in references):
        raise ValueError(f"{_DECODE_ERROR}: References must be a list of strings")

    return UbuntuCVE(
        description=_string(data, "description"),
        candidate=_string(data, "Candidate"),
        priority=_string(data, "Priority"),
        patches=patches,
        references=list(references),
        public_date=_string(data, "PublicDate"),
    )


def severity_from_priority(priority: str) -> Severity:
    """Convert an Ubuntu priority into a severity."""
    return _PRIORITIES.get(priority, Severity.UNKNOWN)


def default_put(store: Store, cve: Any) -> None:
    """Store the advisories of every tracked release whose status matters."""
    if not isinstance(cve, UbuntuCVE):
        raise TypeError("unknown type")

    for pkg_name, patch in cve.patches.items():
        for release, status in patch.items():
            if status.status not in TARGET_STATUSES:
                continue
            os_version = UBUNTU_RELEASES_MAPPING.get(release)
            if os_version is None:
                continue
            platform_name = PLATFORM_FORMAT.format(os_version)
            store.put_data_source(platform_name, SOURCE)

            advisory = Advisory(fixed_version=status.note if status.status == "released" else "")
            store.put_advisory_detail(cve.candidate, pkg_name, [platform_name], advisory)

            detail = VulnerabilityDetail(
                severity=severity_from_priority(cve.priority),
                references=list(cve.references),
                description=cve.description,
            )
            store.put_vulnerability_detail(cve.candidate, SOURCE.id, detail)
            store.put_vulnerability_id(cve.candidate)


PutFunc = Callable[[Store, Any], None]


class VulnSrc(_VulnSrcBase):
    """Loads Ubuntu CVE Tracker entries into a store."""

    def __init__(self, store: Store, put: PutFunc = default_put) -> None:
        self._store = store
        self._put = put

    def name(self) -> str:
        return SOURCE.id

    def update(self, directory: str | os.PathLike[str]) -> None:
        root = Path(directory, "vuln-list", UBUNTU_DIR)
        cves = [_parse_cve(path.read_bytes()) for path in file_walk(root)]
        logger.info("Saving Ubuntu DB")
        with self._store.transaction():
            for cve in cves:
                self._put(self._store, cve)

    def get(self, release: str, pkg_name: str) -> list[Advisory]:
        return self._store.get_advisories(PLATFORM_FORMAT.format(release), pkg_name)