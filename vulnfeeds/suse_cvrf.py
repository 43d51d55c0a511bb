"""SUSE and openSUSE CVRF feed."""

from __future__ import annotations

import enum
import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from vulnfeeds.store import Store, StoreError, VulnSrc as _VulnSrcBase, file_walk
from vulnfeeds.types import SUSE_CVRF, Advisory, DataSource, Severity, VulnerabilityDetail

logger = logging.getLogger(__name__)

SUSE_DIR = Path("cvrf", "suse")

PLATFORM_OPENSUSE_LEAP_FORMAT = "openSUSE Leap {}"
PLATFORM_OPENSUSE_TUMBLEWEED = "openSUSE Tumbleweed"
PLATFORM_SUSE_LINUX_FORMAT = "SUSE Linux Enterprise {}"
PLATFORM_SUSE_LINUX_MICRO_FORMAT = "SUSE Linux Enterprise Micro {}"

SOURCE = DataSource(
    id=SUSE_CVRF,
    name="SUSE CVRF",
    url="https://ftp.suse.com/pub/projects/security/cvrf/",
)

_DECODE_ERROR = "failed to decode SUSE CVRF JSON"

_THREAT_SEVERITIES = {
    "low": Severity.LOW,
    "moderate": Severity.MEDIUM,
    "important": Severity.HIGH,
    "critical": Severity.CRITICAL,
}

_VERSION_RE = re.compile(
    r"v?\d+(\.\d+)*"
    r"(-?[0-9A-Za-z\-~]+(\.[0-9A-Za-z\-~]+)*)?"
    r"(\+[0-9A-Za-z\-~]+(\.[0-9A-Za-z\-~]+)*)?"
)
_INTEGER_RE = re.compile(r"[+-]?\d+")


class Distribution(enum.Enum):
    """The family of products a feed covers."""

    SUSE_ENTERPRISE_LINUX = 0
    SUSE_ENTERPRISE_LINUX_MICRO = 1
    OPENSUSE = 2
    OPENSUSE_TUMBLEWEED = 3


@dataclass
class DocumentNote:
    """A note of a CVRF document."""

    text: str = ""
    title: str = ""
    type: str = ""


@dataclass
class Relationship:
    """Ties a package build to the product it ships in."""

    product_reference: str = ""
    relates_to_product_reference: str = ""
    relation_type: str = ""


@dataclass
class Threat:
    """A threat rating of one vulnerability."""

    type: str = ""
    severity: str = ""


@dataclass
class SuseCvrf:
    """One CVRF security advisory."""

    title: str = ""
    tracking_id: str = ""
    notes: list[DocumentNote] = field(default_factory=list)
    relationships: list[Relationship] = field(default_factory=list)
    references: list[str] = field(default_factory=list)
    threats: list[Threat] = field(default_factory=list)


@dataclass
class Package:
    """A package name with the version that fixes it."""

    name: str = ""
    fixed_version: str = ""


@dataclass
class AffectedPackage:
    """A fixed package on one OS release."""

    package: Package
    os_ver: str


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


def _objects(value: Any, what: str) -> list[dict[str, Any]]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"{_DECODE_ERROR}: {what} must be a list")
    return [_object(item, what) for item in value]


def _parse_cvrf(content: bytes) -> SuseCvrf:
    try:
        data = json.loads(content)
    except ValueError as exc:
        raise ValueError(f"{_DECODE_ERROR}: {exc}") from exc
    data = _object(data, "document")
    tracking = _object(_field(data, "Tracking"), "Tracking")
    product_tree = _object(_field(data, "ProductTree"), "ProductTree")
    return SuseCvrf(
        title=_string(data, "Title"),
        tracking_id=_string(tracking, "ID"),
        notes=[
            DocumentNote(
                text=_string(note, "Text"),
                title=_string(note, "Title"),
                type=_string(note, "Type"),
            )
            for note in _objects(_field(data, "Notes"), "Notes")
        ],
        relationships=[
            Relationship(
                product_reference=_string(rel, "ProductReference"),
                relates_to_product_reference=_string(rel, "RelatesToProductReference"),
                relation_type=_string(rel, "RelationType"),
            )
            for rel in _objects(_field(product_tree, "Relationships"), "Relationships")
        ],
        references=[
            _string(ref, "URL") for ref in _objects(_field(data, "References"), "References")
        ],
        threats=[
            Threat(type=_string(threat, "Type"), severity=_string(threat, "Severity"))
            for vuln in _objects(_field(data, "Vulnerabilities"), "Vulnerabilities")
            for threat in _objects(_field(vuln, "Threats"), "Threats")
        ],
    )


def severity_from_threat(sev: str) -> Severity:
    """Map a lower-case SUSE threat rating to a severity."""
    return _THREAT_SEVERITIES.get(sev, Severity.UNKNOWN)


def _is_version(text: str) -> bool:
    return _VERSION_RE.fullmatch(text) is not None


def _suse_linux_version(platform_name: str) -> str:
    words = platform_name.replace("-", " ").split()
    numbers: list[str] = []
    # The first word is never a version; scan from the end for at most two numbers.
    for word in reversed(words[1:]):
        candidate = word.removeprefix("SP")
        if not _INTEGER_RE.fullmatch(candidate):
            continue
        numbers.append(str(int(candidate)))
        if len(numbers) == 2:
            break
    if not numbers:
        logger.warning("failed to detect version: %s", platform_name)
        return ""
    if len(numbers) == 1:
        return PLATFORM_SUSE_LINUX_FORMAT.format(numbers[0])
    return PLATFORM_SUSE_LINUX_FORMAT.format(f"{numbers[1]}.{numbers[0]}")


def get_os_version(platform_name: str) -> str:
    """Turn a CVRF product name into a platform bucket name, or "" if unsupported."""
    if "SUSE Manager" in platform_name:
        return ""
    if platform_name.startswith("openSUSE Tumbleweed"):
        # Tumbleweed is a rolling release without versions.
        return PLATFORM_OPENSUSE_TUMBLEWEED
    if platform_name.startswith("openSUSE Leap"):
        words = platform_name.split(" ")
        if len(words) < 3 or not _is_version(words[2]):
            logger.warning("invalid version: %s", platform_name)
            return ""
        return PLATFORM_OPENSUSE_LEAP_FORMAT.format(words[2])
    if platform_name.startswith("SUSE Linux Enterprise Micro"):
        words = platform_name.split(" ")
        if len(words) < 5 or not _is_version(words[4]):
            logger.warning("invalid version: %s", platform_name)
            return ""
        return PLATFORM_SUSE_LINUX_MICRO_FORMAT.format(words[4])
    if "SUSE Linux Enterprise" in platform_name:
        if platform_name.startswith("SUSE Linux Enterprise Storage"):
            return ""
        return _suse_linux_version(platform_name)
    return ""


def split_pkg_name(pkg_name: str) -> tuple[str, str]:
    """Split "name-version-release" into the name and "version-release"."""
    name, sep, release = pkg_name.rpartition("-")
    if not sep:
        return "", ""
    name, sep, version = name.rpartition("-")
    if not sep:
        return "", ""
    return name, f"{version}-{release}"


def get_affected_packages(relationships: list[Relationship]) -> list[AffectedPackage]:
    """Return the packages of every relationship that names a supported platform."""
    packages = []
    for relationship in relationships:
        os_ver = get_os_version(relationship.relates_to_product_reference)
        if not os_ver:
            continue
        name, version = split_pkg_name(relationship.product_reference)
        packages.append(AffectedPackage(package=Package(name=name, fixed_version=version), os_ver=os_ver))
    return packages


def get_detail(notes: list[DocumentNote]) -> str:
    """Return the text of the general "Details" note, or ""."""
    return next(
        (note.text for note in notes if note.type == "General" and note.title == "Details"),
        "",
    )


class VulnSrc(_VulnSrcBase):
    """Loads SUSE CVRF advisories of one distribution into a store."""

    def __init__(self, dist: Distribution, store: Store) -> None:
        self._dist = dist
        self._store = store

    def name(self) -> str:
        if self._dist is Distribution.OPENSUSE:
            return "opensuse-cvrf"
        if self._dist is Distribution.OPENSUSE_TUMBLEWEED:
            return "opensuse-tumbleweed-cvrf"
        return SOURCE.id

    def update(self, directory: str | os.PathLike[str]) -> None:
        logger.info("Saving SUSE CVRF")
        root = Path(directory, "vuln-list", SUSE_DIR)
        if self._dist in (Distribution.SUSE_ENTERPRISE_LINUX, Distribution.SUSE_ENTERPRISE_LINUX_MICRO):
            root = root / "suse"
        elif self._dist in (Distribution.OPENSUSE, Distribution.OPENSUSE_TUMBLEWEED):
            root = root / "opensuse"
        else:
            raise ValueError("unknown distribution")

        cvrfs = [_parse_cvrf(path.read_bytes()) for path in file_walk(root)]
        with self._store.transaction():
            for cvrf in cvrfs:
                self._commit(cvrf)

    def _commit(self, cvrf: SuseCvrf) -> None:
        affected = get_affected_packages(cvrf.relationships)
        if not affected:
            return
        for pkg in affected:
            self._store.put_data_source(pkg.os_ver, SOURCE)
            self._store.put_advisory_detail(
                cvrf.tracking_id,
                pkg.package.name,
                [pkg.os_ver],
                Advisory(fixed_version=pkg.package.fixed_version),
            )

        severity = max(
            (severity_from_threat(threat.severity) for threat in cvrf.threats),
            default=Severity.UNKNOWN,
        )
        detail = VulnerabilityDetail(
            references=list(cvrf.references),
            title=cvrf.title,
            description=get_detail(cvrf.notes),
            severity=severity,
        )
        self._store.put_vulnerability_detail(cvrf.tracking_id, SOURCE.id, detail)
        self._store.put_vulnerability_id(cvrf.tracking_id)

    def get(self, version: str, pkg_name: str) -> list[Advisory]:
        """Return the advisories of ``pkg_name`` on the given release."""
        if self._dist is Distribution.SUSE_ENTERPRISE_LINUX_MICRO:
            bucket = PLATFORM_SUSE_LINUX_MICRO_FORMAT.format(version)
        elif self._dist is Distribution.SUSE_ENTERPRISE_LINUX:
            bucket = PLATFORM_SUSE_LINUX_FORMAT.format(version)
        elif self._dist is Distribution.OPENSUSE:
            bucket = PLATFORM_OPENSUSE_LEAP_FORMAT.format(version)
        elif self._dist is Distribution.OPENSUSE_TUMBLEWEED:
            bucket = PLATFORM_OPENSUSE_TUMBLEWEED
        else:
            raise ValueError("unknown distribution")
        try:
            return self._store.get_advisories(bucket, pkg_name)
        except StoreError as exc:
            raise StoreError(f"failed to get SUSE advisories: {exc}") from exc