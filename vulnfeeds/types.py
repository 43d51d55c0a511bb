"""Core data types and identifiers shared by the vulnerability feeds."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

# Data source identifiers
NVD = "nvd"
REDHAT = "redhat"
REDHAT_OVAL = "redhat-oval"
DEBIAN = "debian"
UBUNTU = "ubuntu"
CENTOS = "centos"
ROCKY = "rocky"
FEDORA = "fedora"
AMAZON = "amazon"
ORACLE_OVAL = "oracle-oval"
SUSE_CVRF = "suse-cvrf"
ALPINE = "alpine"
ARCH_LINUX = "arch-linux"
ALMA = "alma"
AZURE_LINUX = "azure"
CBL_MARINER = "cbl-mariner"
PHOTON = "photon"
RUBY_SEC = "ruby-advisory-db"
PHP_SECURITY_ADVISORIES = "php-security-advisories"
NODEJS_SECURITY_WG = "nodejs-security-wg"
GHSA = "ghsa"
GLAD = "glad"
OSV = "osv"
WOLFI = "wolfi"
CHAINGUARD = "chainguard"
BITNAMI_VULNDB = "bitnami"
K8S_VULNDB = "k8s"
GO_VULNDB = "govulndb"
AQUA = "aqua"

# Ecosystems
UNKNOWN = "unknown"
NPM = "npm"
COMPOSER = "composer"
PIP = "pip"
RUBYGEMS = "rubygems"
CARGO = "cargo"
NUGET = "nuget"
MAVEN = "maven"
GO = "go"
CONAN = "conan"
ERLANG = "erlang"
PUB = "pub"
SWIFT = "swift"
COCOAPODS = "cocoapods"
BITNAMI = "bitnami"
KUBERNETES = "k8s"

ECOSYSTEMS = (
    NPM,
    COMPOSER,
    PIP,
    RUBYGEMS,
    CARGO,
    NUGET,
    MAVEN,
    GO,
    CONAN,
    ERLANG,
    PUB,
    SWIFT,
    COCOAPODS,
    BITNAMI,
    KUBERNETES,
)


class Severity(enum.IntEnum):
    """Normalised severity levels, ordered from least to most severe."""

    UNKNOWN = 0
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4

    def __str__(self) -> str:
        return self.name


def _parse_time(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def _compact(data: dict[str, Any]) -> dict[str, Any]:
    """Drop empty values, the way omitted optional fields are stored."""
    return {key: value for key, value in data.items() if value not in (None, "", [], {}, 0)}


@dataclass
class DataSource:
    """Where a set of advisories came from."""

    id: str = ""
    name: str = ""
    url: str = ""

    def __bool__(self) -> bool:
        return bool(self.id or self.name or self.url)

    def to_dict(self) -> dict[str, Any]:
        return _compact({"ID": self.id, "Name": self.name, "URL": self.url})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DataSource:
        return cls(id=data.get("ID", ""), name=data.get("Name", ""), url=data.get("URL", ""))


@dataclass
class Advisory:
    """A single fix record for one package and one vulnerability."""

    vulnerability_id: str = ""
    vendor_ids: list[str] = field(default_factory=list)
    arches: list[str] = field(default_factory=list)
    fixed_version: str = ""
    data_source: DataSource | None = None
    custom: Any = None

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "VulnerabilityID": self.vulnerability_id,
                "VendorIDs": list(self.vendor_ids),
                "Arches": list(self.arches),
                "FixedVersion": self.fixed_version,
                "DataSource": self.data_source.to_dict() if self.data_source else None,
                "Custom": self.custom,
            }
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Advisory:
        source = data.get("DataSource")
        return cls(
            vulnerability_id=data.get("VulnerabilityID", ""),
            vendor_ids=list(data.get("VendorIDs") or []),
            arches=list(data.get("Arches") or []),
            fixed_version=data.get("FixedVersion", ""),
            data_source=DataSource.from_dict(source) if source else None,
            custom=data.get("Custom"),
        )


@dataclass
class Advisories:
    """Per-architecture advisory entries with a backward-compatible fixed version."""

    fixed_version: str = ""
    entries: list[Advisory] = field(default_factory=list)
    custom: Any = None

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "FixedVersion": self.fixed_version,
                "Entries": [entry.to_dict() for entry in self.entries],
                "Custom": self.custom,
            }
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Advisories:
        return cls(
            fixed_version=data.get("FixedVersion", ""),
            entries=[Advisory.from_dict(entry) for entry in data.get("Entries") or []],
            custom=data.get("Custom"),
        )


@dataclass
class VulnerabilityDetail:
    """Vulnerability metadata as reported by one data source."""

    id: str = ""
    cvss_score: float = 0.0
    cvss_vector: str = ""
    cvss_score_v3: float = 0.0
    cvss_vector_v3: str = ""
    cvss_score_v40: float = 0.0
    cvss_vector_v40: str = ""
    severity: Severity = Severity.UNKNOWN
    severity_v3: Severity = Severity.UNKNOWN
    severity_v40: Severity = Severity.UNKNOWN
    cwe_ids: list[str] = field(default_factory=list)
    references: list[str] = field(default_factory=list)
    title: str = ""
    description: str = ""
    published_date: datetime | None = None
    last_modified_date: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return _compact(
            {
                "ID": self.id,
                "CvssScore": self.cvss_score,
                "CvssVector": self.cvss_vector,
                "CvssScoreV3": self.cvss_score_v3,
                "CvssVectorV3": self.cvss_vector_v3,
                "CvssScoreV40": self.cvss_score_v40,
                "CvssVectorV40": self.cvss_vector_v40,
                "Severity": int(self.severity),
                "SeverityV3": int(self.severity_v3),
                "SeverityV40": int(self.severity_v40),
                "CweIDs": list(self.cwe_ids),
                "References": list(self.references),
                "Title": self.title,
                "Description": self.description,
                "PublishedDate": self.published_date.isoformat() if self.published_date else None,
                "LastModifiedDate": (
                    self.last_modified_date.isoformat() if self.last_modified_date else None
                ),
            }
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VulnerabilityDetail:
        return cls(
            id=data.get("ID", ""),
            cvss_score=float(data.get("CvssScore", 0.0)),
            cvss_vector=data.get("CvssVector", ""),
            cvss_score_v3=float(data.get("CvssScoreV3", 0.0)),
            cvss_vector_v3=data.get("CvssVectorV3", ""),
            cvss_score_v40=float(data.get("CvssScoreV40", 0.0)),
            cvss_vector_v40=data.get("CvssVectorV40", ""),
            severity=Severity(int(data.get("Severity", 0))),
            severity_v3=Severity(int(data.get("SeverityV3", 0))),
            severity_v40=Severity(int(data.get("SeverityV40", 0))),
            cwe_ids=list(data.get("CweIDs") or []),
            references=list(data.get("References") or []),
            title=data.get("Title", ""),
            description=data.get("Description", ""),
            published_date=_parse_time(data.get("PublishedDate")),
            last_modified_date=_parse_time(data.get("LastModifiedDate")),
        )


@dataclass
class CVSS:
    """CVSS vectors and scores from one vendor."""

    v2_vector: str = ""
    v3_vector: str = ""
    v40_vector: str = ""
    v2_score: float = 0.0
    v3_score: float = 0.0
    v40_score: float = 0.0


@dataclass
class Vulnerability:
    """A vulnerability merged from the details of all data sources."""

    title: str = ""
    description: str = ""
    severity: str = ""
    cwe_ids: list[str] = field(default_factory=list)
    vendor_severity: dict[str, Severity] = field(default_factory=dict)
    cvss: dict[str, CVSS] = field(default_factory=dict)
    references: list[str] = field(default_factory=list)
    published_date: datetime | None = None
    last_modified_date: datetime | None = None