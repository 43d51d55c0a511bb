"""Merging per-source vulnerability details into one record."""

from __future__ import annotations

import logging

from vulnfeeds.store import Store, StoreError
from vulnfeeds.types import (
    ALMA,
    ALPINE,
    AMAZON,
    AQUA,
    ARCH_LINUX,
    AZURE_LINUX,
    CBL_MARINER,
    COCOAPODS,
    CVSS,
    DEBIAN,
    GHSA,
    GLAD,
    GO,
    K8S_VULNDB,
    NODEJS_SECURITY_WG,
    NUGET,
    NVD,
    ORACLE_OVAL,
    OSV,
    PHOTON,
    PHP_SECURITY_ADVISORIES,
    PIP,
    REDHAT,
    ROCKY,
    RUBY_SEC,
    SUSE_CVRF,
    SWIFT,
    UBUNTU,
    Severity,
    Vulnerability,
    VulnerabilityDetail,
)

logger = logging.getLogger(__name__)

REJECT_MARKER = "** REJECT **"

# Order in which sources are consulted for fields that take a single value.
SOURCE_PRIORITY = (
    NVD, REDHAT, DEBIAN, UBUNTU, ALPINE, AMAZON, ORACLE_OVAL, SUSE_CVRF, PHOTON,
    ARCH_LINUX, ALMA, ROCKY, CBL_MARINER, AZURE_LINUX, RUBY_SEC, PHP_SECURITY_ADVISORIES,
    NODEJS_SECURITY_WG, GHSA, GLAD, AQUA, OSV, K8S_VULNDB,
)

Details = dict[str, VulnerabilityDetail]


def _prioritised(details: Details):
    return (details[source] for source in SOURCE_PRIORITY if source in details)


def score_to_severity(score: float) -> Severity:
    if score >= 9.0:
        return Severity.CRITICAL
    if score >= 7.0:
        return Severity.HIGH
    if score >= 4.0:
        return Severity.MEDIUM
    if score > 0.0:
        return Severity.LOW
    return Severity.UNKNOWN


def normalize_pkg_name(ecosystem: str, pkg_name: str) -> str:
    """Bring a package name into the canonical form of its ecosystem."""
    if ecosystem == PIP:
        # Distribution names compare case-insensitively with '-' and '_' equivalent.
        return pkg_name.lower().replace("_", "-")
    if ecosystem == SWIFT:
        if pkg_name.startswith("https://"):
            pkg_name = pkg_name[len("https://"):]
        if pkg_name.endswith(".git"):
            pkg_name = pkg_name[: -len(".git")]
        return pkg_name
    if ecosystem in (NUGET, GO, COCOAPODS):
        return pkg_name
    return pkg_name.lower()


def _cvss(details: Details) -> dict[str, CVSS]:
    result = {}
    for vendor, d in details.items():
        if (
            (not d.cvss_vector or d.cvss_score == 0)
            and (not d.cvss_vector_v3 or d.cvss_score_v3 == 0)
            and (not d.cvss_vector_v40 or d.cvss_score_v40 == 0)
        ):
            continue
        result[vendor] = CVSS(
            v2_vector=d.cvss_vector,
            v3_vector=d.cvss_vector_v3,
            v40_vector=d.cvss_vector_v40,
            v2_score=d.cvss_score,
            v3_score=d.cvss_score_v3,
            v40_score=d.cvss_score_v40,
        )
    return result


def _vendor_severity(details: Details) -> dict[str, Severity]:
    result = {}
    for vendor, d in details.items():
        if d.severity_v40 != Severity.UNKNOWN:
            result[vendor] = d.severity_v40
        elif d.severity_v3 != Severity.UNKNOWN:
            result[vendor] = d.severity_v3
        elif d.severity != Severity.UNKNOWN:
            result[vendor] = d.severity
        elif d.cvss_score_v40 > 0:
            result[vendor] = score_to_severity(d.cvss_score_v40)
        elif d.cvss_score_v3 > 0:
            result[vendor] = score_to_severity(d.cvss_score_v3)
        elif d.cvss_score > 0:
            result[vendor] = score_to_severity(d.cvss_score)
    return result


def _severity(details: Details) -> Severity:
    for d in _prioritised(details):
        if d.cvss_score_v40 > 0:
            return score_to_severity(d.cvss_score_v40)
        if d.cvss_score_v3 > 0:
            return score_to_severity(d.cvss_score_v3)
        if d.cvss_score > 0:
            return score_to_severity(d.cvss_score)
        for severity in (d.severity_v40, d.severity_v3, d.severity):
            if severity != Severity.UNKNOWN:
                return severity
    return Severity.UNKNOWN


def _first(details: Details, attribute: str):
    return next((getattr(d, attribute) for d in _prioritised(details) if getattr(d, attribute)), None)


def _references(details: Details) -> list[str]:
    references = set()
    for source in SOURCE_PRIORITY:
        # Amazon lists references unrelated to the vulnerability itself.
        if source == AMAZON or source not in details:
            continue
        for ref in details[source].references:
            references.update(ref.strip().split("\n"))
    return sorted(references)


class VulnerabilityService:
    """Looks up and merges vulnerability details held in a store."""

    def __init__(self, store: Store | None) -> None:
        self._store = store

    def get_details(self, vuln_id: str) -> Details | None:
        """Return the details of every source, or None if there are none or they are unreadable."""
        if self._store is None:
            return None
        try:
            details = self._store.get_vulnerability_detail(vuln_id)
        except StoreError as exc:
            logger.warning("Failed to get vulnerability detail: %s", exc)
            return None
        return details or None

    def is_rejected(self, details: Details) -> bool:
        return any(REJECT_MARKER in d.description for d in _prioritised(details))

    def normalize(self, details: Details) -> Vulnerability:
        nvd = details.get(NVD)
        return Vulnerability(
            title=_first(details, "title") or "",
            description=_first(details, "description") or "",
            severity=str(_severity(details)),
            cwe_ids=list(_first(details, "cwe_ids") or []),
            vendor_severity=_vendor_severity(details),
            cvss=_cvss(details),
            references=_references(details),
            published_date=nvd.published_date if nvd else None,
            last_modified_date=nvd.last_modified_date if nvd else None,
        )