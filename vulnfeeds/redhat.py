"""Red Hat security data API feed."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from vulnfeeds.store import Store, VulnSrc as _VulnSrcBase, file_walk
from vulnfeeds.types import REDHAT, Severity, VulnerabilityDetail

logger = logging.getLogger(__name__)

VULN_LIST_DIR = "vuln-list-redhat"
API_DIR = "api"
RESOURCE_URL = "https://access.redhat.com/security/cve/{}"

_DECODE_ERROR = "failed to decode RedHat JSON"
_AFFECTED_RELEASE_FIELDS = ("product_name", "release_date", "advisory", "package", "cpe")
_PACKAGE_STATE_FIELDS = ("product_name", "fix_state", "package_name", "cpe")

_THREAT_SEVERITIES = {
    "Low": Severity.LOW,
    "Moderate": Severity.MEDIUM,
    "Important": Severity.HIGH,
    "Critical": Severity.CRITICAL,
}


@dataclass
class RedhatCVE:
    """One CVE document from the Red Hat security data API."""

    name: str = ""
    threat_severity: str = ""
    public_date: str = ""
    bugzilla_description: str = ""
    bugzilla_id: str = ""
    bugzilla_url: str = ""
    cvss_base_score: str = ""
    cvss_scoring_vector: str = ""
    cvss_status: str = ""
    cvss3_base_score: str = ""
    cvss3_scoring_vector: str = ""
    cvss3_status: str = ""
    iava: str = ""
    cwe: str = ""
    statement: str = ""
    acknowledgement: str = ""
    mitigation: str = ""
    document_distribution: str = ""
    details: list[str] = field(default_factory=list)
    references: list[str] = field(default_factory=list)
    affected_release: list[dict[str, str]] = field(default_factory=list)
    package_state: list[dict[str, str]] = field(default_factory=list)


def _string(data: dict[str, Any], key: str, error: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{error}: {key} must be a string, not {type(value).__name__}")
    return value


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{_DECODE_ERROR}: {key} must be an object")
    return value


def _string_list(data: dict[str, Any], key: str) -> list[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValueError(f"{_DECODE_ERROR}: {key} must be a list of strings")
    return list(value)


def _records(value: Any, fields: tuple[str, ...], label: str) -> list[dict[str, str]]:
    """Accept a single object or a list of objects; anything else is an error."""
    if value is None:
        return []
    if isinstance(value, list):
        items = value
    elif isinstance(value, dict):
        items = [value]
    else:
        raise ValueError(f"unknown {label} type")
    error = f"unknown {label} type"
    records = []
    for item in items:
        if item is None:
            item = {}
        if not isinstance(item, dict):
            raise ValueError(f"{error}: expected an object, got {type(item).__name__}")
        records.append({name: _string(item, name, error) for name in fields})
    return records


def parse_cve(content: str | bytes) -> RedhatCVE:
    """Decode one CVE document; affected releases and package states may be objects or lists."""
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ValueError(f"{_DECODE_ERROR}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"{_DECODE_ERROR}: expected an object, got {type(data).__name__}")

    bugzilla = _section(data, "bugzilla")
    cvss = _section(data, "cvss")
    cvss3 = _section(data, "cvss3")
    return RedhatCVE(
        name=_string(data, "name", _DECODE_ERROR),
        threat_severity=_string(data, "threat_severity", _DECODE_ERROR),
        public_date=_string(data, "public_date", _DECODE_ERROR),
        bugzilla_description=_string(bugzilla, "description", _DECODE_ERROR),
        bugzilla_id=_string(bugzilla, "id", _DECODE_ERROR),
        bugzilla_url=_string(bugzilla, "url", _DECODE_ERROR),
        cvss_base_score=_string(cvss, "cvss_base_score", _DECODE_ERROR),
        cvss_scoring_vector=_string(cvss, "cvss_scoring_vector", _DECODE_ERROR),
        cvss_status=_string(cvss, "status", _DECODE_ERROR),
        cvss3_base_score=_string(cvss3, "cvss3_base_score", _DECODE_ERROR),
        cvss3_scoring_vector=_string(cvss3, "cvss3_scoring_vector", _DECODE_ERROR),
        cvss3_status=_string(cvss3, "status", _DECODE_ERROR),
        iava=_string(data, "iava", _DECODE_ERROR),
        cwe=_string(data, "cwe", _DECODE_ERROR),
        statement=_string(data, "statement", _DECODE_ERROR),
        acknowledgement=_string(data, "acknowledgement", _DECODE_ERROR),
        mitigation=_string(data, "mitigation", _DECODE_ERROR),
        document_distribution=_string(data, "document_distribution", _DECODE_ERROR),
        details=_string_list(data, "details"),
        references=_string_list(data, "references"),
        affected_release=_records(
            data.get("affected_release"), _AFFECTED_RELEASE_FIELDS, "affected_release"
        ),
        package_state=_records(data.get("package_state"), _PACKAGE_STATE_FIELDS, "package_state"),
    )


def severity_from_threat(sev: str) -> Severity:
    """Map a Red Hat threat severity, in any letter case, to a severity."""
    return _THREAT_SEVERITIES.get(sev.title(), Severity.UNKNOWN)


def _score(text: str) -> float:
    try:
        return float(text)
    except ValueError:
        return 0.0


class VulnSrc(_VulnSrcBase):
    """Loads Red Hat CVE details into a store."""

    def __init__(self, store: Store) -> None:
        self._store = store

    def name(self) -> str:
        return REDHAT

    def update(self, directory: str | os.PathLike[str]) -> None:
        root = Path(directory, VULN_LIST_DIR, API_DIR)
        cves = [parse_cve(path.read_bytes()) for path in file_walk(root)]
        logger.info("Saving Red Hat DB")
        with self._store.transaction():
            for cve in cves:
                self._put_vulnerability_detail(cve)

    def _put_vulnerability_detail(self, cve: RedhatCVE) -> None:
        title = cve.bugzilla_description.strip().removeprefix(cve.name)
        detail = VulnerabilityDetail(
            cvss_score=_score(cve.cvss_base_score),
            cvss_vector=cve.cvss_scoring_vector,
            cvss_score_v3=_score(cve.cvss3_base_score),
            cvss_vector_v3=cve.cvss3_scoring_vector,
            severity=severity_from_threat(cve.threat_severity),
            references=[*cve.references, RESOURCE_URL.format(cve.name)],
            title=title.strip(),
            description="".join(cve.details).strip(),
        )
        self._store.put_vulnerability_detail(cve.name, REDHAT, detail)
        self._store.put_vulnerability_id(cve.name)