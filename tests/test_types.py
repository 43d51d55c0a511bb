from datetime import datetime, timezone

import pytest

from vulnfeeds.types import (
    ECOSYSTEMS,
    PIP,
    Advisories,
    Advisory,
    DataSource,
    Severity,
    VulnerabilityDetail,
)


def test_severity_ordering_and_value():
    assert Severity(2) is Severity.MEDIUM
    assert Severity.LOW < Severity.MEDIUM < Severity.HIGH < Severity.CRITICAL
    assert str(Severity.MEDIUM) == "MEDIUM"


def test_data_source_round_trip():
    source = DataSource(id="rocky", name="Rocky Linux updateinfo", url="https://download.rockylinux.org/pub/rocky/")
    assert DataSource.from_dict(source.to_dict()) == source


def test_empty_data_source_is_falsy_and_serialises_empty():
    assert not DataSource()
    assert DataSource().to_dict() == {}


def test_advisory_omits_empty_fields():
    advisory = Advisory(fixed_version="1.2.3")
    assert list(advisory.to_dict().values()) == ["1.2.3"]
    assert Advisory.from_dict(advisory.to_dict()) == advisory


def test_advisory_round_trip_with_source():
    advisory = Advisory(
        vulnerability_id="CVE-2022-0396",
        vendor_ids=["RLSA-2022:7643"],
        arches=["aarch64", "x86_64"],
        fixed_version="32:9.16.23-0.9.el8.1",
        data_source=DataSource(id="rocky", name="Rocky Linux updateinfo"),
        custom={"key": "value"},
    )
    assert Advisory.from_dict(advisory.to_dict()) == advisory


def test_advisories_round_trip():
    advisories = Advisories(
        fixed_version="0.0.0",
        entries=[
            Advisory(fixed_version="32:9.11.26-4.el8_4", arches=["aarch64"], vendor_ids=["RLSA-2021:1989"]),
        ],
    )
    assert Advisories.from_dict(advisories.to_dict()) == advisories


@pytest.mark.parametrize(
    "published",
    [
        datetime(2001, 1, 1, 1, 2, 3, tzinfo=timezone.utc),
        datetime(2024, 6, 7, 10, 15, 12, 293000, tzinfo=timezone.utc),
    ],
)
def test_vulnerability_detail_round_trip(published):
    detail = VulnerabilityDetail(
        cvss_score=4.2,
        cvss_vector="AV:N/AC:M/Au:N/C:N/I:P/A:N",
        cvss_score_v3=5.6,
        severity_v3=Severity.HIGH,
        cwe_ids=["CWE-125", "CWE-200"],
        references=["http://foo-bar.com/baz"],
        title="test vulnerability",
        published_date=published,
    )
    assert VulnerabilityDetail.from_dict(detail.to_dict()) == detail


def test_vulnerability_detail_parses_zulu_time():
    detail = VulnerabilityDetail.from_dict({"LastModifiedDate": "2020-01-01T01:02:03Z"})
    assert detail.last_modified_date == datetime(2020, 1, 1, 1, 2, 3, tzinfo=timezone.utc)


def test_default_detail_serialises_empty():
    assert VulnerabilityDetail().to_dict() == {}
    assert VulnerabilityDetail.from_dict({}) == VulnerabilityDetail()


def test_ecosystems_contain_pip_once():
    assert ECOSYSTEMS.count(PIP) == 1
    assert len(set(ECOSYSTEMS)) == len(ECOSYSTEMS)