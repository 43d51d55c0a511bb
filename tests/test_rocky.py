import json

import pytest

from vulnfeeds.rocky import (
    RLSA,
    SOURCE,
    Package,
    PutInput,
    VulnSrc,
    fixed_version,
    generalize_severity,
)
from vulnfeeds.store import Store, StoreError
from vulnfeeds.types import Advisories, Advisory, DataSource, Severity, VulnerabilityDetail

BIND_DESCRIPTION = "For more information visit https://errata.rockylinux.org/RLSA-2021:1989"
BIND_REFERENCE = "https://access.redhat.com/hydra/rest/securitydata/cve/CVE-2021-25215.json"


def _pkg(name, arch, epoch="32", version="9.11.26", release="4.el8_4"):
    return {"name": name, "epoch": epoch, "version": version, "release": release, "arch": arch}


def _erratum(
    rlsa_id,
    cve_ids,
    packages,
    severity="Important",
    title="Important: bind security update",
    description=BIND_DESCRIPTION,
    references=(BIND_REFERENCE,),
):
    return {
        "id": rlsa_id,
        "title": title,
        "severity": severity,
        "description": description,
        "packages": packages,
        "references": [{"href": href} for href in references],
        "cveids": cve_ids,
        "issued": {"date": "2021-06-01"},
    }


def _write(base, rel_path, document):
    path = base / "vuln-list" / "rocky" / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(document) if not isinstance(document, str) else document)


def _update(tmp_path):
    store = Store()
    VulnSrc(store).update(tmp_path)
    return store


def _advisories(store, keys):
    return Advisories.from_dict(store.get(["advisory-detail", *keys]))


def _detail(store, cve_id):
    return VulnerabilityDetail.from_dict(store.get(["vulnerability-detail", cve_id, "rocky"]))


def test_update_happy(tmp_path):
    packages = ["bind-export-libs", "bind-export-devel"]
    _write(
        tmp_path,
        "8/BaseOS/x86_64/2021/RLSA-2021-1989.json",
        _erratum(
            "RLSA-2021:1989",
            ["CVE-2021-25215"],
            [_pkg(name, arch) for name in packages for arch in ("x86_64", "i686")],
        ),
    )
    _write(
        tmp_path,
        "8/BaseOS/aarch64/2021/RLSA-2021-1989.json",
        _erratum("RLSA-2021:1989", ["CVE-2021-25215"], [_pkg(name, "aarch64") for name in packages]),
    )
    store = _update(tmp_path)

    assert DataSource.from_dict(store.get(["data-source", "rocky 8"])) == DataSource(
        id="rocky",
        name="Rocky Linux updateinfo",
        url="https://download.rockylinux.org/pub/rocky/",
    )
    expected = Advisories(
        fixed_version="32:9.11.26-4.el8_4",
        entries=[
            Advisory(
                fixed_version="32:9.11.26-4.el8_4",
                arches=["aarch64", "i686", "x86_64"],
                vendor_ids=["RLSA-2021:1989"],
            )
        ],
    )
    for name in packages:
        assert _advisories(store, ["CVE-2021-25215", "rocky 8", name]) == expected
    assert _detail(store, "CVE-2021-25215") == VulnerabilityDetail(
        severity=Severity.HIGH,
        references=[BIND_REFERENCE],
        title="Important: bind security update",
        description=BIND_DESCRIPTION,
    )
    assert store.get(["vulnerability-id", "CVE-2021-25215"]) == {}


def test_update_different_versions(tmp_path):
    _write(
        tmp_path,
        "8/BaseOS/aarch64/2021/RLSA-2021-000.json",
        _erratum("RLSA-2021:000", ["CVE-2021-25215"], [_pkg("bind-export-devel", "aarch64")]),
    )
    _write(
        tmp_path,
        "8/BaseOS/x86_64/2021/RLSA-2021-0000.json",
        _erratum(
            "RLSA-2021:0000",
            ["CVE-2021-25215"],
            [
                _pkg("bind-export-devel", "x86_64", version="7.11.26"),
                _pkg("bind-export-devel", "i686", version="8.11.26"),
            ],
        ),
    )
    store = _update(tmp_path)

    assert _advisories(store, ["CVE-2021-25215", "rocky 8", "bind-export-devel"]) == Advisories(
        fixed_version="32:7.11.26-4.el8_4",
        entries=[
            Advisory(
                fixed_version="32:9.11.26-4.el8_4",
                arches=["aarch64"],
                vendor_ids=["RLSA-2021:000"],
            ),
            Advisory(
                fixed_version="32:7.11.26-4.el8_4",
                arches=["x86_64"],
                vendor_ids=["RLSA-2021:0000"],
            ),
            Advisory(
                fixed_version="32:8.11.26-4.el8_4",
                arches=["i686"],
                vendor_ids=["RLSA-2021:0000"],
            ),
        ],
    )
    assert _detail(store, "CVE-2021-25215").severity == Severity.HIGH
    assert store.get(["vulnerability-id", "CVE-2021-25215"]) == {}


def test_update_noarch(tmp_path):
    references = (
        "https://cve.mitre.org/cgi-bin/cvename.cgi?name=CVE-2022-42010",
        "https://errata.rockylinux.org/RLSA-2023:0335",
    )
    _write(
        tmp_path,
        "9/BaseOS/x86_64/2023/RLSA-2023-0335.json",
        _erratum(
            "RLSA-2023:0335",
            ["CVE-2022-42010"],
            [_pkg("dbus-common", "noarch", epoch="1", version="1.12.20", release="7.el9_1")],
            severity="Moderate",
            title="Moderate: dbus security update",
            description="D-Bus is a system for sending messages between applications...",
            references=references,
        ),
    )
    store = _update(tmp_path)

    assert DataSource.from_dict(store.get(["data-source", "rocky 9"])) == SOURCE
    assert _advisories(store, ["CVE-2022-42010", "rocky 9", "dbus-common"]) == Advisories(
        fixed_version="1:1.12.20-7.el9_1",
        entries=[
            Advisory(
                fixed_version="1:1.12.20-7.el9_1",
                arches=["noarch"],
                vendor_ids=["RLSA-2023:0335"],
            )
        ],
    )
    assert _detail(store, "CVE-2022-42010") == VulnerabilityDetail(
        severity=Severity.MEDIUM,
        references=list(references),
        title="Moderate: dbus security update",
        description="D-Bus is a system for sending messages between applications...",
    )


def test_update_aarch64_only(tmp_path):
    _write(
        tmp_path,
        "8/BaseOS/aarch64/2021/RLSA-2021-1989.json",
        _erratum("RLSA-2021:1989", ["CVE-2021-25215"], [_pkg("bind-export-devel", "aarch64")]),
    )
    store = _update(tmp_path)

    assert _advisories(store, ["CVE-2021-25215", "rocky 8", "bind-export-devel"]) == Advisories(
        fixed_version="0.0.0",
        entries=[
            Advisory(
                fixed_version="32:9.11.26-4.el8_4",
                arches=["aarch64"],
                vendor_ids=["RLSA-2021:1989"],
            )
        ],
    )


def test_update_duplicates(tmp_path):
    title = "Important: .NET 5.0 security, bug fix, and enhancement update"
    reference = "https://access.redhat.com/hydra/rest/securitydata/cve/CVE-2022-29117.json"
    pkg = {"epoch": "0", "version": "6.0.5", "release": "1.el8_6"}
    _write(
        tmp_path,
        "8/AppStream/aarch64/2022/RLSA-2022-0000.json",
        _erratum(
            "RLSA-2022:0000",
            ["CVE-2022-29117"],
            [_pkg("aspnetcore-runtime-6.0", "aarch64", **pkg)],
            title=title,
            description="For more information visit https://errata.rockylinux.org/RLSA-2022:0000",
            references=(reference,),
        ),
    )
    _write(
        tmp_path,
        "8/AppStream/x86_64/2022/RLSA-2022-2200.json",
        _erratum(
            "RLSA-2022:2200",
            ["CVE-2022-29117"],
            [_pkg("aspnetcore-runtime-6.0", "x86_64", **pkg)],
            title=title,
            description="For more information visit https://errata.rockylinux.org/RLSA-2022:2200",
            references=(reference,),
        ),
    )
    store = _update(tmp_path)

    assert _advisories(store, ["CVE-2022-29117", "rocky 8", "aspnetcore-runtime-6.0"]) == Advisories(
        fixed_version="6.0.5-1.el8_6",
        entries=[
            Advisory(
                fixed_version="6.0.5-1.el8_6",
                arches=["aarch64", "x86_64"],
                vendor_ids=["RLSA-2022:0000", "RLSA-2022:2200"],
            )
        ],
    )
    assert _detail(store, "CVE-2022-29117") == VulnerabilityDetail(
        severity=Severity.HIGH,
        references=[reference],
        title=title,
        description="For more information visit https://errata.rockylinux.org/RLSA-2022:2200",
    )
    assert store.get(["vulnerability-id", "CVE-2022-29117"]) == {}


def test_update_skips_modular_packages(tmp_path):
    _write(
        tmp_path,
        "8/AppStream/x86_64/2021/RLSA-2021-1111.json",
        _erratum(
            "RLSA-2021:1111",
            ["CVE-2021-9999"],
            [_pkg("nodejs", "x86_64", release="1.module+el8.4.0+595+c96abaa2")],
        ),
    )
    store = _update(tmp_path)

    assert store.has_bucket(["advisory-detail"]) is False
    assert store.get(["vulnerability-id", "CVE-2021-9999"]) is None


def test_update_sad_path(tmp_path):
    _write(tmp_path, "8/BaseOS/x86_64/2021/RLSA-2021-1989.json", "[1, 2")
    with pytest.raises(ValueError, match="failed to decode Rocky erratum"):
        _update(tmp_path)


def test_update_missing_directory(tmp_path):
    with pytest.raises(FileNotFoundError, match="no such file or directory"):
        _update(tmp_path / "badPath")


def test_update_skips_invalid_paths(tmp_path):
    _write(
        tmp_path,
        "8/BaseOS/x86_64/RLSA-2021-1989.json",
        _erratum("RLSA-2021:1989", ["CVE-2021-25215"], [_pkg("bind", "x86_64")]),
    )
    store = _update(tmp_path)
    assert store.has_bucket(["data-source"]) is False


def test_parse_groups_by_major_version_and_filters(tmp_path):
    doc = _erratum("RLSA-2021:1989", ["CVE-2021-25215"], [_pkg("bind", "x86_64")])
    _write(tmp_path, "8.5/BaseOS/x86_64/2021/a.json", doc)
    _write(tmp_path, "8/devel/x86_64/2021/b.json", doc)
    _write(tmp_path, "8/BaseOS/ppc64le/2021/c.json", doc)
    _write(tmp_path, "9/extras/aarch64/2021/d.json", _erratum("RLSA-2021:2000", [], []))

    errata = VulnSrc(Store()).parse(tmp_path / "vuln-list" / "rocky")

    assert sorted(errata) == ["8", "9"]
    assert [e.id for e in errata["8"]] == ["RLSA-2021:1989"]
    assert errata["8"][0].packages == [
        Package(name="bind", epoch="32", version="9.11.26", release="4.el8_4", arch="x86_64")
    ]
    assert errata["8"][0].issued_date == "2021-06-01"
    assert [e.id for e in errata["9"]] == ["RLSA-2021:2000"]


def test_put_sorts_arches_and_vendor_ids():
    store = Store()
    put_input = PutInput(
        platform_name="rocky 8",
        cve_id="CVE-2021-0001",
        vuln=VulnerabilityDetail(severity=Severity.LOW),
        advisories={
            "bind": Advisories(
                fixed_version="1.0-1",
                entries=[
                    Advisory(
                        fixed_version="1.0-1",
                        arches=["x86_64", "aarch64"],
                        vendor_ids=["RLSA-2", "RLSA-1"],
                    )
                ],
            )
        },
        erratum=RLSA(id="RLSA-2"),
    )
    VulnSrc(store).put(put_input)

    stored = _advisories(store, ["CVE-2021-0001", "rocky 8", "bind"])
    assert stored.entries[0].arches == ["aarch64", "x86_64"]
    assert stored.entries[0].vendor_ids == ["RLSA-1", "RLSA-2"]
    assert _detail(store, "CVE-2021-0001").severity == Severity.LOW
    assert store.get(["vulnerability-id", "CVE-2021-0001"]) == {}


def _store_with_source():
    store = Store()
    store.put_data_source("rocky 9", SOURCE)
    return store


def test_get_same_fixed_version():
    store = _store_with_source()
    store.put_advisory_detail(
        "CVE-2022-0396",
        "bind",
        ["rocky 9"],
        Advisories(
            fixed_version="32:9.16.23-0.9.el8.1",
            entries=[
                Advisory(
                    fixed_version="32:9.16.23-0.9.el8.1",
                    arches=["aarch64", "x86_64"],
                    vendor_ids=["RLSA-2022:7643"],
                )
            ],
        ),
    )
    got = VulnSrc(store).get("9", "bind", "x86_64")
    assert got == [
        Advisory(
            vulnerability_id="CVE-2022-0396",
            fixed_version="32:9.16.23-0.9.el8.1",
            arches=["aarch64", "x86_64"],
            vendor_ids=["RLSA-2022:7643"],
            data_source=DataSource(
                id="rocky",
                name="Rocky Linux updateinfo",
                url="https://download.rockylinux.org/pub/rocky/",
            ),
        )
    ]


def test_get_different_fixed_versions_for_different_arches():
    store = _store_with_source()
    store.put_advisory_detail(
        "CVE-2022-24903",
        "rsyslog",
        ["rocky 9"],
        Advisories(
            fixed_version="8.2102.0-7.el8_6.1",
            entries=[
                Advisory(
                    fixed_version="8.2102.0-7.el8_6.2",
                    arches=["aarch64"],
                    vendor_ids=["RLSA-2022:4799"],
                ),
                Advisory(
                    fixed_version="8.2102.0-7.el8_6.1",
                    arches=["x86_64"],
                    vendor_ids=["RLSA-2022:4798"],
                ),
            ],
        ),
    )
    got = VulnSrc(store).get("9", "rsyslog", "aarch64")
    assert got == [
        Advisory(
            vulnerability_id="CVE-2022-24903",
            fixed_version="8.2102.0-7.el8_6.2",
            arches=["aarch64"],
            vendor_ids=["RLSA-2022:4799"],
            data_source=SOURCE,
        )
    ]


def test_get_old_schema_without_entries():
    store = _store_with_source()
    store.put_raw(["rocky 9", "bind", "CVE-2022-0396"], {"FixedVersion": "32:9.16.23-0.9.el8.1"})
    got = VulnSrc(store).get("9", "bind", "aarch64")
    assert got == [
        Advisory(
            vulnerability_id="CVE-2022-0396",
            fixed_version="32:9.16.23-0.9.el8.1",
            data_source=SOURCE,
        )
    ]


def test_get_broken_json():
    store = Store()
    store.put_raw(["rocky 9", "bind", "CVE-2022-0396"], "{broken")
    with pytest.raises(StoreError, match="failed to unmarshal advisory JSON"):
        VulnSrc(store).get("9", "bind", "aarch64")


def test_get_unknown_package_returns_empty():
    assert VulnSrc(_store_with_source()).get("9", "missing", "x86_64") == []


def test_name():
    assert VulnSrc(Store()).name() == "rocky"


@pytest.mark.parametrize(
    ("severity", "expected"),
    [
        ("Low", Severity.LOW),
        ("moderate", Severity.MEDIUM),
        ("IMPORTANT", Severity.HIGH),
        ("critical", Severity.CRITICAL),
        ("", Severity.UNKNOWN),
        ("invalid", Severity.UNKNOWN),
    ],
)
def test_generalize_severity(severity, expected):
    assert generalize_severity(severity) is expected


@pytest.mark.parametrize(
    ("arch", "expected"),
    [
        ("x86_64", "2.0"),
        ("noarch", "2.0"),
        ("aarch64", "1.0"),
        ("i686", "1.0"),
    ],
)
def test_fixed_version(arch, expected):
    assert fixed_version("1.0", "2.0", arch) == expected