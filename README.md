# vulnfeeds

`vulnfeeds` reads vulnerability feeds that have already been mirrored to
disk as JSON files and loads them into an in-memory bucketed store. The
details that several vendors give for one vulnerability can then be merged
into a single normalized record.

Feeds:

- Red Hat security data: `vulnfeeds.redhat.VulnSrc`
- Ubuntu CVE Tracker: `vulnfeeds.ubuntu.VulnSrc`
- Wolfi secdb: `vulnfeeds.wolfi.VulnSrc`
- Rocky Linux updateinfo: `vulnfeeds.rocky.VulnSrc`
- SUSE and openSUSE CVRF: `vulnfeeds.suse_cvrf.VulnSrc`

Every feed class derives from `vulnfeeds.store.VulnSrc` and has `name()`
and `update(directory)`. All but Red Hat also have `get(...)` to read
advisories back.

## Installation

```
pip install .
```

No third-party libraries are needed at run time.

## Directory layout

`update(directory)` reads every file below a fixed place in `directory`:

| Feed        | Path under `directory`                                  |
|-------------|---------------------------------------------------------|
| Red Hat     | `vuln-list-redhat/api/`                                 |
| Ubuntu      | `vuln-list/ubuntu/`                                     |
| Wolfi       | `vuln-list/wolfi/`                                      |
| Rocky Linux | `vuln-list/rocky/<version>/<repo>/<arch>/<x>/<file>`    |
| SUSE        | `vuln-list/cvrf/suse/suse/` or `vuln-list/cvrf/suse/opensuse/` |

Rocky Linux errata are kept only for the `BaseOS`, `AppStream` and `extras`
repositories and the `x86_64` and `aarch64` directories; a minor release
directory such as `8.5` is filed under its major release `8`. Packages
built from modules (release containing `.module+el`) are skipped.

The SUSE directory is chosen by the `Distribution` given to the class:
`SUSE_ENTERPRISE_LINUX` and `SUSE_ENTERPRISE_LINUX_MICRO` read `suse/`,
`OPENSUSE` and `OPENSUSE_TUMBLEWEED` read `opensuse/`.

## Usage

```python
from vulnfeeds import rocky, suse_cvrf, ubuntu
from vulnfeeds.store import Store
from vulnfeeds.vulnerability import VulnerabilityService

store = Store()

ubuntu.VulnSrc(store).update("/data/cache")
rocky.VulnSrc(store).update("/data/cache")
suse_cvrf.VulnSrc(suse_cvrf.Distribution.OPENSUSE, store).update("/data/cache")

# Advisories for a package on a release
for advisory in ubuntu.VulnSrc(store).get("18.04", "xen"):
    print(advisory.vulnerability_id, advisory.fixed_version)

# Rocky Linux advisories are filtered by architecture
for advisory in rocky.VulnSrc(store).get("8", "bind-export-libs", "x86_64"):
    print(advisory.vulnerability_id, advisory.fixed_version, advisory.vendor_ids)

# Merge the details every vendor gave for one CVE
service = VulnerabilityService(store)
details = service.get_details("CVE-2020-1234")
if details and not service.is_rejected(details):
    vuln = service.normalize(details)
    print(vuln.severity, vuln.title, vuln.references)
```

`vulnfeeds.vulnerability` also offers `score_to_severity(score)` and
`normalize_pkg_name(ecosystem, pkg_name)`. The data classes (`Severity`,
`DataSource`, `Advisory`, `Advisories`, `VulnerabilityDetail`, `CVSS`,
`Vulnerability`) and the source and ecosystem identifiers live in
`vulnfeeds.types`.

## Errors

- A missing feed directory raises `FileNotFoundError`; its message contains
  "no such file or directory".
- A feed file that cannot be decoded raises `ValueError` naming the feed,
  for example "failed to decode Rocky erratum" or "unknown affected_release
  type".
- Stored advisory JSON that cannot be read back raises
  `vulnfeeds.store.StoreError`.

`update` decodes every file before writing anything, and writes inside a
single store transaction, so a failed update leaves the store unchanged.

## Store

`vulnfeeds.store.Store` keeps JSON documents under paths of bucket names:

- `("data-source", <platform>)`
- `("advisory-detail", <vuln id>, <platform>, <package>)`
- `("vulnerability-detail", <vuln id>, <source id>)`
- `("vulnerability-id", <vuln id>)`

Advisories are also indexed as `(<platform>, <package>, <vuln id>)` for
reading. `store.get(keys)` returns the decoded value or `None`,
`store.has_bucket(keys)` tells whether a bucket exists, and
`store.put_raw(keys, value)` writes a value directly. Writes made inside
`with store.transaction():` are undone together if an exception leaves the
block.

## What this package does not do

The store lives only in memory: nothing is written to or read from a
database file. The package does not download feeds, has no command-line
tool, and covers only the five feeds listed above.

## Tests

```
pip install ".[test]"
pytest
```