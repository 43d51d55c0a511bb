"""An in-memory bucketed key/value store for vulnerability data."""

from __future__ import annotations

import abc
import copy
import json
import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from vulnfeeds.types import Advisory, DataSource, VulnerabilityDetail

logger = logging.getLogger(__name__)

DATA_SOURCE_BUCKET = "data-source"
ADVISORY_DETAIL_BUCKET = "advisory-detail"
VULNERABILITY_DETAIL_BUCKET = "vulnerability-detail"
VULNERABILITY_ID_BUCKET = "vulnerability-id"


class StoreError(Exception):
    """Raised when stored data cannot be read or written."""


@dataclass
class RawAdvisory:
    """An undecoded advisory together with the source of its platform."""

    source: DataSource | None
    content: str


class VulnSrc(abc.ABC):
    """A vulnerability data source that loads a feed into a store."""

    @abc.abstractmethod
    def name(self) -> str:
        """Return the source identifier."""

    @abc.abstractmethod
    def update(self, directory: str | os.PathLike[str]) -> None:
        """Load the feed found under ``directory``."""


def _encode(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bytes):
        return value.decode()
    if hasattr(value, "to_dict"):
        value = value.to_dict()
    return json.dumps(value, sort_keys=True)


class Store:
    """Nested buckets whose leaves hold JSON documents."""

    def __init__(self) -> None:
        self._root: dict[str, Any] = {}
        self._depth = 0

    @contextmanager
    def transaction(self) -> Iterator[Store]:
        """Group writes; on an exception every write in the group is undone."""
        if self._depth:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return
        snapshot = copy.deepcopy(self._root)
        self._depth = 1
        try:
            yield self
        except BaseException:
            self._root = snapshot
            raise
        finally:
            self._depth = 0

    def _bucket(self, keys: list[str], create: bool) -> dict[str, Any] | None:
        bucket = self._root
        for key in keys:
            child = bucket.get(key)
            if child is None:
                if not create:
                    return None
                child = bucket[key] = {}
            elif not isinstance(child, dict):
                raise StoreError(f"{key!r} is a value, not a bucket")
            bucket = child
        return bucket

    def put_raw(self, keys: list[str], value: Any) -> None:
        """Store ``value`` under the key path; strings are stored verbatim."""
        if not keys:
            raise ValueError("at least one key is required")
        *buckets, key = keys
        bucket = self._bucket(buckets, create=True)
        if isinstance(bucket.get(key), dict):
            raise StoreError(f"{key!r} is a bucket, not a value")
        bucket[key] = _encode(value)

    def get(self, keys: list[str]) -> Any:
        """Return the decoded JSON value at the key path, or None if absent."""
        if not keys:
            raise ValueError("at least one key is required")
        *buckets, key = keys
        bucket = self._bucket(buckets, create=False)
        if bucket is None or key not in bucket:
            return None
        raw = bucket[key]
        if isinstance(raw, dict):
            raise StoreError(f"{key!r} is a bucket, not a value")
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StoreError(f"failed to decode JSON at {keys}: {exc}") from exc

    def has_bucket(self, keys: list[str]) -> bool:
        try:
            return self._bucket(keys, create=False) is not None
        except StoreError:
            return False

    def put_data_source(self, bucket: str, source: DataSource) -> None:
        self.put_raw([DATA_SOURCE_BUCKET, bucket], source)

    def put_advisory_detail(
        self, vuln_id: str, pkg_name: str, nested_buckets: list[str], advisory: Any
    ) -> None:
        """Record an advisory and index it under its platform and package for reads."""
        self.put_raw([ADVISORY_DETAIL_BUCKET, vuln_id, *nested_buckets, pkg_name], advisory)
        self.put_raw([*nested_buckets, pkg_name, vuln_id], advisory)

    def put_vulnerability_detail(self, vuln_id: str, source_id: str, detail: VulnerabilityDetail) -> None:
        self.put_raw([VULNERABILITY_DETAIL_BUCKET, vuln_id, source_id], detail)

    def put_vulnerability_id(self, vuln_id: str) -> None:
        self.put_raw([VULNERABILITY_ID_BUCKET, vuln_id], {})

    def get_vulnerability_detail(self, vuln_id: str) -> dict[str, VulnerabilityDetail]:
        bucket = self._bucket([VULNERABILITY_DETAIL_BUCKET, vuln_id], create=False)
        details: dict[str, VulnerabilityDetail] = {}
        for source_id, raw in (bucket or {}).items():
            if isinstance(raw, dict):
                continue
            try:
                details[source_id] = VulnerabilityDetail.from_dict(json.loads(raw))
            except (json.JSONDecodeError, TypeError, ValueError, AttributeError) as exc:
                raise StoreError(f"failed to unmarshal vulnerability detail JSON: {exc}") from exc
        return details

    def _data_source(self, bucket: str) -> DataSource | None:
        data = self.get([DATA_SOURCE_BUCKET, bucket]) if self.has_bucket([DATA_SOURCE_BUCKET]) else None
        if data is None:
            return None
        try:
            return DataSource.from_dict(data)
        except AttributeError as exc:
            raise StoreError(f"failed to unmarshal data source JSON: {exc}") from exc

    def for_each_advisory(self, buckets: list[str], pkg_name: str) -> dict[str, RawAdvisory]:
        """Return the raw advisories of ``pkg_name`` keyed by vulnerability ID."""
        if not buckets:
            raise ValueError("at least one bucket is required")
        bucket = self._bucket([*buckets, pkg_name], create=False)
        if bucket is None:
            return {}
        source = self._data_source(buckets[0])
        return {
            vuln_id: RawAdvisory(source=source, content=raw)
            for vuln_id, raw in bucket.items()
            if not isinstance(raw, dict)
        }

    def get_advisories(self, bucket: str, pkg_name: str) -> list[Advisory]:
        advisories = []
        for vuln_id, raw in self.for_each_advisory([bucket], pkg_name).items():
            try:
                advisory = Advisory.from_dict(json.loads(raw.content))
            except (json.JSONDecodeError, TypeError, ValueError, AttributeError) as exc:
                raise StoreError(f"failed to unmarshal advisory JSON: {exc}") from exc
            advisory.vulnerability_id = vuln_id
            if raw.source:
                advisory.data_source = raw.source
            advisories.append(advisory)
        return advisories


def file_walk(root: str | os.PathLike[str]) -> Iterator[Path]:
    """Yield every regular file below ``root`` in sorted order."""
    root_path = Path(root)
    if not root_path.is_dir():
        raise FileNotFoundError(
            2, f"{os.strerror(2)}: no such file or directory", str(root_path)
        )
    for dirpath, dirnames, filenames in os.walk(root_path):
        dirnames.sort()
        for filename in sorted(filenames):
            path = Path(dirpath, filename)
            if path.is_file():
                yield path