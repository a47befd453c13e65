from __future__ import annotations

from dataclasses import dataclass
import logging
import re
from typing import Iterable, Mapping

from querydiff.config import get_runtime_defaults

LOG = logging.getLogger(__name__)
_ID_RE = re.compile(r"^[0-9a-f]{16}$")


@dataclass(frozen=True)
class DBRPMapping:
    """Maps a legacy (cluster, database, retention policy) triple onto a bucket."""

    cluster: str
    database: str
    retention_policy: str
    default: bool
    organization_id: str
    bucket_id: str

    def __post_init__(self):
        for name in ("organization_id", "bucket_id"):
            value = getattr(self, name)
            if not _ID_RE.match(value):
                raise ValueError("%s must be 16 lowercase hex characters, got %r" % (name, value))

    @classmethod
    def from_dict(cls, payload: Mapping):
        return cls(
            cluster=str(payload.get("cluster", "")),
            database=str(payload["database"]),
            retention_policy=str(payload.get("retention_policy", "")),
            default=bool(payload.get("default", False)),
            organization_id=str(payload["organization_id"]),
            bucket_id=str(payload["bucket_id"]),
        )

    def as_dict(self):
        return {
            "cluster": self.cluster,
            "database": self.database,
            "retention_policy": self.retention_policy,
            "default": self.default,
            "organization_id": self.organization_id,
            "bucket_id": self.bucket_id,
        }


@dataclass(frozen=True)
class DBRPMappingFilter:
    """Field-wise filter; ``None`` fields match anything."""

    cluster: str | None = None
    database: str | None = None
    retention_policy: str | None = None
    default: bool | None = None

    def matches(self, mapping: DBRPMapping) -> bool:
        if self.cluster is not None and mapping.cluster != self.cluster:
            return False
        if self.database is not None and mapping.database != self.database:
            return False
        if self.retention_policy is not None and mapping.retention_policy != self.retention_policy:
            return False
        if self.default is not None and mapping.default != self.default:
            return False
        return True


class StaticDBRPMappingService(object):
    """
    Read-only, in-memory mapping lookup
    ===================================

    Built once before a run and shared by every transpiling compiler; nothing
    writes to it afterwards. Lookups return ``None`` when nothing matches.
    """

    def __init__(self, mappings: Iterable[DBRPMapping] = ()):
        self._mappings = tuple(mappings)

    @classmethod
    def from_config(cls, defaults=None):
        if defaults is None:
            defaults = get_runtime_defaults()
        mappings = []
        for payload in defaults.mappings:
            try:
                mappings.append(DBRPMapping.from_dict(payload))
            except (KeyError, ValueError) as exc:
                LOG.warning("Ignoring invalid DBRP mapping %r: %s", dict(payload), exc)
        return cls(mappings)

    def __len__(self):
        return len(self._mappings)

    def find_default_mapping(self, cluster: str, database: str, retention_policy: str = "") -> DBRPMapping | None:
        if retention_policy:
            exact = self.find_mapping(DBRPMappingFilter(cluster, database, retention_policy))
            if exact is not None:
                return exact
        return self.find_mapping(DBRPMappingFilter(cluster=cluster, database=database, default=True))

    def find_mapping(self, mapping_filter: DBRPMappingFilter) -> DBRPMapping | None:
        for mapping in self._mappings:
            if mapping_filter.matches(mapping):
                return mapping
        return None

    def find_all_mappings(self, mapping_filter: DBRPMappingFilter | None = None) -> tuple[list[DBRPMapping], int]:
        mapping_filter = mapping_filter or DBRPMappingFilter()
        found = [m for m in self._mappings if mapping_filter.matches(m)]
        return found, len(found)
