from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from querydiff.config import get_runtime_defaults


class SkipRegistry(Mapping):
    """Read-only case-name -> reason mapping, consulted before a case runs."""

    def __init__(self, entries=None):
        self._entries = MappingProxyType({str(k): str(v) for k, v in dict(entries or {}).items()})

    @classmethod
    def from_config(cls, defaults=None):
        if defaults is None:
            defaults = get_runtime_defaults()
        return cls(defaults.skips)

    def reason_for(self, name: str) -> str | None:
        return self._entries.get(name)

    def __getitem__(self, name):
        return self._entries[name]

    def __iter__(self):
        return iter(self._entries)

    def __len__(self):
        return len(self._entries)

    def __repr__(self):
        return "SkipRegistry(%d entries)" % len(self._entries)
