"""
Permission data model.

A `PolicyTable` is built once per configuration load (see `kwgate.config.loader`) and is
handed to the evaluator as a read-only snapshot. Reloads build a new table; nothing in
here is ever mutated after construction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, Iterator, Mapping, Optional, Tuple

from kwgate.authz.rules import PatternRule
from kwgate.core.models import KwirthInfo


class PolicyConfigError(ValueError):
    """Configuration that cannot be turned into a policy table (bad pattern, bad shape...)."""

    def __init__(
        self,
        message: str,
        *,
        cluster: Optional[str] = None,
        channel: Optional[str] = None,
        namespace: Optional[str] = None,
        category: Optional[str] = None,
    ) -> None:
        self.cluster = cluster
        self.channel = channel
        self.namespace = namespace
        self.category = category
        where = [
            f"{k}={v}"
            for k, v in (("cluster", cluster), ("channel", channel), ("namespace", namespace), ("category", category))
            if v
        ]
        super().__init__(f"{message} ({', '.join(where)})" if where else message)


@dataclass(frozen=True)
class NamespacePermissions:
    namespace: str
    # Lowercased on construction.
    identity_refs: FrozenSet[str] = frozenset()

    def __post_init__(self) -> None:
        object.__setattr__(self, "identity_refs", frozenset(r.lower() for r in self.identity_refs))


@dataclass(frozen=True)
class WorkloadPermissions:
    """
    Rule chain for one namespace.

    - allow: at least one rule must match for this entry to grant
    - except_: if any rule matches, the allow is withdrawn
    - deny: if any rule matches, access is denied...
    - unless: ...unless one of these rules matches
    """

    namespace: str
    allow: Optional[Tuple[PatternRule, ...]] = None
    except_: Optional[Tuple[PatternRule, ...]] = None
    deny: Optional[Tuple[PatternRule, ...]] = None
    unless: Optional[Tuple[PatternRule, ...]] = None


@dataclass(frozen=True)
class ChannelPolicy:
    namespaces: Mapping[str, NamespacePermissions] = field(default_factory=lambda: MappingProxyType({}))
    workloads: Tuple[WorkloadPermissions, ...] = ()

    @classmethod
    def build(
        cls,
        namespace_entries: Iterable[NamespacePermissions] = (),
        workload_entries: Iterable[WorkloadPermissions] = (),
    ) -> "ChannelPolicy":
        namespaces: Dict[str, NamespacePermissions] = {}
        for entry in namespace_entries:
            # First entry for a namespace wins.
            namespaces.setdefault(entry.namespace, entry)
        return cls(namespaces=MappingProxyType(namespaces), workloads=tuple(workload_entries))

    @property
    def is_open(self) -> bool:
        return not self.namespaces and not self.workloads


@dataclass(frozen=True)
class ClusterPolicy:
    name: str
    home: str
    api_key: str = field(repr=False)
    title: str = "No name"
    info: Optional[KwirthInfo] = None
    channels: Mapping[str, ChannelPolicy] = field(default_factory=lambda: MappingProxyType({}))

    def channel(self, name: str) -> Optional[ChannelPolicy]:
        return self.channels.get(name)

    def implements_channel(self, channel: str) -> bool:
        """True when the cluster's Kwirth advertises `channel` (or when its info is unknown)."""
        if self.info is None:
            return True
        return any(c.id == channel for c in self.info.channels)


@dataclass(frozen=True)
class PolicyTable:
    clusters: Mapping[str, ClusterPolicy] = field(default_factory=lambda: MappingProxyType({}))
    loaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def build(cls, clusters: Iterable[ClusterPolicy]) -> "PolicyTable":
        return cls(clusters=MappingProxyType({c.name: c for c in clusters}))

    def get(self, cluster: str) -> Optional[ClusterPolicy]:
        return self.clusters.get(cluster)

    def __iter__(self) -> Iterator[ClusterPolicy]:
        return iter(self.clusters.values())

    def __len__(self) -> int:
        return len(self.clusters)
