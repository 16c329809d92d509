"""Access request orchestrator.

For one catalog entity and one caller:
1. resolve the caller's groups
2. find candidate pods on every cluster of the current policy snapshot
3. per requested scope and cluster, keep the pods the caller is authorized for
4. ask that cluster's Kwirth for one access key covering exactly those pods

A failing cluster (unreachable, bad answer, key refused) only affects itself.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Protocol, Sequence

from kwgate.authz.engine import workload_allowed_in_channel
from kwgate.authz.policy import ClusterPolicy, PolicyTable
from kwgate.core.models import CatalogEntity, ClusterAccess, Workload
from kwgate.providers.catalog_provider import GroupLookupError, GroupProvider
from kwgate.providers.kwirth_provider import KwirthError, KwirthProvider

logger = logging.getLogger(__name__)

STREAM_SCOPE = "stream"
METRICS_CHANNEL = "metrics"


class PolicySource(Protocol):
    def current(self) -> PolicyTable: ...

    def reload_if_changed(self) -> bool: ...


def user_name_from_ref(identity_ref: str) -> str:
    """`user:default/alice` -> `alice` (falls back to the whole ref when it is not canonical)."""
    _, _, rest = (identity_ref or "").partition(":")
    _, _, name = (rest or identity_ref or "").rpartition("/")
    return name or identity_ref


def authorized_workloads(
    cluster: ClusterPolicy,
    channel: str,
    workloads: Iterable[Workload],
    identity_ref: str,
    group_refs: Sequence[str],
) -> List[Workload]:
    channel_policy = cluster.channel(channel)
    return [
        w
        for w in workloads
        if workload_allowed_in_channel(channel_policy, channel, w.namespace, w.name, identity_ref, group_refs)
    ]


@dataclass
class AccessService:
    policy: PolicySource
    kwirth: KwirthProvider
    groups: GroupProvider
    key_ttl_seconds: int = 3600

    def group_refs(self, identity_ref: str) -> List[str]:
        try:
            return self.groups.groups_for(identity_ref)
        except (GroupLookupError, ValueError) as e:
            # Without groups the caller is only matched by its own ref.
            logger.warning("Cannot resolve groups for %s: %s", identity_ref, e)
            return []

    def _discover(self, cluster: ClusterPolicy, entity: CatalogEntity) -> ClusterAccess:
        access = ClusterAccess(name=cluster.name, url=cluster.home, title=cluster.title)
        try:
            access.pods = self.kwirth.find_workloads(cluster, entity)
        except KwirthError as e:
            logger.warning("Cannot get candidate pods from cluster %s: %s", cluster.name, e)
        return access

    def _grant(
        self,
        cluster: ClusterPolicy,
        access: ClusterAccess,
        channel: str,
        scope: str,
        entity_name: str,
        identity_ref: str,
        group_refs: Sequence[str],
    ) -> None:
        if not cluster.implements_channel(channel):
            logger.warning("Cluster %s does not implement channel %s (requested scope: %s)", cluster.name, channel, scope)
            return

        allowed = authorized_workloads(cluster, channel, access.pods, identity_ref, group_refs)
        if not allowed:
            logger.info(
                "No pods on podList for '%s' on channel '%s' in cluster '%s' for searching for entity: '%s'",
                scope,
                channel,
                cluster.name,
                entity_name,
            )
            return

        try:
            key = self.kwirth.create_access_key(
                cluster, scope, allowed, user_name_from_ref(identity_ref), ttl_seconds=self.key_ttl_seconds
            )
        except KwirthError as e:
            logger.warning("No access key for scope '%s' on cluster %s: %s", scope, cluster.name, e)
            return
        access.access_keys[scope] = key

        # Only metrics channel streams consume metric definitions; other channels skip the extra call.
        if scope == STREAM_SCOPE and channel == METRICS_CHANNEL:
            try:
                access.metrics = self.kwirth.fetch_metrics(cluster, key)
            except KwirthError as e:
                logger.error("%s", e)

    def resolve(
        self,
        entity: CatalogEntity,
        channel: str,
        scopes: Sequence[str],
        identity_ref: str,
        group_refs: Optional[Sequence[str]] = None,
    ) -> List[ClusterAccess]:
        table = self.policy.current()
        groups = list(group_refs) if group_refs is not None else self.group_refs(identity_ref)
        logger.info(
            "Checking scopes '%s' on channel '%s' for entity '%s' for user '%s'",
            ",".join(scopes),
            channel,
            entity.metadata.name,
            identity_ref,
        )

        clusters = [(cluster, self._discover(cluster, entity)) for cluster in table]
        for scope in scopes:
            if not scope:
                logger.info("Invalid scope requested: %r", scope)
                continue
            for cluster, access in clusters:
                self._grant(cluster, access, channel, scope, entity.metadata.name, identity_ref, groups)
        return [access for _, access in clusters]
