"""
Access checks over a policy snapshot.

Order of evaluation for one workload:
1. namespace check (may the caller see the namespace at all, for this channel?)
2. restriction lookup (does any workload rule block exist for the namespace?)
3. workload check (allow/except/deny/unless chains), only when step 2 says so
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from kwgate.authz.policy import ChannelPolicy, WorkloadPermissions
from kwgate.authz.rules import any_rule_matches

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NamespaceDecision:
    allowed: bool
    diagnostic: Optional[str] = None


def check_namespace_access(
    channel_policy: Optional[ChannelPolicy],
    channel: str,
    namespace: str,
    identity_ref: str,
    group_refs: Iterable[str],
) -> NamespaceDecision:
    """
    Namespace-level check.

    `channel_policy` is None when the channel is unknown to the cluster's table; that is a
    configuration/usage error and is denied with a diagnostic (never raised).
    """
    if channel_policy is None:
        msg = f"Invalid channel: {channel}"
        logger.warning(msg)
        return NamespaceDecision(allowed=False, diagnostic=msg)

    entry = channel_policy.namespaces.get(namespace)
    if entry is None:
        # no restrictions for this namespace
        return NamespaceDecision(allowed=True)

    if (identity_ref or "").lower() in entry.identity_refs:
        return NamespaceDecision(allowed=True)
    if any(g in entry.identity_refs for g in group_refs or ()):
        return NamespaceDecision(allowed=True)
    return NamespaceDecision(allowed=False)


def allowed_namespace(
    channel_policy: Optional[ChannelPolicy],
    channel: str,
    namespace: str,
    identity_ref: str,
    group_refs: Iterable[str],
) -> bool:
    return check_namespace_access(channel_policy, channel, namespace, identity_ref, group_refs).allowed


def has_restriction(namespace: str, workload_permissions: Iterable[WorkloadPermissions]) -> bool:
    return any(entry.namespace == namespace for entry in workload_permissions)


def _entry_grants(entry: WorkloadPermissions, workload_name: str, identity_ref: str, group_refs: Sequence[str]) -> bool:
    if entry.allow is None:
        # no 'allow' means everybody has access
        return True

    if not any_rule_matches(entry.allow, workload_name, identity_ref, group_refs):
        return False

    if entry.except_ and any_rule_matches(entry.except_, workload_name, identity_ref, group_refs):
        return False

    if entry.deny is None:
        return True
    if not any_rule_matches(entry.deny, workload_name, identity_ref, group_refs):
        return True
    return bool(entry.unless) and any_rule_matches(entry.unless, workload_name, identity_ref, group_refs)


def allowed_workload(
    workload_name: str,
    namespace: str,
    workload_permissions: Iterable[WorkloadPermissions],
    identity_ref: str,
    group_refs: Iterable[str],
) -> bool:
    """
    Workload-level check. The first entry for `namespace` that grants wins.

    An entry's `allow` list is an OR: any matching rule is enough. Entries for other
    namespaces are ignored; if no entry grants, access is denied.
    """
    groups = list(group_refs or ())
    for entry in workload_permissions:
        if entry.namespace != namespace:
            continue
        if _entry_grants(entry, workload_name, identity_ref, groups):
            return True
    return False


def workload_allowed_in_channel(
    channel_policy: Optional[ChannelPolicy],
    channel: str,
    namespace: str,
    workload_name: str,
    identity_ref: str,
    group_refs: Iterable[str],
) -> bool:
    """Full decision for one workload: namespace check, restriction lookup, workload check."""
    groups = list(group_refs or ())
    decision = check_namespace_access(channel_policy, channel, namespace, identity_ref, groups)
    if channel_policy is None or not decision.allowed:
        return False
    if not has_restriction(namespace, channel_policy.workloads):
        return True
    return allowed_workload(workload_name, namespace, channel_policy.workloads, identity_ref, groups)
