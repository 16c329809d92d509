"""
Build a `PolicyTable` from app-config style YAML.

Expected shape (one block per cluster and channel; `kwirthLog` is preferred over `kwirthlog`):

    kubernetes:
      clusterLocatorMethods:
        - type: config
          clusters:
            - name: prod
              kwirthHome: http://kwirth.prod:3883
              kwirthApiKey: "..."
              kwirthLog:
                namespacePermissions:
                  - prod: ["group:default/sre"]
                podPermissions:
                  - prod:
                      allow:
                        - pods: ["^api-"]
                          refs: ["group:default/sre"]

All patterns are compiled here. A bad pattern fails the whole load; it never reaches
evaluation time.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import yaml

from kwgate.authz.policy import (
    ChannelPolicy,
    ClusterPolicy,
    NamespacePermissions,
    PolicyConfigError,
    PolicyTable,
    WorkloadPermissions,
)
from kwgate.authz.rules import PatternRule, build_rule, catch_all_rule
from kwgate.config.settings import DEFAULT_CHANNELS
from kwgate.core.models import KwirthInfo
from kwgate.core.versions import version_great_or_equal_than
from kwgate.providers.kwirth_provider import KwirthError, KwirthInfoProvider

logger = logging.getLogger(__name__)


def read_config_file(path: str | Path) -> Dict[str, Any]:
    p = Path(path)
    try:
        with p.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (yaml.YAMLError, UnicodeDecodeError) as e:
        raise PolicyConfigError(f"Invalid YAML in {p}: {e}") from e
    if not isinstance(data, dict):
        raise PolicyConfigError(f"Top level of {p} must be a mapping")
    return data


def channel_config_key(cluster_cfg: Dict[str, Any], channel: str) -> Optional[str]:
    camel = "kwirth" + channel[:1].upper() + channel[1:]
    if camel in cluster_cfg:
        return camel
    plain = "kwirth" + channel
    if plain in cluster_cfg:
        return plain
    return None


def _single_key(item: Any, what: str, *, cluster: str, channel: str) -> Tuple[str, Any]:
    if not isinstance(item, dict) or len(item) != 1:
        raise PolicyConfigError(
            f"Each {what} entry must be a mapping with exactly one namespace key", cluster=cluster, channel=channel
        )
    ((key, value),) = item.items()
    return str(key), value


def _string_list(value: Any, what: str, **ctx: Any) -> List[str]:
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise PolicyConfigError(f"{what} must be a list of strings", **ctx)
    return list(value)


def load_namespace_permissions(channel_cfg: Dict[str, Any], *, cluster: str, channel: str) -> List[NamespacePermissions]:
    entries = channel_cfg.get("namespacePermissions") or []
    if not isinstance(entries, list):
        raise PolicyConfigError("namespacePermissions must be a list", cluster=cluster, channel=channel)

    out: List[NamespacePermissions] = []
    for item in entries:
        namespace, refs = _single_key(item, "namespacePermissions", cluster=cluster, channel=channel)
        identity_refs = _string_list(refs or [], "identity refs", cluster=cluster, channel=channel, namespace=namespace)
        out.append(NamespacePermissions(namespace=namespace, identity_refs=frozenset(identity_refs)))
    return out


def _compile_side(raw: Any, key: str, **ctx: Any) -> Optional[List[str]]:
    if raw is None:
        return None
    exprs = _string_list(raw, f"'{key}'", **ctx)
    if not exprs:
        raise PolicyConfigError(f"'{key}' must not be empty (omit it to match anything)", **ctx)
    return exprs


def load_rules(block: Dict[str, Any], category: str, **ctx: Any) -> Tuple[PatternRule, ...]:
    raw_rules = block.get(category) or []
    if not isinstance(raw_rules, list):
        raise PolicyConfigError("rule category must be a list of rules", category=category, **ctx)

    rules: List[PatternRule] = []
    for raw in raw_rules:
        if not isinstance(raw, dict):
            raise PolicyConfigError("each rule must be a mapping with optional 'pods' and 'refs'", category=category, **ctx)
        pods = _compile_side(raw.get("pods"), "pods", category=category, **ctx)
        refs = _compile_side(raw.get("refs"), "refs", category=category, **ctx)
        try:
            rules.append(build_rule(pods, refs))
        except (re.error, TypeError) as e:
            raise PolicyConfigError(f"Invalid pattern: {e}", category=category, **ctx) from e
    return tuple(rules)


def load_workload_permissions(channel_cfg: Dict[str, Any], *, cluster: str, channel: str) -> List[WorkloadPermissions]:
    entries = channel_cfg.get("podPermissions") or []
    if not isinstance(entries, list):
        raise PolicyConfigError("podPermissions must be a list", cluster=cluster, channel=channel)

    out: List[WorkloadPermissions] = []
    for item in entries:
        namespace, block = _single_key(item, "podPermissions", cluster=cluster, channel=channel)
        block = block or {}
        if not isinstance(block, dict):
            raise PolicyConfigError("namespace block must be a mapping", cluster=cluster, channel=channel, namespace=namespace)
        ctx = {"cluster": cluster, "channel": channel, "namespace": namespace}

        if "allow" not in block:
            # No 'allow': everybody, everything. The other categories do not apply.
            out.append(WorkloadPermissions(namespace=namespace, allow=(catch_all_rule(),)))
            continue

        out.append(
            WorkloadPermissions(
                namespace=namespace,
                allow=load_rules(block, "allow", **ctx),
                except_=load_rules(block, "except", **ctx) if "except" in block else None,
                deny=load_rules(block, "deny", **ctx) if "deny" in block else None,
                unless=load_rules(block, "unless", **ctx) if "unless" in block else None,
            )
        )
    return out


def load_channel_policy(cluster_cfg: Dict[str, Any], channel: str, *, cluster: str) -> ChannelPolicy:
    key = channel_config_key(cluster_cfg, channel)
    if key is None:
        logger.info("Cluster %s will have no channel '%s' restrictions.", cluster, channel)
        return ChannelPolicy()

    channel_cfg = cluster_cfg.get(key) or {}
    if not isinstance(channel_cfg, dict):
        raise PolicyConfigError(f"'{key}' must be a mapping", cluster=cluster, channel=channel)

    logger.info("Load permissions for channel %s (config: %s).", channel, key)
    namespaces = load_namespace_permissions(channel_cfg, cluster=cluster, channel=channel)
    workloads = load_workload_permissions(channel_cfg, cluster=cluster, channel=channel)
    logger.info(
        "  %d namespace rule(s), %d pod permission block(s).",
        len(namespaces),
        len(workloads),
    )
    return ChannelPolicy.build(namespaces, workloads)


def _probe(
    name: str, title: str, home: str, provider: KwirthInfoProvider, min_version: str
) -> Optional[KwirthInfo]:
    logger.info("Kwirth for %s is located at %s. Testing connection...", name, home)
    try:
        info = provider.fetch_info(home)
    except KwirthError as e:
        logger.warning("Kwirth home URL (%s) at cluster '%s' cannot be accessed right now: %s", home, name, e)
        return None
    if not version_great_or_equal_than(info.version, min_version):
        logger.error(
            "Unsupported Kwirth version on cluster '%s' (%s) [%s]. Min version is %s",
            name,
            title,
            info.version,
            min_version,
        )
        return None
    return info


def _iter_cluster_configs(raw: Dict[str, Any]) -> Iterable[Dict[str, Any]]:
    k8s = raw.get("kubernetes")
    methods = k8s.get("clusterLocatorMethods") if isinstance(k8s, dict) else None
    if not methods or not isinstance(methods, list):
        raise PolicyConfigError("There is no 'kubernetes.clusterLocatorMethods' defined in app-config")
    for method in methods:
        if not isinstance(method, dict):
            continue
        for cluster_cfg in method.get("clusters") or []:
            if isinstance(cluster_cfg, dict):
                yield cluster_cfg


def build_policy_table(
    raw: Dict[str, Any],
    *,
    channels: Sequence[str] = DEFAULT_CHANNELS,
    info_provider: Optional[KwirthInfoProvider] = None,
    min_version: str = "0.4.0",
) -> PolicyTable:
    """
    Build a fresh table for every configured cluster.

    With an `info_provider`, clusters whose Kwirth cannot be reached or is too old are left
    out of the table (they are disabled, not an error).
    """
    clusters: List[ClusterPolicy] = []
    for cluster_cfg in _iter_cluster_configs(raw):
        name = str(cluster_cfg.get("name") or "").strip()
        if not name:
            raise PolicyConfigError("Cluster entry without 'name'")
        home = cluster_cfg.get("kwirthHome")
        api_key = cluster_cfg.get("kwirthApiKey")
        if not home or not api_key:
            logger.warning("Cluster %s has no Kwirth information (kwirthHome and kwirthApiKey are missing).", name)
            continue
        title = str(cluster_cfg.get("title") or "No name")
        home = str(home).rstrip("/")

        # Policy is compiled before probing so bad patterns fail regardless of cluster reachability.
        channel_policies = {ch: load_channel_policy(cluster_cfg, ch, cluster=name) for ch in channels}

        info: Optional[KwirthInfo] = None
        if info_provider is not None:
            info = _probe(name, title, home, info_provider, min_version)
            if info is None:
                logger.warning("Cluster %s will be disabled", name)
                continue

        clusters.append(
            ClusterPolicy(
                name=name,
                home=home,
                api_key=str(api_key),
                title=title,
                info=info,
                channels=MappingProxyType(channel_policies),
            )
        )

    table = PolicyTable.build(clusters)
    logger.info("Policy table has been built including following clusters: %s", ", ".join(table.clusters) or "(none)")
    return table


def load_policy_table(
    path: str | Path,
    *,
    channels: Sequence[str] = DEFAULT_CHANNELS,
    info_provider: Optional[KwirthInfoProvider] = None,
    min_version: str = "0.4.0",
) -> PolicyTable:
    return build_policy_table(
        read_config_file(path), channels=channels, info_provider=info_provider, min_version=min_version
    )
