#!/usr/bin/env python3
"""
Workload access gate.

Decides which pods a caller may use for a Kwirth channel, and mints scoped access keys
for them. This entry point runs the HTTP API or evaluates policy offline.
"""

import argparse
import json
import logging
import os
import sys
from typing import List, Optional

# Configure logging
logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "info").upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
)

#
# NOTE: Keep kwgate imports lazy (inside functions) so offline modes don't import the web stack.
#


def validate_config(path: str) -> int:
    """Build the policy table (no cluster probing) and print a per-channel summary."""
    from kwgate.authz.policy import PolicyConfigError
    from kwgate.config.loader import load_policy_table
    from kwgate.config.settings import load_settings

    settings = load_settings()
    try:
        table = load_policy_table(path, channels=settings.channels)
    except (PolicyConfigError, OSError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    summary = {}
    for cluster in table:
        summary[cluster.name] = {
            channel: {"namespaces": len(cp.namespaces), "podPermissions": len(cp.workloads)}
            for channel, cp in cluster.channels.items()
        }
    print(json.dumps({"ok": True, "clusters": summary}, indent=2))
    return 0


def check_access(
    path: str,
    cluster_name: str,
    channel: str,
    namespace: str,
    workload: str,
    identity_ref: str,
    group_refs: Optional[List[str]] = None,
) -> int:
    """Evaluate one (cluster, channel, namespace, pod) decision for a caller. Exit code 0 = allowed."""
    from kwgate.authz.engine import check_namespace_access, has_restriction, workload_allowed_in_channel
    from kwgate.authz.policy import PolicyConfigError
    from kwgate.config.loader import load_policy_table
    from kwgate.config.settings import load_settings

    settings = load_settings()
    try:
        table = load_policy_table(path, channels=settings.channels)
    except (PolicyConfigError, OSError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    cluster = table.get(cluster_name)
    if cluster is None:
        print(f"Unknown cluster: {cluster_name}", file=sys.stderr)
        return 2

    groups = group_refs or []
    channel_policy = cluster.channel(channel)
    ns = check_namespace_access(channel_policy, channel, namespace, identity_ref, groups)
    restricted = channel_policy is not None and has_restriction(namespace, channel_policy.workloads)
    allowed = workload_allowed_in_channel(channel_policy, channel, namespace, workload, identity_ref, groups)

    print(
        json.dumps(
            {
                "cluster": cluster_name,
                "channel": channel,
                "namespace": namespace,
                "workload": workload,
                "identity": identity_ref,
                "groups": groups,
                "namespaceAllowed": ns.allowed,
                "diagnostic": ns.diagnostic,
                "namespaceRestricted": restricted,
                "allowed": allowed,
            },
            indent=2,
        )
    )
    return 0 if allowed else 1


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Workload access gate for Kwirth channels",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the HTTP API
  python main.py --serve --port 7007

  # Validate a policy file
  python main.py --validate --config app-config.yaml

  # Would alice be allowed to stream logs of api-7 in prod?
  python main.py --check --config app-config.yaml --cluster prod --channel log \\
      --namespace prod --workload api-7 --identity user:default/alice --group group:default/sre
        """,
    )
    parser.add_argument("--serve", action="store_true", help="Run the HTTP API")
    parser.add_argument("--validate", action="store_true", help="Load and validate a policy file, print a summary")
    parser.add_argument("--check", action="store_true", help="Evaluate a single access decision offline")
    parser.add_argument("--host", default="0.0.0.0", help="API bind host (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=7007, help="API listen port (default: 7007)")
    parser.add_argument("--config", help="Path to the app-config YAML (default: $APP_CONFIG_PATH)")
    parser.add_argument("--cluster", help="Cluster name (for --check)")
    parser.add_argument("--channel", help="Channel, e.g. log, metrics (for --check)")
    parser.add_argument("--namespace", help="Pod namespace (for --check)")
    parser.add_argument("--workload", help="Pod name (for --check)")
    parser.add_argument("--identity", help="Caller identity ref, e.g. user:default/alice (for --check)")
    parser.add_argument("--group", action="append", default=[], help="Group ref of the caller (repeatable)")

    args = parser.parse_args(argv)

    if args.serve:
        from kwgate.api.server import run

        run(host=args.host, port=args.port)
        return 0

    from kwgate.config.settings import load_settings

    config_path = args.config or load_settings().app_config_path

    if args.validate:
        return validate_config(config_path)

    if args.check:
        missing = [f"--{n}" for n in ("cluster", "channel", "namespace", "workload", "identity") if not getattr(args, n)]
        if missing:
            parser.error(f"--check requires {', '.join(missing)}")
        return check_access(
            config_path, args.cluster, args.channel, args.namespace, args.workload, args.identity, args.group
        )

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
