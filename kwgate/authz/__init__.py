"""Authorization layer (app-config driven).

This package holds the permission data model and the rule evaluation engine:
- namespace permissions (which identities may see a namespace, per channel)
- workload permissions (allow/except/deny/unless rule chains, per namespace)
- the pattern rule matcher both checks are built on

Everything here is pure: evaluation never performs I/O and never mutates the
policy snapshot it is handed.
"""
