from __future__ import annotations

import logging


def _policy(*entries):
    from kwgate.authz.policy import ChannelPolicy

    return ChannelPolicy.build(namespace_entries=entries)


def test_namespace_without_entry_is_open_for_anyone() -> None:
    from kwgate.authz.engine import allowed_namespace
    from kwgate.authz.policy import NamespacePermissions

    cp = _policy(NamespacePermissions("prod", frozenset({"group:default/sre"})))
    assert allowed_namespace(cp, "metrics", "dev", "user:default/whoever", []) is True
    assert allowed_namespace(_policy(), "metrics", "prod", "user:default/whoever", []) is True


def test_namespace_restricted_to_group() -> None:
    from kwgate.authz.engine import allowed_namespace
    from kwgate.authz.policy import NamespacePermissions

    cp = _policy(NamespacePermissions("prod", frozenset({"group:default/sre"})))
    assert allowed_namespace(cp, "metrics", "prod", "user:default/alice", []) is False
    assert allowed_namespace(cp, "metrics", "prod", "user:default/alice", ["group:default/sre"]) is True


def test_identity_match_is_case_insensitive() -> None:
    from kwgate.authz.engine import allowed_namespace
    from kwgate.authz.policy import NamespacePermissions

    cp = _policy(NamespacePermissions("prod", frozenset({"USER:default/Alice"})))
    assert cp.namespaces["prod"].identity_refs == frozenset({"user:default/alice"})
    assert allowed_namespace(cp, "log", "prod", "User:Default/Alice", []) is True


def test_unknown_channel_denies_with_diagnostic(caplog) -> None:
    from kwgate.authz.engine import check_namespace_access

    with caplog.at_level(logging.WARNING):
        d = check_namespace_access(None, "trivy", "prod", "user:default/alice", [])
    assert d.allowed is False
    assert d.diagnostic == "Invalid channel: trivy"
    assert "Invalid channel: trivy" in caplog.text


def test_first_entry_for_a_namespace_wins() -> None:
    from kwgate.authz.engine import allowed_namespace
    from kwgate.authz.policy import NamespacePermissions

    cp = _policy(
        NamespacePermissions("prod", frozenset({"user:default/alice"})),
        NamespacePermissions("prod", frozenset({"user:default/bob"})),
    )
    assert allowed_namespace(cp, "log", "prod", "user:default/alice", []) is True
    assert allowed_namespace(cp, "log", "prod", "user:default/bob", []) is False
