from __future__ import annotations

from typing import Any, Dict

import pytest
import requests


class _Resp:
    def __init__(self, status_code: int = 200, payload: Any = None) -> None:
        self.status_code = status_code
        self._payload = payload

    def json(self) -> Any:
        return self._payload


def test_parse_entity_ref_forms() -> None:
    from kwgate.providers.catalog_provider import parse_entity_ref

    assert parse_entity_ref("user:default/alice") == ("user", "default", "alice")
    assert parse_entity_ref("User:Team-A/Bob") == ("user", "team-a", "bob")
    assert parse_entity_ref("user:alice") == ("user", "default", "alice")
    assert parse_entity_ref("alice") == ("user", "default", "alice")
    with pytest.raises(ValueError):
        parse_entity_ref("")
    with pytest.raises(ValueError):
        parse_entity_ref("user:default/")


def test_catalog_provider_reads_member_of(monkeypatch: pytest.MonkeyPatch) -> None:
    from kwgate.providers.catalog_provider import CatalogGroupProvider

    seen: Dict[str, Any] = {}

    def fake_get(url, headers=None, timeout=None):
        seen.update(url=url, headers=headers)
        return _Resp(payload={"kind": "User", "spec": {"memberOf": ["group:default/sre", "group:default/dev"]}})

    monkeypatch.setattr("kwgate.providers.catalog_provider.requests.get", fake_get)
    provider = CatalogGroupProvider("http://backstage/api/catalog/", token="t0k")
    assert provider.groups_for("user:default/alice") == ["group:default/sre", "group:default/dev"]
    assert seen["url"] == "http://backstage/api/catalog/entities/by-name/user/default/alice"
    assert seen["headers"] == {"Authorization": "Bearer t0k"}


def test_catalog_provider_unknown_user_has_no_groups(monkeypatch: pytest.MonkeyPatch) -> None:
    from kwgate.providers.catalog_provider import CatalogGroupProvider

    monkeypatch.setattr("kwgate.providers.catalog_provider.requests.get", lambda url, **kw: _Resp(status_code=404))
    assert CatalogGroupProvider("http://backstage").groups_for("user:default/ghost") == []

    monkeypatch.setattr(
        "kwgate.providers.catalog_provider.requests.get", lambda url, **kw: _Resp(payload={"spec": {}})
    )
    assert CatalogGroupProvider("http://backstage").groups_for("user:default/loner") == []


def test_catalog_provider_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    from kwgate.providers.catalog_provider import CatalogGroupProvider, GroupLookupError

    monkeypatch.setattr("kwgate.providers.catalog_provider.requests.get", lambda url, **kw: _Resp(status_code=500))
    with pytest.raises(GroupLookupError):
        CatalogGroupProvider("http://backstage").groups_for("user:default/alice")

    def boom(url, **kw):
        raise requests.exceptions.Timeout("slow")

    monkeypatch.setattr("kwgate.providers.catalog_provider.requests.get", boom)
    with pytest.raises(GroupLookupError):
        CatalogGroupProvider("http://backstage").groups_for("user:default/alice")


def test_static_provider_is_case_insensitive_on_identity() -> None:
    from kwgate.providers.catalog_provider import StaticGroupProvider

    p = StaticGroupProvider({"User:Default/Alice": ["group:default/sre"]})
    assert p.groups_for("user:default/alice") == ["group:default/sre"]
    assert p.groups_for("user:default/bob") == []


def test_catalog_provider_ignores_non_list_member_of(monkeypatch: pytest.MonkeyPatch) -> None:
    from kwgate.providers.catalog_provider import CatalogGroupProvider

    monkeypatch.setattr(
        "kwgate.providers.catalog_provider.requests.get",
        lambda url, **kw: _Resp(payload={"spec": {"memberOf": "group:default/sre"}}),
    )
    assert CatalogGroupProvider("http://backstage").groups_for("user:default/alice") == []
