"""Group membership lookup (which groups does an identity ref belong to?)."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple, runtime_checkable
from urllib.parse import quote

import requests


class GroupLookupError(Exception):
    pass


@runtime_checkable
class GroupProvider(Protocol):
    def groups_for(self, identity_ref: str) -> List[str]: ...


def parse_entity_ref(ref: str, default_kind: str = "user", default_namespace: str = "default") -> Tuple[str, str, str]:
    """
    Split a canonical entity ref `kind:namespace/name`.

    Examples:
    - "user:default/alice" -> ("user", "default", "alice")
    - "user:alice"         -> ("user", "default", "alice")
    - "alice"              -> ("user", "default", "alice")
    """
    raw = (ref or "").strip()
    if not raw:
        raise ValueError("empty entity ref")
    kind, sep, rest = raw.partition(":")
    if not sep:
        kind, rest = default_kind, raw
    namespace, sep, name = rest.partition("/")
    if not sep:
        namespace, name = default_namespace, rest
    if not name:
        raise ValueError(f"invalid entity ref: {ref!r}")
    return kind.lower(), namespace.lower(), name.lower()


class CatalogGroupProvider:
    """Reads `spec.memberOf` from a Backstage-compatible catalog API."""

    def __init__(self, base_url: str, *, token: Optional[str] = None, timeout_seconds: int = 10) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout_seconds = timeout_seconds

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    def groups_for(self, identity_ref: str) -> List[str]:
        kind, namespace, name = parse_entity_ref(identity_ref)
        url = f"{self.base_url}/entities/by-name/{quote(kind)}/{quote(namespace)}/{quote(name)}"
        try:
            response = requests.get(url, headers=self._headers(), timeout=self.timeout_seconds)
        except requests.exceptions.RequestException as e:
            raise GroupLookupError(f"Failed to fetch entity {identity_ref} from catalog: {e}") from e
        if response.status_code == 404:
            return []
        if response.status_code != 200:
            raise GroupLookupError(f"Catalog returned {response.status_code} for {identity_ref}")
        try:
            entity: Any = response.json()
        except ValueError as e:
            raise GroupLookupError(f"Catalog returned invalid JSON for {identity_ref}") from e
        member_of = ((entity or {}).get("spec") or {}).get("memberOf") if isinstance(entity, dict) else None
        if not isinstance(member_of, list):
            return []
        # TODO: follow parent groups (spec.parent) for nested memberships.
        return [str(g) for g in member_of]


class StaticGroupProvider:
    """In-memory memberships, keyed by lowercased identity ref."""

    def __init__(self, memberships: Optional[Mapping[str, Sequence[str]]] = None) -> None:
        self._memberships = {k.lower(): list(v) for k, v in (memberships or {}).items()}

    def groups_for(self, identity_ref: str) -> List[str]:
        return list(self._memberships.get((identity_ref or "").lower(), []))
