"""Kwirth client: cluster info, candidate pod discovery and access key minting."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Protocol, Sequence, runtime_checkable

import requests
from pydantic import ValidationError

from kwgate.core.models import AccessKey, CatalogEntity, KwirthInfo, Workload
from kwgate.core.versions import version_greater_than

if TYPE_CHECKING:
    from kwgate.authz.policy import ClusterPolicy

# Label selectors on the find endpoint need a newer Kwirth.
LABEL_SELECTOR_MIN_VERSION = "0.4.40"


class KwirthError(Exception):
    """A Kwirth call failed (unreachable, non-200, unparseable body)."""


@runtime_checkable
class KwirthInfoProvider(Protocol):
    def fetch_info(self, home: str) -> KwirthInfo: ...


@runtime_checkable
class KwirthProvider(KwirthInfoProvider, Protocol):
    def find_workloads(self, cluster: "ClusterPolicy", entity: CatalogEntity) -> List[Workload]: ...

    def create_access_key(
        self,
        cluster: "ClusterPolicy",
        scope: str,
        workloads: Sequence[Workload],
        user_name: str,
        ttl_seconds: int = 3600,
    ) -> AccessKey: ...

    def fetch_metrics(self, cluster: "ClusterPolicy", access_key: AccessKey) -> List[Dict[str, Any]]: ...


def access_key_resources(scope: str, workloads: Sequence[Workload]) -> str:
    """Kwirth resource string: `scope:namespace::pod:` per pod, `;` separated."""
    return ";".join(f"{scope}:{w.namespace}::{w.name}:" for w in workloads)


def find_query_params(cluster: "ClusterPolicy", entity: CatalogEntity) -> Dict[str, str]:
    """
    Query parameters for `/managecluster/find`.

    Entities are located either by the kubernetes-id label or by a label selector
    (the latter only on Kwirth > 0.4.40).
    """
    if entity.kubernetes_id:
        return {
            "label": "backstage.io/kubernetes-id",
            "entity": entity.kubernetes_id,
            "type": "pod",
            "data": "containers",
        }
    if entity.label_selector:
        version = cluster.info.version if cluster.info is not None else "0.0.0"
        if cluster.info is not None and not version_greater_than(version, LABEL_SELECTOR_MIN_VERSION):
            raise KwirthError(
                f"Version {version} from cluster {cluster.name} is not valid for using label selectors"
            )
        return {"labelselector": entity.label_selector, "type": "pod", "data": "containers"}
    raise KwirthError("Received request without kubernetes-id / label-selector annotation")


class DefaultKwirthProvider:
    def __init__(self, timeout_seconds: int = 10, clock: Callable[[], float] = time.time) -> None:
        self.timeout_seconds = timeout_seconds
        self._clock = clock

    @staticmethod
    def _auth(token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    def fetch_info(self, home: str) -> KwirthInfo:
        url = f"{home.rstrip('/')}/config/info"
        try:
            response = requests.get(url, timeout=self.timeout_seconds)
            response.raise_for_status()
            return KwirthInfo.model_validate(response.json())
        except requests.exceptions.RequestException as e:
            raise KwirthError(f"Failed to fetch Kwirth info from {url}: {e}") from e
        except (ValueError, ValidationError) as e:
            raise KwirthError(f"Kwirth at {url} returned invalid info: {e}") from e

    def find_workloads(self, cluster: "ClusterPolicy", entity: CatalogEntity) -> List[Workload]:
        params = find_query_params(cluster, entity)
        url = f"{cluster.home}/managecluster/find"
        try:
            response = requests.get(url, params=params, headers=self._auth(cluster.api_key), timeout=self.timeout_seconds)
        except requests.exceptions.RequestException as e:
            raise KwirthError(f"Cannot access cluster {cluster.name} (URL: {url}): {e}") from e
        if response.status_code != 200:
            raise KwirthError(f"Invalid response from cluster {cluster.name}: {response.status_code} {response.text}")
        try:
            data = response.json()
        except ValueError as e:
            raise KwirthError(f"Invalid data received from cluster {cluster.name}") from e
        if not isinstance(data, list):
            raise KwirthError(f"Invalid data received from cluster {cluster.name}")
        try:
            return [Workload.model_validate(item) for item in data]
        except ValidationError as e:
            raise KwirthError(f"Invalid pod data received from cluster {cluster.name}: {e}") from e

    def create_access_key(
        self,
        cluster: "ClusterPolicy",
        scope: str,
        workloads: Sequence[Workload],
        user_name: str,
        ttl_seconds: int = 3600,
    ) -> AccessKey:
        payload = {
            "description": f"Backstage API key for user {user_name}",
            "expire": int(self._clock() * 1000) + ttl_seconds * 1000,
            "days": 1,
            "accessKey": {"id": "", "type": "bearer", "resources": access_key_resources(scope, workloads)},
        }
        url = f"{cluster.home}/key"
        try:
            response = requests.post(url, json=payload, headers=self._auth(cluster.api_key), timeout=self.timeout_seconds)
        except requests.exceptions.RequestException as e:
            raise KwirthError(f"Cannot ask cluster {cluster.name} for a key: {e}") from e
        if response.status_code != 200:
            raise KwirthError(f"Invalid response asking for a key from cluster {cluster.name}: {response.status_code}")
        try:
            return AccessKey.model_validate((response.json() or {}).get("accessKey"))
        except (ValueError, AttributeError, ValidationError) as e:
            raise KwirthError(f"Invalid key received from cluster {cluster.name}: {e}") from e

    def fetch_metrics(self, cluster: "ClusterPolicy", access_key: AccessKey) -> List[Dict[str, Any]]:
        url = f"{cluster.home}/metrics"
        try:
            response = requests.get(url, headers=self._auth(access_key.serialize()), timeout=self.timeout_seconds)
            response.raise_for_status()
            data = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            raise KwirthError(f"Cannot get metrics on cluster {cluster.name}: {e}") from e
        if not isinstance(data, list):
            raise KwirthError(f"Cannot get metrics on cluster {cluster.name}: unexpected payload")
        return data


def get_kwirth_provider(timeout_seconds: int = 10) -> KwirthProvider:
    """Seam for swapping provider implementations (tests use in-memory fakes)."""
    return DefaultKwirthProvider(timeout_seconds=timeout_seconds)
