"""Wire models shared by the providers, the access pipeline and the HTTP API.

Kwirth payloads are permissive (`extra="allow"`): the downstream API adds fields between
versions and we pass pod data through to the caller untouched.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

ANNOTATION_KUBERNETES_ID = "backstage.io/kubernetes-id"
ANNOTATION_KUBERNETES_LABELSELECTOR = "backstage.io/kubernetes-label-selector"


class BaseModelAllowExtra(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class BaseModelStrict(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class KwirthChannel(BaseModelAllowExtra):
    id: str
    routable: bool = False
    pauseable: bool = False
    modifyable: bool = False
    reconnectable: bool = False
    metrics: bool = False
    sources: List[str] = Field(default_factory=list)


class KwirthInfo(BaseModelAllowExtra):
    """Body of Kwirth's `/config/info` endpoint."""

    version: str = "0.0.0"
    last_version: str = Field(default="0.0.0", alias="lastVersion")
    cluster_name: str = Field(default="unknown", alias="clusterName")
    namespace: str = "unknown"
    deployment: str = "unknown"
    in_cluster: bool = Field(default=False, alias="inCluster")
    cluster_type: str = Field(default="kubernetes", alias="clusterType")
    metrics_interval: int = Field(default=0, alias="metricsInterval")
    channels: List[KwirthChannel] = Field(default_factory=list)


class Workload(BaseModelAllowExtra):
    """A candidate pod as returned by Kwirth's find endpoint."""

    name: str
    namespace: str
    containers: List[Any] = Field(default_factory=list)


class EntityMetadata(BaseModelAllowExtra):
    name: str
    namespace: Optional[str] = None
    annotations: Dict[str, str] = Field(default_factory=dict)


class CatalogEntity(BaseModelAllowExtra):
    """The (Backstage-style) catalog entity an access request is made for."""

    metadata: EntityMetadata

    @property
    def kubernetes_id(self) -> Optional[str]:
        return self.metadata.annotations.get(ANNOTATION_KUBERNETES_ID) or None

    @property
    def label_selector(self) -> Optional[str]:
        return self.metadata.annotations.get(ANNOTATION_KUBERNETES_LABELSELECTOR) or None


class AccessKey(BaseModelAllowExtra):
    id: str
    type: str = "bearer"
    resources: str = ""

    def serialize(self) -> str:
        return f"{self.id}|{self.type}|{self.resources}"


class ClusterAccess(BaseModelStrict):
    """Per-cluster result of an access request."""

    name: str
    url: str
    title: str
    pods: List[Workload] = Field(default_factory=list)
    access_keys: Dict[str, AccessKey] = Field(default_factory=dict)
    metrics: Optional[List[Dict[str, Any]]] = None

    def to_wire(self) -> Dict[str, Any]:
        # accessKeys travels as a JSON string of [scope, key] pairs.
        out: Dict[str, Any] = {
            "name": self.name,
            "url": self.url,
            "title": self.title,
            "pods": [p.model_dump() for p in self.pods],
            "accessKeys": json.dumps([[scope, key.model_dump()] for scope, key in self.access_keys.items()]),
        }
        if self.metrics is not None:
            out["metrics"] = self.metrics
        return out
