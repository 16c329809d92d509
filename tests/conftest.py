"""
Pytest config.

Local imports like `import kwgate` rely on the repo root being on sys.path. When the repo
is not installed (or a global `pytest` entrypoint is used) that doesn't happen reliably
during collection, so we pin it here.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, Iterator

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()


@pytest.fixture(autouse=True)
def _fresh_settings_and_service() -> Iterator[None]:
    """Settings are lru-cached and the API keeps a module-level service; reset both per test."""
    from kwgate.api import server
    from kwgate.config.settings import load_settings

    load_settings.cache_clear()
    server.set_service(None)
    yield
    load_settings.cache_clear()
    server.set_service(None)


@pytest.fixture
def app_config() -> Dict[str, Any]:
    return {
        "kubernetes": {
            "clusterLocatorMethods": [
                {
                    "type": "config",
                    "clusters": [
                        {
                            "name": "prod",
                            "title": "Production",
                            "kwirthHome": "http://kwirth.prod:3883/",
                            "kwirthApiKey": "prod-key",
                            "kwirthLog": {
                                "namespacePermissions": [{"prod": ["Group:Default/SRE", "user:default/alice"]}],
                                "podPermissions": [
                                    {
                                        "prod": {
                                            "allow": [{"pods": ["^api-"], "refs": ["group:default/sre"]}],
                                            "deny": [{"pods": ["-canary$"]}],
                                            "unless": [{"refs": ["user:default/alice"]}],
                                        }
                                    },
                                    {"staging": None},
                                ],
                            },
                            "kwirthmetrics": {
                                "podPermissions": [
                                    {"prod": {"allow": [{"refs": ["group:default/sre"]}], "except": [{"pods": ["db"]}]}}
                                ]
                            },
                        },
                        {"name": "dev", "kwirthHome": "http://kwirth.dev:3883", "kwirthApiKey": "dev-key"},
                        {"name": "legacy", "title": "No Kwirth here"},
                    ],
                },
                {"type": "catalog"},
            ]
        }
    }
