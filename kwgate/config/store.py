"""
Holder for the current policy snapshot.

Readers call `current()` once per request and keep that table for the whole request.
Reloads build a complete new table and publish it with a single reference assignment, so a
reader never sees a half-built table. The lock only serializes concurrent rebuilds.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Callable, Optional

from kwgate.authz.policy import PolicyConfigError, PolicyTable
from kwgate.config.loader import load_policy_table
from kwgate.config.settings import Settings
from kwgate.providers.kwirth_provider import KwirthInfoProvider

logger = logging.getLogger(__name__)

TableBuilder = Callable[[Path], PolicyTable]


def make_table_builder(settings: Settings, info_provider: Optional[KwirthInfoProvider] = None) -> TableBuilder:
    provider = info_provider if settings.probe_clusters else None

    def _build(path: Path) -> PolicyTable:
        return load_policy_table(
            path,
            channels=settings.channels,
            info_provider=provider,
            min_version=settings.min_kwirth_version,
        )

    return _build


class PolicyStore:
    def __init__(self, path: str | Path, builder: TableBuilder) -> None:
        self.path = Path(path)
        self._builder = builder
        self._lock = threading.Lock()
        self._mtime = self._stat_mtime()
        # Startup load is fatal on error: there is no previous table to fall back to.
        self._table: PolicyTable = builder(self.path)

    def _stat_mtime(self) -> Optional[float]:
        try:
            return os.stat(self.path).st_mtime
        except OSError:
            return None

    def current(self) -> PolicyTable:
        return self._table

    def swap(self, table: PolicyTable) -> PolicyTable:
        """Publish `table`; returns the previous one (still valid for in-flight readers)."""
        previous = self._table
        self._table = table
        return previous

    def reload(self) -> bool:
        with self._lock:
            # Recorded even on failure so a broken file is not re-read on every request.
            self._mtime = self._stat_mtime()
            try:
                table = self._builder(self.path)
            except (PolicyConfigError, OSError) as e:
                logger.error("Errors detected reading new configuration, keeping previous policy: %s", e)
                return False
            self.swap(table)
        logger.info("Policy reloaded from %s (%d cluster(s))", self.path, len(table))
        return True

    def reload_if_changed(self) -> bool:
        mtime = self._stat_mtime()
        if mtime is None or mtime == self._mtime:
            return False
        logger.warning("Change detected on %s, policy will be reloaded.", self.path)
        return self.reload()
