# src/kidscalendar/sync/migration.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..storage.cache_store import LocalCacheStore
from .reconciler import SyncReconciler, SyncResult

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class MigrationReport:
    ok: bool
    skipped: bool = False
    migrated: list[str] = field(default_factory=list)
    already_present: list[str] = field(default_factory=list)
    results: list[SyncResult] = field(default_factory=list)
    error: str | None = None


class MigrationRunner:
    """
    One-time upload of a pre-sync local snapshot into the remote store.

    Children already present remotely (by primary key) are left alone, so the run
    can be repeated from zero after an interruption without duplicating anything.
    The completion flag is set only after every child was visited.
    """

    def __init__(self, cache: LocalCacheStore, reconciler: SyncReconciler) -> None:
        self._cache = cache
        self._reconciler = reconciler

    async def run(self, user_id: str, family_id: str) -> MigrationReport:
        if self._cache.is_migrated():
            logger.debug("Migration: already done")
            return MigrationReport(ok=True, skipped=True)

        try:
            if not self._cache.has_snapshot():
                logger.info("Migration: no local data to migrate")
                self._cache.mark_migrated()
                return MigrationReport(ok=True)

            snapshot = self._cache.load()
            logger.info(
                "Migration: user=%s family=%s children=%d guardians=%d",
                user_id, family_id, len(snapshot.children), len(snapshot.guardians),
            )

            report = MigrationReport(ok=True)
            for child in snapshot.children:
                if await self._reconciler.exists("children", child.id):
                    logger.info("Migration: child %s already exists, skipping", child.name)
                    report.already_present.append(child.id)
                    continue

                result = await self._reconciler.insert_child_graph(child, family_id)
                report.results.append(result)
                if result.skipped:
                    report.already_present.append(child.id)
                elif result.ok:
                    report.migrated.append(child.id)
                    logger.info("Migration: migrated child %s", child.name)
                else:
                    logger.error("Migration: child %s not migrated: %s", child.name, result.error)

            incomplete = [r.entity_id for r in report.results if not r.fully_ok]
            if incomplete:
                logger.warning("Migration: %d children incomplete, will retry next sign-in", len(incomplete))
                report.ok = False
                report.error = f"not migrated: {', '.join(incomplete)}"
                return report

            self._cache.mark_migrated()
            logger.info("Migration: complete (migrated=%d)", len(report.migrated))
            return report
        except Exception as e:
            logger.exception("Migration: unexpected error")
            return MigrationReport(ok=False, error=str(e))
