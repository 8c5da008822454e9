"""
Pre-run backup snapshots.

A snapshot records what the engine knows about a website before a mutating
run: its tracked issues and latest Analyzer report. It is an audit record, not
a rollback mechanism.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime

from ulid import ULID

from seofix.core.errors import PersistenceError
from seofix.core.log import logger
from seofix.core.storage import get_website_dir, write_json_text
from seofix.interfaces import IssueStore, ReportStore
from seofix.schema.website import Website

__all__ = ("FileBackupService", "InMemoryBackupService")


async def _build_snapshot(
    issues: IssueStore,
    reports: ReportStore,
    target: Website,
    user_id: str,
    reason: str,
) -> dict:
    tracked = await issues.query(target.id, user_id)
    latest = await reports.latest(target.id)
    return {
        "id": str(ULID()),
        "website_id": target.id,
        "website_url": target.url,
        "user_id": user_id,
        "reason": reason,
        "created_at": datetime.now(UTC).isoformat(),
        "tracked_issues": [i.model_dump(mode="json") for i in tracked],
        "latest_report": latest.model_dump(mode="json") if latest else None,
    }


class InMemoryBackupService:
    def __init__(self, issues: IssueStore, reports: ReportStore):
        self.issues = issues
        self.reports = reports
        self.snapshots: list[dict] = []

    async def snapshot(self, target: Website, user_id: str, reason: str) -> str:
        snapshot = await _build_snapshot(self.issues, self.reports, target, user_id, reason)
        self.snapshots.append(snapshot)
        return snapshot["id"]


class FileBackupService:
    """Writes snapshots to ``{STORAGE_DIR}/websites/{website_id}/backups/{id}.json``."""

    def __init__(self, issues: IssueStore, reports: ReportStore):
        self.issues = issues
        self.reports = reports

    async def snapshot(self, target: Website, user_id: str, reason: str) -> str:
        snapshot = await _build_snapshot(self.issues, self.reports, target, user_id, reason)
        path = get_website_dir(target.id) / "backups" / f"{snapshot['id']}.json"
        try:
            await write_json_text(path, json.dumps(snapshot, indent=2, ensure_ascii=False))
        except OSError as exc:
            raise PersistenceError(f"Failed to write backup for website {target.id}: {exc}") from exc
        logger.info(
            f"Website {target.id}: backup {snapshot['id']} ({reason}), "
            f"{len(snapshot['tracked_issues'])} tracked issue(s)"
        )
        return snapshot["id"]
