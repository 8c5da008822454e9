"""
Analyzer report stores.

``FileReportStore`` writes one JSON document per report to
``{STORAGE_DIR}/websites/{website_id}/reports/{report_id}.json``. Report ids
are ULIDs, so lexical order of file names is creation order.
"""

from __future__ import annotations

import os
from pathlib import Path

from seofix.core.errors import PersistenceError
from seofix.core.log import logger
from seofix.core.storage import get_website_dir, read_json_text, write_json_text
from seofix.schema.analysis import AnalysisReport

__all__ = ("FileReportStore", "InMemoryReportStore")


class InMemoryReportStore:
    def __init__(self, reports: list[AnalysisReport] | None = None):
        self._reports: dict[str, list[AnalysisReport]] = {}
        for report in reports or []:
            self._reports.setdefault(report.website_id, []).append(report)

    async def append(self, report: AnalysisReport) -> AnalysisReport:
        self._reports.setdefault(report.website_id, []).append(report.model_copy(deep=True))
        return report

    async def latest(self, website_id: str) -> AnalysisReport | None:
        reports = self._reports.get(website_id)
        return reports[-1].model_copy(deep=True) if reports else None

    def all(self, website_id: str) -> list[AnalysisReport]:
        return list(self._reports.get(website_id, []))


class FileReportStore:
    @staticmethod
    def _reports_dir(website_id: str) -> Path:
        return get_website_dir(website_id) / "reports"

    async def append(self, report: AnalysisReport) -> AnalysisReport:
        path = self._reports_dir(report.website_id) / f"{report.id}.json"
        try:
            await write_json_text(path, report.model_dump_json(indent=2))
        except OSError as exc:
            raise PersistenceError(f"Failed to write report {report.id}: {exc}") from exc
        logger.debug(f"Stored analysis report {report.id} for website {report.website_id} ({report.score:.1f})")
        return report

    async def latest(self, website_id: str) -> AnalysisReport | None:
        reports_dir = self._reports_dir(website_id)
        if not reports_dir.exists():
            return None
        names = sorted(n for n in os.listdir(reports_dir) if n.endswith(".json"))
        if not names:
            return None
        try:
            return AnalysisReport.model_validate_json(await read_json_text(reports_dir / names[-1]))
        except OSError as exc:
            raise PersistenceError(f"Failed to read latest report for website {website_id}: {exc}") from exc
