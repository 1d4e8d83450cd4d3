"""Progress checkpoints persisted on the report."""

import logging
from typing import Optional

from orchestrator.report_store import AuditReport, ReportStore, Stage, Status, STAGE_PROGRESS

logger = logging.getLogger(__name__)


class StatusTracker:
    """Writes stage, message and progress onto a stored report."""

    def __init__(self, store: ReportStore):
        self.store = store

    def advance(self, report_id: str, stage: Stage, message: str = "",
                progress: Optional[int] = None) -> Optional[AuditReport]:
        """
        Read the report, overwrite its status and write it back.

        Args:
            report_id: Report to update
            stage: New stage
            message: Human readable status line
            progress: Percentage, the stage's checkpoint value when None

        Returns:
            The updated report, or None when the id is unknown
        """
        report = self.store.load(report_id)
        if report is None:
            logger.warning("Status update for unknown report %s", report_id)
            return None
        if stage == Stage.COMPLETED:
            progress = 100
        elif progress is None:
            progress = STAGE_PROGRESS[stage]
        report.status = Status(stage=stage, message=message, progress=int(progress))
        self.store.save(report)
        logger.info("[%s] %s (%d%%) %s", report_id[:8], stage.value, progress, message)
        return report

    def complete(self, report_id: str, message: str = "Audit completed") -> Optional[AuditReport]:
        return self.advance(report_id, Stage.COMPLETED, message)
