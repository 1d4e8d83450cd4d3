"""Orchestrator package for audit coordination."""

from .report_store import AuditReport, MemoryReportStore, SQLiteReportStore, Stage, Target
from .status_tracker import StatusTracker
from .analysis_orchestrator import AnalysisOrchestrator
from .pipeline import AuditPipeline

__all__ = [
    'AuditReport', 'MemoryReportStore', 'SQLiteReportStore', 'Stage', 'Target',
    'StatusTracker', 'AnalysisOrchestrator', 'AuditPipeline',
]
