"""Audit targets, reports and their persistence."""

import base64
import json
import logging
import sqlite3
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from utils.compression import detect_mime_type
from utils.errors import ValidationError
from utils.metrics import PageMetrics
from utils.scoring import NormalizedAnalysis

logger = logging.getLogger(__name__)

BLOCKED_HOSTS = ("metadata.google.internal", "169.254.169.254")


class Stage(Enum):
    """Checkpoints a report passes through, in order."""
    LOADING = "loading"
    METRICS = "metrics"
    TYPOGRAPHY = "typography"
    CONTRAST = "contrast"
    CTA = "cta"
    AI_ANALYSIS = "ai_analysis"
    FINALIZING = "finalizing"
    COMPLETED = "completed"


STAGE_PROGRESS = {
    Stage.LOADING: 10,
    Stage.METRICS: 25,
    Stage.TYPOGRAPHY: 35,
    Stage.CONTRAST: 45,
    Stage.CTA: 55,
    Stage.AI_ANALYSIS: 65,
    Stage.FINALIZING: 90,
    Stage.COMPLETED: 100,
}


def normalize_url(url: str) -> str:
    """Prepend https:// when no scheme is given and validate the result."""
    url = (url or "").strip()
    if not url:
        raise ValidationError("URL is empty")
    if "://" not in url:
        url = "https://" + url
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise ValidationError(f"Blocked scheme: {parsed.scheme}")
    hostname = parsed.hostname
    if not hostname or ("." not in hostname and hostname != "localhost"):
        raise ValidationError(f"URL has no valid hostname: {url}")
    if hostname in BLOCKED_HOSTS:
        raise ValidationError(f"Blocked metadata endpoint: {hostname}")
    return url


@dataclass(frozen=True)
class Target:
    """What to audit: a URL or an uploaded image. Immutable once accepted."""
    url: Optional[str] = None
    image_base64: Optional[str] = None
    mime_type: Optional[str] = None

    @property
    def is_url(self) -> bool:
        return self.url is not None

    @classmethod
    def from_url(cls, url: str) -> "Target":
        return cls(url=normalize_url(url))

    @classmethod
    def from_image(cls, data: bytes) -> "Target":
        """Accept raw image bytes, detecting the MIME type from the content."""
        if not data:
            raise ValidationError("Uploaded image is empty")
        mime_type = detect_mime_type(data)
        if mime_type is None:
            raise ValidationError("Uploaded file is not a supported image")
        return cls(image_base64=base64.b64encode(data).decode("utf-8"), mime_type=mime_type)

    def image_bytes(self) -> bytes:
        return base64.b64decode(self.image_base64 or "")

    def to_dict(self) -> Dict[str, Any]:
        if self.is_url:
            return {"kind": "url", "url": self.url}
        return {"kind": "image", "mimeType": self.mime_type}


@dataclass
class Status:
    stage: Stage = Stage.LOADING
    message: str = ""
    progress: int = STAGE_PROGRESS[Stage.LOADING]

    def to_dict(self) -> Dict[str, Any]:
        return {"stage": self.stage.value, "message": self.message, "progress": self.progress}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Status":
        return cls(Stage(data.get("stage", "loading")), data.get("message", ""), int(data.get("progress", 0)))


@dataclass
class AuditReport:
    """A persisted audit. `id` never changes after creation."""
    id: str
    target: Dict[str, Any]
    status: Status = field(default_factory=Status)
    metrics: Optional[PageMetrics] = None
    screenshots: Dict[str, Any] = field(default_factory=dict)
    analysis: Optional[NormalizedAnalysis] = None
    category_scores: Dict[str, int] = field(default_factory=dict)
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())
    error: Optional[str] = None

    @property
    def url(self) -> Optional[str]:
        return self.target.get("url")

    @property
    def is_complete(self) -> bool:
        return self.status.stage == Stage.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "target": dict(self.target),
            "status": self.status.to_dict(),
            "metrics": self.metrics.to_dict() if self.metrics else None,
            "screenshots": self.screenshots,
            "analysis": self.analysis.to_dict() if self.analysis else None,
            "categoryScores": dict(self.category_scores),
            "createdAt": self.created_at,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuditReport":
        return cls(
            id=data["id"],
            target=data.get("target") or {},
            status=Status.from_dict(data.get("status") or {}),
            metrics=PageMetrics.from_dict(data["metrics"]) if data.get("metrics") else None,
            screenshots=data.get("screenshots") or {},
            analysis=NormalizedAnalysis.from_dict(data["analysis"]) if data.get("analysis") else None,
            category_scores=data.get("categoryScores") or {},
            created_at=data.get("createdAt") or datetime.now().isoformat(),
            error=data.get("error"),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_json(cls, raw: str) -> "AuditReport":
        return cls.from_dict(json.loads(raw))


class ReportStore:
    """Key-value store of serialized reports. Last writer wins."""

    def get(self, report_id: str) -> Optional[str]:
        raise NotImplementedError

    def put(self, report_id: str, serialized: str) -> None:
        raise NotImplementedError

    def load(self, report_id: str) -> Optional[AuditReport]:
        """Fetch and deserialize a report, None when unknown."""
        raw = self.get(report_id)
        return AuditReport.from_json(raw) if raw else None

    def save(self, report: AuditReport) -> None:
        self.put(report.id, report.to_json())


class MemoryReportStore(ReportStore):
    """In-process store, for tests and embedding."""

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, report_id: str) -> Optional[str]:
        with self._lock:
            return self._data.get(report_id)

    def put(self, report_id: str, serialized: str) -> None:
        with self._lock:
            self._data[report_id] = serialized


class SQLiteReportStore(ReportStore):
    """
    Reports in a SQLite table.

    Table: reports
    - id (text, primary key)
    - url (text)
    - report_data (text, JSON)
    - created_at (text)
    """

    def __init__(self, db_path: str):
        self.db_path = str(db_path)
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.init_db()

    def get_connection(self) -> sqlite3.Connection:
        """Return a connection to the SQLite database."""
        conn = sqlite3.connect(self.db_path, timeout=10)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create the reports table if it does not exist."""
        conn = self.get_connection()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS reports (
                    id TEXT PRIMARY KEY,
                    url TEXT,
                    report_data TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
            conn.commit()
        finally:
            conn.close()

    def get(self, report_id: str) -> Optional[str]:
        conn = self.get_connection()
        try:
            row = conn.execute(
                "SELECT report_data FROM reports WHERE id = ?", (report_id,)
            ).fetchone()
            return row["report_data"] if row else None
        finally:
            conn.close()

    def put(self, report_id: str, serialized: str) -> None:
        url = None
        try:
            url = (json.loads(serialized).get("target") or {}).get("url")
        except (ValueError, AttributeError):
            logger.warning("Storing report %s with unreadable payload", report_id)
        conn = self.get_connection()
        try:
            conn.execute(
                """
                INSERT INTO reports (id, url, report_data, created_at) VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET url = excluded.url, report_data = excluded.report_data
                """,
                (report_id, url, serialized, datetime.now().isoformat()),
            )
            conn.commit()
        finally:
            conn.close()

    def list_recent(self, limit: int = 20):
        """Most recent reports as (id, url, created_at) rows."""
        conn = self.get_connection()
        try:
            rows = conn.execute(
                "SELECT id, url, created_at FROM reports ORDER BY created_at DESC LIMIT ?", (limit,)
            ).fetchall()
            return [(r["id"], r["url"], r["created_at"]) for r in rows]
        finally:
            conn.close()
