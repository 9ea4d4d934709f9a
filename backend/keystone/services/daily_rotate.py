"""
Keystone — Daily Rotating File Handler
========================================

What:  A logging handler that writes one file per calendar day and keeps at
       most `max_files` of them, recording every file in an audit manifest.
How:   Subclass of logging.handlers.BaseRotatingHandler. The filename pattern
       carries a `%DATE%` placeholder (YYYY-MM-DD, local time of the record).
       When a record's date differs from the open file's date the stream is
       closed and the next date's file is opened. Opening a file appends it
       to the manifest and prunes the oldest entries beyond the retention.

Audit manifest (`<dir>/.audit/<name>.json`):
    {
        "keep": {"days": false, "amount": 14},
        "auditLog": "/srv/logs/.audit/app.json",
        "files": [
            {"date": 1718841600000, "name": "/srv/logs/app.2024-06-20.log",
             "hash": "<sha256 of name + date>"}
        ],
        "hashType": "sha256"
    }
"""

import hashlib
import json
import logging
import logging.handlers
import os
import time
from contextlib import suppress
from datetime import datetime
from typing import Any, Dict, List, Optional

DATE_PLACEHOLDER = "%DATE%"
DATE_FORMAT = "%Y-%m-%d"


class DailyRotatingFileHandler(logging.handlers.BaseRotatingHandler):
    """
    Rotate log files by calendar day with bounded retention.

    Args:
        pattern:     Path containing %DATE%, e.g. "logs/app.%DATE%.log"
        max_files:   Files to keep; 0 keeps all of them
        audit_file:  Manifest path; None disables the manifest
        level:       Minimum level accepted by this sink
    """

    def __init__(
        self,
        pattern: str,
        max_files: int = 0,
        audit_file: Optional[str] = None,
        level: int = logging.NOTSET,
        encoding: str = "utf-8",
    ):
        if DATE_PLACEHOLDER not in pattern:
            raise ValueError(f"Log file pattern must contain {DATE_PLACEHOLDER}: {pattern}")
        self.pattern = os.path.abspath(pattern)
        self.max_files = max_files
        self.audit_file = os.path.abspath(audit_file) if audit_file else None
        self.current_date = self.date_for(time.time())

        os.makedirs(os.path.dirname(self.pattern), exist_ok=True)
        self._audit = self._load_audit()

        super().__init__(self.filename_for(self.current_date), "a", encoding=encoding, delay=True)
        self.setLevel(level)

    @staticmethod
    def date_for(timestamp: float) -> str:
        return datetime.fromtimestamp(timestamp).strftime(DATE_FORMAT)

    def filename_for(self, date: str) -> str:
        return self.pattern.replace(DATE_PLACEHOLDER, date)

    # ── Rotation ──────────────────────────────────────────────────────────

    def shouldRollover(self, record: logging.LogRecord) -> bool:
        return self.date_for(record.created) != self.current_date

    def doRollover(self) -> None:
        self.rotate_to(self.date_for(time.time()))

    def rotate_to(self, date: str) -> None:
        if self.stream:
            self.stream.close()
            self.stream = None
        self.current_date = date
        self.baseFilename = self.filename_for(date)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            if self.shouldRollover(record):
                self.rotate_to(self.date_for(record.created))
            logging.FileHandler.emit(self, record)
        except Exception:
            self.handleError(record)

    def _open(self):
        stream = super()._open()
        self._track(self.baseFilename)
        return stream

    # ── Audit manifest ────────────────────────────────────────────────────

    @property
    def files(self) -> List[str]:
        """Files currently tracked by the manifest, oldest first."""
        return [entry["name"] for entry in self._audit["files"]]

    def _load_audit(self) -> Dict[str, Any]:
        audit: Dict[str, Any] = {
            "keep": {"days": False, "amount": self.max_files},
            "auditLog": self.audit_file,
            "files": [],
            "hashType": "sha256",
        }
        if self.audit_file and os.path.exists(self.audit_file):
            try:
                with open(self.audit_file, encoding="utf-8") as fh:
                    audit["files"] = list(json.load(fh).get("files", []))
            except (OSError, ValueError, AttributeError):
                # Unreadable manifest: start a new one, old files stay on disk
                audit["files"] = []
        return audit

    def _track(self, filename: str) -> None:
        if filename in self.files:
            return
        created = int(time.time() * 1000)
        digest = hashlib.sha256(f"{filename}{created}".encode("utf-8")).hexdigest()
        self._audit["files"].append({"date": created, "name": filename, "hash": digest})
        self._prune()
        self._write_audit()

    def _prune(self) -> None:
        if not self.max_files or len(self._audit["files"]) <= self.max_files:
            return
        expired = self._audit["files"][: -self.max_files]
        self._audit["files"] = self._audit["files"][-self.max_files:]
        for entry in expired:
            with suppress(FileNotFoundError):
                os.remove(entry["name"])

    def _write_audit(self) -> None:
        if not self.audit_file:
            return
        os.makedirs(os.path.dirname(self.audit_file), exist_ok=True)
        tmp_path = f"{self.audit_file}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as fh:
            json.dump(self._audit, fh, indent=2)
        os.replace(tmp_path, self.audit_file)
