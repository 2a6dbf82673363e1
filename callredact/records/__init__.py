"""Redaction records: state machine and persistence."""

from callredact.records.state import TERMINAL_STATUSES, RedactionRecord
from callredact.records.store import RedactionRecordStore

__all__ = ["TERMINAL_STATUSES", "RedactionRecord", "RedactionRecordStore"]
