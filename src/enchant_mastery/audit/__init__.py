"""Audit package: append-only JSONL record of mastery transactions.

Public surface
--------------
- :func:`append_event`: append one event to an audit stream.
- :func:`verify_audit_stream`: check integrity of the last event in a stream.
- :func:`read_events`: load a stream for inspection.
- :exc:`AuditWriteError`: raised when a filesystem write fails.
- :class:`AuditVerifyResult`: result of :func:`verify_audit_stream`.

An audit failure is never fatal: the transaction has already committed, only
its audit record is lost.
"""

from enchant_mastery.audit.writer import (
    DEFAULT_STREAM,
    AuditVerifyResult,
    AuditWriteError,
    append_event,
    read_events,
    verify_audit_stream,
)

__all__ = [
    "DEFAULT_STREAM",
    "AuditVerifyResult",
    "AuditWriteError",
    "append_event",
    "read_events",
    "verify_audit_stream",
]
