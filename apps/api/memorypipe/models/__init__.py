from memorypipe.models.job import Job
from memorypipe.models.transcript import Transcript
from memorypipe.models.summary import Summary
from memorypipe.models.memory import Memory
from memorypipe.models.audit_log import AuditLogEntry

__all__ = ["Job", "Transcript", "Summary", "Memory", "AuditLogEntry"]
