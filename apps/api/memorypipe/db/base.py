from memorypipe.db.base_class import Base  # noqa: F401

# Import all the models here so that Base has them registered
# This file should NOT be imported by models.
from memorypipe.models.job import Job  # noqa: F401
from memorypipe.models.transcript import Transcript  # noqa: F401
from memorypipe.models.summary import Summary  # noqa: F401
from memorypipe.models.memory import Memory  # noqa: F401
from memorypipe.models.audit_log import AuditLogEntry  # noqa: F401
