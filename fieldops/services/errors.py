"""
Workflow error taxonomy.

Stores raise these; the workflow orchestrator decides per operation
whether a failure is fatal or only logged. "Not found" is never an
exception: lookups return None and updates/deletes return False.
"""


class WorkflowError(Exception):
    """Base class for all workflow failures"""


class ValidationError(WorkflowError, ValueError):
    """Caller-supplied value outside the allowed set (label, role, field)"""


class InvalidTransition(ValidationError):
    """Requested status change is not allowed from the current state"""


class StorageUnavailable(WorkflowError):
    """The store, or one of its tables, could not be reached"""


class IdentifierConflict(StorageUnavailable):
    """No free identifier could be allocated after the configured retries"""


class NotificationEmissionFailure(WorkflowError):
    """A notification side effect could not be written"""
