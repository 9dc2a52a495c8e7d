"""Tracking engine exceptions."""


class TrackingError(RuntimeError):
    """Base class for errors surfaced by the tracking engine."""


class InvalidTransitionError(TrackingError):
    """Raised when a control event isn't valid in the current session state."""

    def __init__(self, action: str, state):
        self.action = action
        self.state = state
        super().__init__(f"Cannot {action} while {getattr(state, 'value', state)}")


class FinalizationError(TrackingError):
    """
    Raised when the storage collaborator rejects a finished session.

    The final aggregate has already been written back to the recovery
    journal; `session` holds the record that failed to save.
    """

    def __init__(self, session, cause: Exception):
        self.session = session
        self.cause = cause
        super().__init__(f"Failed to save run {session.session_id}: {cause}")


class JournalReadError(TrackingError):
    """Raised when the stored recovery entry can't be decoded."""


class RecoveryPendingError(TrackingError):
    """
    Raised by start() while an interrupted run is still waiting for storage.

    The journal has a single slot, so a new run would overwrite the only
    copy of the pending one. Retry once storage accepts the recovered run.
    """

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Run {session_id} is still waiting to be saved; retry once storage is available")
