"""Error types raised by the progression engine and its stores."""


class ProgressionError(Exception):
    """Base class for all engine errors. None of them are fatal to the process."""


class ValidationError(ProgressionError):
    """A required input is missing or malformed. State is unchanged; re-prompt."""


class SessionStateError(ProgressionError):
    """The requested transition is not valid for the current active session."""


class MinimumTimeNotMet(ProgressionError):
    """A session ended before its minimum duration.

    The failure penalty has already been applied and the session discarded
    by the time this is raised.
    """

    def __init__(self, required_minutes: int, actual_minutes: int, penalty=None):
        self.required_minutes = required_minutes
        self.actual_minutes = actual_minutes
        self.penalty = penalty
        super().__init__(
            f"Minimum {required_minutes} minutes required, session lasted {actual_minutes}"
        )


class InsufficientGold(ProgressionError):
    """A reward claim costs more gold than is available. State is unchanged."""

    def __init__(self, gold: int, cost: int):
        self.gold = gold
        self.cost = cost
        super().__init__(f"Insufficient gold: have {gold}, need {cost}")


class StorageFailure(ProgressionError):
    """Blob or key-value I/O failed. The active session is left as it was."""
