"""
Error taxonomy for the try-on orchestrator.

Every error carries an ``error_code`` so the orchestrator can report it
to the UI layer without string matching.
"""
from typing import Optional


class TryOnError(Exception):
    """Base class for orchestrator errors"""

    error_code = "TRYON_ERROR"


class InsufficientFunds(TryOnError):
    """Balance is lower than the requested amount (user-facing, not retryable)"""

    error_code = "INSUFFICIENT_FUNDS"

    def __init__(self, user_id: str, balance: int, required: int):
        self.user_id = user_id
        self.balance = balance
        self.required = required
        super().__init__(
            f"Insufficient balance for user {user_id}: balance={balance} required={required}"
        )


class PersistenceError(TryOnError):
    """Durable balance store write failed.

    ``balance`` holds the in-memory balance after the operation: the
    pre-debit value for a rolled back debit, the credited value for a
    credit that was kept locally.
    """

    error_code = "PERSISTENCE_ERROR"

    def __init__(self, message: str, balance: Optional[int] = None):
        self.balance = balance
        super().__init__(message)


class SubmissionError(TryOnError):
    """Provider rejected or failed to accept a task"""

    error_code = "SUBMISSION_FAILED"


class ProviderFailure(TryOnError):
    """Provider reported the task as failed"""

    error_code = "PROVIDER_FAILED"


class TaskTimeout(TryOnError):
    """Polling budget exhausted before the provider finished"""

    error_code = "TIMEOUT"


class ProviderStatusError(TryOnError):
    """Transient status-check error; polling continues"""

    error_code = "STATUS_CHECK_FAILED"


class InvalidTransition(TryOnError):
    """Attempted a backward or skipping task state transition"""

    error_code = "INVALID_TRANSITION"


class RefundError(TryOnError):
    """Refund could not be made durable; user must contact support"""

    error_code = "REFUND_FAILED"
