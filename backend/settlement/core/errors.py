"""Settlement engine error taxonomy.

Every error carries a stable ``code`` string so callers (workers, scripts,
an eventual API layer) can map failures without matching on messages.
"""


class SettlementError(Exception):
    """Base class for all errors raised by the settlement engine."""

    code = "settlement_error"

    def __init__(self, message: str, *, payment_id: str | None = None):
        self.message = message
        self.payment_id = payment_id
        super().__init__(message)

    def __str__(self) -> str:
        if self.payment_id:
            return f"{self.code}: {self.message} (payment_id={self.payment_id})"
        return f"{self.code}: {self.message}"


class NotAuthorized(SettlementError):
    """Caller is not allowed to perform the attempted transition."""

    code = "not_authorized"


class InvalidState(SettlementError):
    """Transition attempted from a status that does not permit it."""

    code = "invalid_state"

    def __init__(
        self,
        message: str,
        *,
        payment_id: str | None = None,
        current: str | None = None,
        action: str | None = None,
    ):
        self.current = current
        self.action = action
        super().__init__(message, payment_id=payment_id)


class TimeoutNotReached(InvalidState):
    """expire_refund called before the escrow timeout elapsed."""

    code = "timeout_not_reached"


class AlreadyExists(SettlementError):
    code = "already_exists"


class NotFound(SettlementError):
    code = "not_found"


class UnsupportedAsset(SettlementError):
    code = "unsupported_asset"


class InvalidAmount(SettlementError):
    """Amount is zero, negative, or does not fit the ledger's integer range."""

    code = "invalid_amount"


class TransferFailed(SettlementError):
    """The ledger declined a transfer; nothing was persisted."""

    code = "transfer_failed"


class PolicyViolation(SettlementError):
    """Request conflicts with admin policy (fee cap, split range, ...)."""

    code = "policy_violation"
