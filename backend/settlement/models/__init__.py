from settlement.models.escrow_payment import EscrowPayment
from settlement.models.audit_log import AuditLog

__all__ = [
    "EscrowPayment",
    "AuditLog",
]
