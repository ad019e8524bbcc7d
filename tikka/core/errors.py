"""Error kinds raised by the raffle state machine.

Every guard violation raises one of these before any mutation or transfer
happens, so callers can treat any ``RaffleError`` as "no-op occurred".
"""
from typing import Any, Dict


class RaffleError(Exception):
    """Base class for all raffle errors"""

    kind = "raffle_error"

    def __init__(self, message: str = "", **context: Any):
        super().__init__(message or self.kind)
        self.message = message or self.kind
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message, "context": self.context}


class NotFound(RaffleError):
    """Unknown raffle id"""
    kind = "not_found"


class Unauthorized(RaffleError):
    """Caller lacks the required role"""
    kind = "unauthorized"


class InvalidState(RaffleError):
    """Operation not legal in the current status"""
    kind = "invalid_state"


class InvalidParameters(RaffleError):
    """Arguments out of range or inconsistent"""
    kind = "invalid_parameters"


class SoldOut(RaffleError):
    """Ticket cap reached"""
    kind = "sold_out"


class Expired(RaffleError):
    """Raffle end time has passed"""
    kind = "expired"


class NotYetExpired(RaffleError):
    """Raffle is still running"""
    kind = "not_yet_expired"


class DuplicateTicket(RaffleError):
    """Multiple-ticket restriction violated"""
    kind = "duplicate_ticket"


class TransferFailed(RaffleError):
    """Underlying asset move rejected"""
    kind = "transfer_failed"


class AlreadyProcessed(RaffleError):
    """Prize already deposited/claimed or randomness already set"""
    kind = "already_processed"


class ZeroTickets(RaffleError):
    """No tickets were sold"""
    kind = "zero_tickets"


class ContractPaused(RaffleError):
    """Contract is paused by the admin"""
    kind = "contract_paused"


class NotInitialized(RaffleError):
    """Contract configuration has not been initialized"""
    kind = "not_initialized"


class AlreadyInitialized(RaffleError):
    """Contract configuration already exists"""
    kind = "already_initialized"


class InvariantViolation(RaffleError):
    """A record failed its post-transition invariant check"""
    kind = "invariant_violation"
