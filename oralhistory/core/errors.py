from __future__ import annotations


class LedgerError(Exception):
    """Base class for failures surfaced by the record ledger client."""

    label = "Unknown error"


class RemoteUnavailable(LedgerError):
    """The ledger liveness probe reported the store as unavailable."""

    label = "Ledger unavailable"


class DecodeError(LedgerError):
    """Stored bytes could not be decoded into a record or index."""

    label = "Malformed ledger data"


class NotFound(LedgerError):
    """No record blob exists for the requested id."""

    label = "Record not found"


class RemoteCallFailed(LedgerError):
    """A ledger or collaborator call failed at the transport level."""

    label = "Remote call failed"


class PreconditionFailed(LedgerError):
    """Required input is missing or the record is in the wrong state."""

    label = "Precondition failed"


class Unauthorized(LedgerError):
    """The caller is not allowed to perform the operation."""

    label = "Unauthorized"
