# Overview: Domain error taxonomy shared by services, routes and CLI.

"""
PackLoop error taxonomy.

Every service operation reports failures synchronously by raising one of
these. Nothing here is retried automatically; the HTTP layer maps
`status_code` to the response and the CLI prints the message.

LedgerCorruption is different from the rest: it means the reconciliation
invariant (balance == sum of transactions) is broken. It is an integrity
fault that needs manual remediation, not a user error.
"""

from __future__ import annotations


class PackLoopError(Exception):
    """Base class for all domain errors."""
    status_code = 400


class ValidationError(PackLoopError, ValueError):
    """400-level input problem (bad enum value, out-of-range number, wrong location kind)."""


class NotFound(PackLoopError, LookupError):
    """Referenced entity does not exist."""
    status_code = 404

    def __init__(self, entity: str, entity_id):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(PackLoopError):
    """409-level business rule conflict (e.g., duplicate location name)."""
    status_code = 409


class ReferenceInUse(ConflictError):
    """Delete refused because operational history still references the row."""


class InvalidStateTransition(ConflictError):
    """Asset state machine violation."""

    def __init__(self, instance_id: int, current: str, target: str, event: str, reason: str | None = None):
        msg = (
            f"Instance {instance_id}: cannot move from '{current}' to '{target}' "
            f"on event '{event}'"
        )
        if reason:
            msg = f"{msg} ({reason})"
        super().__init__(msg)
        self.instance_id = instance_id
        self.current = current
        self.target = target
        self.event = event


class DuplicateOpenCheckout(ConflictError):
    """Instance already has an open checkout."""


class DuplicateReturn(ConflictError):
    """Checkout has already been closed by another return."""


class CycleAlreadyClosed(ConflictError):
    """Wash cycle was already completed."""


class InsufficientFunds(PackLoopError):
    """Debit would take the account below zero for a reason that may not overdraw."""
    status_code = 422


class LedgerCorruption(PackLoopError):
    """Stored balance disagrees with the sum of the account's transactions."""
    status_code = 500

    def __init__(self, account_id: int, balance_cents: int, ledger_sum_cents: int):
        super().__init__(
            f"Deposit account {account_id}: stored balance {balance_cents} "
            f"!= ledger sum {ledger_sum_cents}"
        )
        self.account_id = account_id
        self.balance_cents = balance_cents
        self.ledger_sum_cents = ledger_sum_cents
