"""Credit balance checks that decide whether a session may continue."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .store import AccountLedger

logger = logging.getLogger("mockmate.timer.credits")

ACCOUNT_NOT_FOUND = "Account not found"


@dataclass(frozen=True)
class CreditCheck:
    balance: Optional[int]
    should_terminate: bool
    reason: Optional[str] = None


class CreditEnforcement:
    """Reads the ledger and applies the termination rule.

    Only a strictly negative balance terminates. Starting a session already
    consumed one credit, so a balance of zero is allowed to run out.
    """

    def __init__(self, ledger: AccountLedger) -> None:
        self._ledger = ledger

    def check(self, account_id: str) -> CreditCheck:
        balance = self._ledger.get_balance(account_id)
        if balance is None:
            logger.error("Account %s not found during credit check", account_id)
            return CreditCheck(balance=None, should_terminate=True, reason=ACCOUNT_NOT_FOUND)
        if balance < 0:
            logger.info("Account %s has insufficient credits (%s)", account_id, balance)
            return CreditCheck(
                balance=balance,
                should_terminate=True,
                reason=f"Insufficient credits: {balance}",
            )
        return CreditCheck(balance=balance, should_terminate=False)


__all__ = ["ACCOUNT_NOT_FOUND", "CreditCheck", "CreditEnforcement"]
