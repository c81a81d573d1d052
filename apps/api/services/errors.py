"""Ledger and subscription error types.

Each error is an ``HTTPException`` so service functions can raise it the same
way the rest of the API raises ``HTTPException`` and routers need no mapping.
"""

from __future__ import annotations

from typing import Optional

from fastapi import HTTPException


class LedgerError(HTTPException):
    status_code = 400
    default_detail = "Ledger operation failed"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(status_code=self.status_code, detail=detail or self.default_detail)


class NotFound(LedgerError):
    status_code = 404
    default_detail = "Account not found"


class InsufficientFunds(LedgerError):
    status_code = 402
    default_detail = "Insufficient balance"


class SelfTransfer(LedgerError):
    status_code = 400
    default_detail = "Payer and payee must be different accounts"


class InvalidAmount(LedgerError):
    status_code = 422
    default_detail = "Amount must be a positive value with at most two decimal places"


class AlreadyVerified(LedgerError):
    status_code = 409
    default_detail = "You are already verified"


class AlreadyPurchased(LedgerError):
    status_code = 409
    default_detail = "You already own this file"


class StorageUnavailable(LedgerError):
    status_code = 503
    default_detail = "Storage is temporarily unavailable. Try again later."


class AlreadyFavorited(LedgerError):
    status_code = 409
    default_detail = "Already in favorites"
