"""Balance ledger: transfers between accounts with immutable receipts."""

from __future__ import annotations

import logging
import secrets
import time
import uuid
from contextlib import asynccontextmanager
from decimal import Decimal, InvalidOperation
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from models.transaction_receipt import TransactionReceipt
from models.user import User
from services.errors import (
    InsufficientFunds,
    InvalidAmount,
    NotFound,
    SelfTransfer,
    StorageUnavailable,
)
from services.timeutil import isoformat, utcnow


logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
RECEIPT_KINDS = ("purchase", "gift", "subscription", "referral_bonus")


def to_amount(value: Any) -> Decimal:
    """Parse a money value into an exact two-decimal ``Decimal``.

    Values with sub-cent precision are rejected rather than rounded, so a
    receipt always carries exactly what the caller asked to move.
    """
    if isinstance(value, bool):
        raise InvalidAmount()
    try:
        amount = Decimal(str(value).strip())
        if not amount.is_finite():
            raise InvalidAmount()
        quantized = amount.quantize(CENT)
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise InvalidAmount() from exc
    if quantized != amount:
        raise InvalidAmount()
    return quantized


def positive_amount(value: Any) -> Decimal:
    amount = to_amount(value)
    if amount <= ZERO:
        raise InvalidAmount("Amount must be greater than 0")
    return amount


def _stored_amount(value: Any) -> Decimal:
    return Decimal(str(value if value is not None else 0)).quantize(CENT)


def format_amount(value: Any) -> str:
    return str(_stored_amount(value))


def generate_transaction_token() -> str:
    """Millisecond prefix keeps tokens time-ordered; 128 random bits keep them unique."""
    return f"TXN{int(time.time() * 1000)}{secrets.token_hex(16).upper()}"


@asynccontextmanager
async def atomic(db: AsyncSession) -> AsyncIterator[AsyncSession]:
    """Commit every write made inside the block together, or none of them."""
    try:
        yield db
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.warning("Ledger transaction rolled back after storage error: %s", exc)
        raise StorageUnavailable() from exc
    except Exception:
        await db.rollback()
        raise


async def lock_accounts(db: AsyncSession, account_ids: Iterable[str]) -> Dict[str, User]:
    """Load and row-lock accounts; already-held locks are re-entrant."""
    # Ordered ids keep concurrent transfers from locking the same pair in opposite order.
    ids = sorted({str(account_id) for account_id in account_ids if account_id})
    result = await db.execute(
        select(User)
        .where(User.id.in_(ids))
        .order_by(User.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return {account.id: account for account in result.scalars().all()}


def _debit(account: User, amount: Decimal) -> None:
    if account.has_infinite_balance:
        return
    balance = _stored_amount(account.balance)
    if balance < amount:
        raise InsufficientFunds(f"Insufficient balance. Required: {amount}, available: {balance}.")
    account.balance = balance - amount


def _credit(account: User, amount: Decimal, *, count_as_earnings: bool = True) -> None:
    if account.has_infinite_balance:
        return
    account.balance = _stored_amount(account.balance) + amount
    if count_as_earnings:
        account.total_earnings = _stored_amount(account.total_earnings) + amount


def _check_kind(kind: str) -> str:
    if kind not in RECEIPT_KINDS:
        raise ValueError(f"Unknown receipt kind: {kind}")
    return kind


def _new_receipt(
    *,
    kind: str,
    payer_id: Optional[str],
    payee_id: Optional[str],
    amount: Decimal,
    platform_fee: Decimal = ZERO,
    listing_id: Optional[str] = None,
    note: Optional[str] = None,
) -> TransactionReceipt:
    return TransactionReceipt(
        id=str(uuid.uuid4()),
        payer_id=payer_id,
        payee_id=payee_id,
        kind=_check_kind(kind),
        listing_id=listing_id,
        amount=amount,
        platform_fee=platform_fee,
        transaction_token=generate_transaction_token(),
        note=note,
        created_at=utcnow(),
    )


async def apply_transfer(
    db: AsyncSession,
    payer_id: str,
    payee_id: str,
    amount: Any,
    *,
    kind: str,
    listing_id: Optional[str] = None,
    note: Optional[str] = None,
    platform_fee: Any = ZERO,
) -> TransactionReceipt:
    """Move ``amount`` from payer to payee inside the caller's transaction.

    The payee is credited ``amount - platform_fee``. Nothing is committed;
    wrap the call in ``atomic(db)`` or use ``transfer``.
    """
    value = positive_amount(amount)
    fee = to_amount(platform_fee)
    if fee < ZERO or fee > value:
        raise InvalidAmount("platform_fee must be between 0 and the amount")
    if str(payer_id) == str(payee_id):
        raise SelfTransfer()

    accounts = await lock_accounts(db, (payer_id, payee_id))
    payer = accounts.get(str(payer_id))
    payee = accounts.get(str(payee_id))
    if payer is None:
        raise NotFound("Payer account not found")
    if payee is None:
        raise NotFound("Payee account not found")

    _debit(payer, value)
    _credit(payee, value - fee)

    receipt = _new_receipt(
        kind=kind,
        payer_id=payer.id,
        payee_id=payee.id,
        amount=value,
        platform_fee=fee,
        listing_id=listing_id,
        note=note,
    )
    db.add(receipt)
    await db.flush()
    logger.info(
        "ledger_transfer kind=%s payer=%s payee=%s amount=%s token=%s",
        kind,
        payer.id,
        payee.id,
        value,
        receipt.transaction_token,
    )
    return receipt


async def transfer(
    db: AsyncSession,
    payer_id: str,
    payee_id: str,
    amount: Any,
    *,
    kind: str,
    listing_id: Optional[str] = None,
    note: Optional[str] = None,
    platform_fee: Any = ZERO,
) -> TransactionReceipt:
    """Atomically move value between two accounts and return the receipt."""
    async with atomic(db):
        receipt = await apply_transfer(
            db,
            payer_id,
            payee_id,
            amount,
            kind=kind,
            listing_id=listing_id,
            note=note,
            platform_fee=platform_fee,
        )
    return receipt


async def apply_platform_debit(
    db: AsyncSession,
    account_id: str,
    amount: Any,
    *,
    kind: str,
    note: Optional[str] = None,
) -> TransactionReceipt:
    """Charge an account a fee collected by the platform (no payee account).

    Unlimited-funds accounts are not debited; their receipt records 0.00.
    """
    value = positive_amount(amount)
    accounts = await lock_accounts(db, (account_id,))
    account = accounts.get(str(account_id))
    if account is None:
        raise NotFound()

    charged = ZERO if account.has_infinite_balance else value
    _debit(account, value)

    receipt = _new_receipt(kind=kind, payer_id=account.id, payee_id=None, amount=charged, note=note)
    db.add(receipt)
    await db.flush()
    logger.info(
        "ledger_platform_debit kind=%s account=%s amount=%s token=%s",
        kind,
        account.id,
        charged,
        receipt.transaction_token,
    )
    return receipt


async def apply_platform_credit(
    db: AsyncSession,
    account_id: str,
    amount: Any,
    *,
    kind: str,
    note: Optional[str] = None,
) -> TransactionReceipt:
    """Pay an account from the platform (bonuses); not counted as earnings."""
    value = positive_amount(amount)
    accounts = await lock_accounts(db, (account_id,))
    account = accounts.get(str(account_id))
    if account is None:
        raise NotFound()

    _credit(account, value, count_as_earnings=False)

    receipt = _new_receipt(kind=kind, payer_id=None, payee_id=account.id, amount=value, note=note)
    db.add(receipt)
    await db.flush()
    return receipt


async def list_receipts(
    db: AsyncSession,
    account_id: str,
    *,
    kind: Optional[str] = None,
    limit: int = 50,
) -> List[TransactionReceipt]:
    query = select(TransactionReceipt).where(
        or_(
            TransactionReceipt.payer_id == account_id,
            TransactionReceipt.payee_id == account_id,
        )
    )
    if kind:
        query = query.where(TransactionReceipt.kind == kind)
    result = await db.execute(
        query.order_by(TransactionReceipt.created_at.desc(), TransactionReceipt.id).limit(max(1, min(int(limit), 200)))
    )
    return list(result.scalars().all())


async def has_purchased(db: AsyncSession, buyer_id: str, listing_id: str) -> bool:
    result = await db.execute(
        select(func.count(TransactionReceipt.id)).where(
            TransactionReceipt.kind == "purchase",
            TransactionReceipt.payer_id == buyer_id,
            TransactionReceipt.listing_id == listing_id,
        )
    )
    return int(result.scalar() or 0) > 0


def serialize_receipt(receipt: TransactionReceipt, account_id: Optional[str] = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": receipt.id,
        "kind": receipt.kind,
        "payer_id": receipt.payer_id,
        "payee_id": receipt.payee_id,
        "listing_id": receipt.listing_id,
        "amount": format_amount(receipt.amount),
        "platform_fee": format_amount(receipt.platform_fee),
        "transaction_token": receipt.transaction_token,
        "note": receipt.note,
        "created_at": isoformat(receipt.created_at),
    }
    if account_id is not None:
        payload["direction"] = "debit" if receipt.payer_id == account_id else "credit"
    return payload


async def get_wallet_summary(account: User, db: AsyncSession) -> Dict[str, Any]:
    receipts = await list_receipts(db, account.id, limit=30)
    return {
        "account_id": account.id,
        "balance": format_amount(account.balance),
        "total_earnings": format_amount(account.total_earnings),
        "has_infinite_balance": bool(account.has_infinite_balance),
        "recent_transactions": [serialize_receipt(receipt, account.id) for receipt in receipts],
    }
