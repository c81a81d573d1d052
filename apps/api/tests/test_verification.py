from datetime import timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.future import select

from database import Base
from models.subscription_window import SubscriptionWindow
from models.transaction_receipt import TransactionReceipt
from models.user import User
from services.errors import AlreadyVerified, InsufficientFunds, NotFound
from services.ledger import to_amount
from services.timeutil import add_months, as_utc, utcnow
from services.verification import (
    expire_stale_windows,
    get_verification_status,
    grant_verification,
    purchase_subscription,
    revoke_verification,
)


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    db_path = tmp_path / "verification.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield maker
    await engine.dispose()


async def _seed_account(maker, account_id, balance="5000.00", **fields):
    async with maker() as session:
        session.add(
            User(
                id=account_id,
                username=account_id,
                balance=Decimal(balance),
                total_earnings=Decimal("0.00"),
                created_at=utcnow(),
                **fields,
            )
        )
        await session.commit()


async def _load(maker, account_id):
    async with maker() as session:
        return await session.get(User, account_id)


async def _windows(maker, account_id):
    async with maker() as session:
        result = await session.execute(
            select(SubscriptionWindow).where(SubscriptionWindow.account_id == account_id)
        )
        return list(result.scalars().all())


async def _receipt_count(maker, kind="subscription"):
    async with maker() as session:
        result = await session.execute(
            select(func.count(TransactionReceipt.id)).where(TransactionReceipt.kind == kind)
        )
        return int(result.scalar() or 0)


async def _backdate(maker, account_id, days=1):
    past = utcnow() - timedelta(days=days)
    async with maker() as session:
        account = await session.get(User, account_id)
        account.verification_expiry = past
        for window in (
            await session.execute(select(SubscriptionWindow).where(SubscriptionWindow.account_id == account_id))
        ).scalars():
            window.period_start = past - timedelta(days=30)
            window.period_end = past
        await session.commit()


@pytest.mark.asyncio
async def test_purchase_charges_fee_and_opens_one_month_window(session_maker):
    await _seed_account(session_maker, "carol")

    async with session_maker() as session:
        window = await purchase_subscription("carol", session)

    carol = await _load(session_maker, "carol")
    assert to_amount(carol.balance) == Decimal("0.00")
    assert carol.is_verified is True
    assert carol.verification_granted_by is None

    start = as_utc(window.period_start)
    end = as_utc(window.period_end)
    assert window.status == "active"
    assert to_amount(window.amount) == Decimal("5000.00")
    assert end == add_months(start, 1)
    assert as_utc(carol.verification_expiry) == end
    assert await _receipt_count(session_maker) == 1


@pytest.mark.asyncio
async def test_second_purchase_is_rejected_without_side_effects(session_maker):
    await _seed_account(session_maker, "carol", balance="12000.00")

    async with session_maker() as session:
        await purchase_subscription("carol", session)
    async with session_maker() as session:
        with pytest.raises(AlreadyVerified) as exc_info:
            await purchase_subscription("carol", session)
    assert exc_info.value.status_code == 409

    carol = await _load(session_maker, "carol")
    assert to_amount(carol.balance) == Decimal("7000.00")
    assert len(await _windows(session_maker, "carol")) == 1
    assert await _receipt_count(session_maker) == 1


@pytest.mark.asyncio
async def test_existing_active_window_blocks_purchase_even_if_flag_is_stale(session_maker):
    await _seed_account(session_maker, "carol")
    now = utcnow()
    async with session_maker() as session:
        session.add(
            SubscriptionWindow(
                id="open-window",
                account_id="carol",
                amount=Decimal("5000.00"),
                period_start=now,
                period_end=add_months(now, 1),
                status="active",
                created_at=now,
            )
        )
        await session.commit()

    async with session_maker() as session:
        with pytest.raises(AlreadyVerified):
            await purchase_subscription("carol", session)

    carol = await _load(session_maker, "carol")
    assert carol.is_verified is False
    assert to_amount(carol.balance) == Decimal("5000.00")
    assert [window.id for window in await _windows(session_maker, "carol")] == ["open-window"]
    assert await _receipt_count(session_maker) == 0


@pytest.mark.asyncio
async def test_purchase_requires_the_full_fee(session_maker):
    await _seed_account(session_maker, "dave", balance="4999.99")

    async with session_maker() as session:
        with pytest.raises(InsufficientFunds):
            await purchase_subscription("dave", session)

    dave = await _load(session_maker, "dave")
    assert dave.is_verified is False
    assert to_amount(dave.balance) == Decimal("4999.99")
    assert await _windows(session_maker, "dave") == []
    assert await _receipt_count(session_maker) == 0


@pytest.mark.asyncio
async def test_purchase_for_unknown_account_raises_not_found(session_maker):
    async with session_maker() as session:
        with pytest.raises(NotFound):
            await purchase_subscription("nobody", session)


@pytest.mark.asyncio
async def test_unlimited_account_records_zero_charge(session_maker):
    await _seed_account(session_maker, "whale", balance="0.00", has_infinite_balance=True)

    async with session_maker() as session:
        window = await purchase_subscription("whale", session)

    whale = await _load(session_maker, "whale")
    assert whale.is_verified is True
    assert to_amount(whale.balance) == Decimal("0.00")
    assert to_amount(window.amount) == Decimal("0.00")
    async with session_maker() as session:
        receipt = (
            await session.execute(select(TransactionReceipt).where(TransactionReceipt.payer_id == "whale"))
        ).scalar_one()
    assert to_amount(receipt.amount) == Decimal("0.00")
    assert receipt.payee_id is None


@pytest.mark.asyncio
async def test_sweep_expires_lapsed_windows_and_is_idempotent(session_maker):
    await _seed_account(session_maker, "erin")
    async with session_maker() as session:
        await purchase_subscription("erin", session)
    await _backdate(session_maker, "erin")

    async with session_maker() as session:
        first = await expire_stale_windows(session)
    assert first == {"expired_windows": 1, "unverified_accounts": 1}

    erin = await _load(session_maker, "erin")
    assert erin.is_verified is False
    assert erin.verification_expiry is None
    assert [window.status for window in await _windows(session_maker, "erin")] == ["expired"]

    async with session_maker() as session:
        second = await expire_stale_windows(session)
    assert second == {"expired_windows": 0, "unverified_accounts": 0}


@pytest.mark.asyncio
async def test_sweep_leaves_current_windows_alone(session_maker):
    await _seed_account(session_maker, "frank")
    async with session_maker() as session:
        await purchase_subscription("frank", session)

    async with session_maker() as session:
        result = await expire_stale_windows(session)
    assert result == {"expired_windows": 0, "unverified_accounts": 0}
    frank = await _load(session_maker, "frank")
    assert frank.is_verified is True


@pytest.mark.asyncio
async def test_expired_subscriber_can_buy_again(session_maker):
    await _seed_account(session_maker, "gina", balance="10000.00")
    async with session_maker() as session:
        await purchase_subscription("gina", session)
    await _backdate(session_maker, "gina")
    async with session_maker() as session:
        await expire_stale_windows(session)

    async with session_maker() as session:
        await purchase_subscription("gina", session)

    statuses = sorted(window.status for window in await _windows(session_maker, "gina"))
    assert statuses == ["active", "expired"]
    gina = await _load(session_maker, "gina")
    assert to_amount(gina.balance) == Decimal("0.00")
    assert gina.is_verified is True


@pytest.mark.asyncio
async def test_admin_grant_is_permanent_and_ignored_by_sweep(session_maker):
    await _seed_account(session_maker, "root", is_admin=True, has_infinite_balance=True)
    await _seed_account(session_maker, "hank", balance="0.00")

    async with session_maker() as session:
        await grant_verification("hank", "root", session)
    async with session_maker() as session:
        result = await expire_stale_windows(session)

    assert result["unverified_accounts"] == 0
    hank = await _load(session_maker, "hank")
    assert hank.is_verified is True
    assert hank.verification_expiry is None
    assert hank.verification_granted_by == "root"
    assert to_amount(hank.balance) == Decimal("0.00")
    assert await _receipt_count(session_maker) == 0

    async with session_maker() as session:
        with pytest.raises(AlreadyVerified):
            await purchase_subscription("hank", session)


@pytest.mark.asyncio
async def test_revoke_cancels_active_windows(session_maker):
    await _seed_account(session_maker, "ivy")
    async with session_maker() as session:
        await purchase_subscription("ivy", session)

    async with session_maker() as session:
        cancelled = await revoke_verification("ivy", session)
    assert cancelled == 1

    ivy = await _load(session_maker, "ivy")
    assert ivy.is_verified is False
    assert [window.status for window in await _windows(session_maker, "ivy")] == ["cancelled"]


@pytest.mark.asyncio
async def test_status_reports_active_window(session_maker):
    await _seed_account(session_maker, "jack")

    async with session_maker() as session:
        before = await get_verification_status("jack", session)
    assert before["is_verified"] is False
    assert before["active_window"] is None
    assert before["verification_fee"] == "5000.00"

    async with session_maker() as session:
        window = await purchase_subscription("jack", session)
    async with session_maker() as session:
        after = await get_verification_status("jack", session)
    assert after["is_verified"] is True
    assert after["granted_by_admin"] is False
    assert after["active_window"]["id"] == window.id
