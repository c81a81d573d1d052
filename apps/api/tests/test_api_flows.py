import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.future import select

from config import settings
from database import Base, get_db
from main import app
from models.user import User
from services.accounts import ensure_admin_account, register_account
from services.session_token import create_session_token


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    db_path = tmp_path / "api_flows.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield maker
    await engine.dispose()


@pytest_asyncio.fixture
async def integration_client(session_maker):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.pop(get_db, None)


@pytest_asyncio.fixture
async def admin_headers(session_maker, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_USERNAME", "overseer")
    async with session_maker() as session:
        admin = await ensure_admin_account(session)
    return {"Authorization": f"Bearer {create_session_token(admin.id, admin.username)['token']}"}


async def _register(client, username, **extra):
    response = await client.post("/auth/register", json={"username": username, **extra})
    assert response.status_code == 200, response.text
    data = response.json()
    return data["account"], {"Authorization": f"Bearer {data['session_token']}"}


async def _publish(client, headers, price="300.00", title="Starter Kit"):
    response = await client.post(
        "/marketplace",
        headers=headers,
        json={
            "title": title,
            "description": "Boilerplate for a FastAPI service",
            "price": price,
            "file_name": "starter.zip",
            "file_type": "application/zip",
            "file_size": 2048,
            "category": "templates",
            "tags": ["fastapi", "starter"],
        },
    )
    assert response.status_code == 200, response.text
    return response.json()


@pytest.mark.asyncio
async def test_register_grants_starting_balance_and_session(integration_client):
    account, headers = await _register(integration_client, "newcomer", display_name="New Comer")
    assert account["balance"] == "2500.00"
    assert account["total_earnings"] == "0.00"
    assert account["is_verified"] is False
    assert account["referral_code"].startswith("REF")

    me = await integration_client.get("/auth/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["id"] == account["id"]

    duplicate = await integration_client.post("/auth/register", json={"username": "NEWCOMER"})
    assert duplicate.status_code == 409


@pytest.mark.asyncio
async def test_requests_without_session_are_rejected(integration_client):
    assert (await integration_client.get("/wallet")).status_code == 401
    bad = await integration_client.get("/wallet", headers={"Authorization": "Bearer not-a-token"})
    assert bad.status_code == 401


@pytest.mark.asyncio
async def test_referral_code_pays_both_parties(integration_client):
    referrer, referrer_headers = await _register(integration_client, "referrer")
    referred, referred_headers = await _register(
        integration_client,
        "referred",
        referral_code=referrer["referral_code"],
    )
    assert referred["balance"] == "2550.00"

    referrer_wallet = (await integration_client.get("/wallet", headers=referrer_headers)).json()
    assert referrer_wallet["balance"] == "2600.00"
    assert referrer_wallet["total_earnings"] == "0.00"
    assert [item["kind"] for item in referrer_wallet["recent_transactions"]] == ["referral_bonus"]
    assert referrer_wallet["recent_transactions"][0]["direction"] == "credit"

    inbox = (await integration_client.get("/notifications", headers=referrer_headers)).json()
    assert inbox["unread_count"] == 1
    assert inbox["items"][0]["type"] == "referral"


@pytest.mark.asyncio
async def test_referrals_listing_reports_referred_accounts_and_total(integration_client):
    referrer, referrer_headers = await _register(integration_client, "referrer")
    for username in ("first_friend", "second_friend"):
        await _register(integration_client, username, referral_code=referrer["referral_code"])

    response = await integration_client.get("/referrals", headers=referrer_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["referral_code"] == referrer["referral_code"]
    assert sorted(item["referred_username"] for item in data["referrals"]) == ["first_friend", "second_friend"]
    assert data["total_earned"] == "200.00"


@pytest.mark.asyncio
async def test_unknown_referral_code_is_ignored(integration_client):
    account, _ = await _register(integration_client, "loner", referral_code="REFDEADBEEF")
    assert account["balance"] == "2500.00"


@pytest.mark.asyncio
async def test_marketplace_purchase_moves_price_from_buyer_to_seller(integration_client):
    seller, seller_headers = await _register(integration_client, "seller")
    buyer, buyer_headers = await _register(integration_client, "buyer")
    listing = await _publish(integration_client, seller_headers, price="300.00")
    assert listing["price"] == "300.00"

    browse = (await integration_client.get("/marketplace", params={"q": "starter"})).json()
    assert [item["id"] for item in browse["items"]] == [listing["id"]]

    purchase = await integration_client.post(f"/marketplace/{listing['id']}/purchase", headers=buyer_headers)
    assert purchase.status_code == 200, purchase.text
    data = purchase.json()
    assert data["balance_after"] == "2200.00"
    assert data["purchase"]["kind"] == "purchase"
    assert data["purchase"]["amount"] == "300.00"
    assert data["purchase"]["direction"] == "debit"

    seller_wallet = (await integration_client.get("/wallet", headers=seller_headers)).json()
    assert seller_wallet["balance"] == "2800.00"
    assert seller_wallet["total_earnings"] == "300.00"

    repeat = await integration_client.post(f"/marketplace/{listing['id']}/purchase", headers=buyer_headers)
    assert repeat.status_code == 409
    buyer_wallet = (await integration_client.get("/wallet", headers=buyer_headers)).json()
    assert buyer_wallet["balance"] == "2200.00"

    purchases = (await integration_client.get("/marketplace/my/purchases", headers=buyer_headers)).json()
    assert purchases["items"][0]["listing"]["id"] == listing["id"]
    sales = (await integration_client.get("/marketplace/my/sales", headers=seller_headers)).json()
    assert sales["items"][0]["payer_id"] == buyer["id"]

    detail = (await integration_client.get(f"/marketplace/{listing['id']}")).json()
    assert detail["downloads"] == 1
    assert detail["seller_id"] == seller["id"]


@pytest.mark.asyncio
async def test_purchase_rejections(integration_client):
    _, seller_headers = await _register(integration_client, "seller")
    _, buyer_headers = await _register(integration_client, "buyer")
    expensive = await _publish(integration_client, seller_headers, price="2500.01", title="Premium")

    own = await integration_client.post(f"/marketplace/{expensive['id']}/purchase", headers=seller_headers)
    assert own.status_code == 400

    broke = await integration_client.post(f"/marketplace/{expensive['id']}/purchase", headers=buyer_headers)
    assert broke.status_code == 402
    wallet = (await integration_client.get("/wallet", headers=buyer_headers)).json()
    assert wallet["balance"] == "2500.00"
    assert wallet["recent_transactions"] == []

    missing = await integration_client.post("/marketplace/does-not-exist/purchase", headers=buyer_headers)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_removed_listing_is_hidden_but_purchases_remain(integration_client):
    _, seller_headers = await _register(integration_client, "seller")
    _, buyer_headers = await _register(integration_client, "buyer")
    listing = await _publish(integration_client, seller_headers, price="10.00")
    await integration_client.post(f"/marketplace/{listing['id']}/purchase", headers=buyer_headers)

    forbidden = await integration_client.delete(f"/marketplace/{listing['id']}", headers=buyer_headers)
    assert forbidden.status_code == 404
    removed = await integration_client.delete(f"/marketplace/{listing['id']}", headers=seller_headers)
    assert removed.status_code == 200

    assert (await integration_client.get(f"/marketplace/{listing['id']}")).status_code == 404
    purchases = (await integration_client.get("/marketplace/my/purchases", headers=buyer_headers)).json()
    assert len(purchases["items"]) == 1


@pytest.mark.asyncio
async def test_verification_purchase_over_http(integration_client):
    _, headers = await _register(integration_client, "hopeful")

    poor = await integration_client.post("/verification/purchase", headers=headers)
    assert poor.status_code == 402

    status = (await integration_client.get("/verification/status", headers=headers)).json()
    assert status["is_verified"] is False
    assert status["active_window"] is None


@pytest.mark.asyncio
async def test_admin_gift_then_verification(integration_client, admin_headers):
    account, headers = await _register(integration_client, "protege")

    gift = await integration_client.post(
        "/admin/gift-money",
        headers=admin_headers,
        json={"user_id": account["id"], "amount": "2500.00", "note": "welcome"},
    )
    assert gift.status_code == 200, gift.text
    assert gift.json()["gift"]["kind"] == "gift"

    bought = await integration_client.post("/verification/purchase", headers=headers)
    assert bought.status_code == 200, bought.text
    data = bought.json()
    assert data["balance_after"] == "0.00"
    assert data["window"]["status"] == "active"
    assert data["window"]["amount"] == "5000.00"

    again = await integration_client.post("/verification/purchase", headers=headers)
    assert again.status_code == 409

    me = (await integration_client.get("/auth/me", headers=headers)).json()
    assert me["is_verified"] is True
    assert me["balance"] == "0.00"
    assert me["total_earnings"] == "2500.00"


@pytest.mark.asyncio
async def test_admin_gift_rejects_bad_targets(integration_client, admin_headers):
    account, headers = await _register(integration_client, "regular")

    missing = await integration_client.post(
        "/admin/gift-money",
        headers=admin_headers,
        json={"user_id": "ghost", "amount": "5.00"},
    )
    assert missing.status_code == 404

    not_admin = await integration_client.post(
        "/admin/gift-money",
        headers=headers,
        json={"user_id": account["id"], "amount": "5.00"},
    )
    assert not_admin.status_code == 403


@pytest.mark.asyncio
async def test_admin_verification_toggle_and_suspension(integration_client, admin_headers):
    account, headers = await _register(integration_client, "member")

    granted = await integration_client.post(
        f"/admin/toggle-verification/{account['id']}",
        headers=admin_headers,
        json={"is_verified": True},
    )
    assert granted.status_code == 200
    assert granted.json()["account"]["is_verified"] is True
    assert granted.json()["account"]["verification_expiry"] is None

    revoked = await integration_client.post(
        f"/admin/toggle-verification/{account['id']}",
        headers=admin_headers,
        json={"is_verified": False},
    )
    assert revoked.status_code == 200
    assert revoked.json()["account"]["is_verified"] is False

    suspended = await integration_client.post(
        f"/admin/toggle-suspend/{account['id']}",
        headers=admin_headers,
        json={"is_suspended": True},
    )
    assert suspended.status_code == 200
    assert (await integration_client.get("/wallet", headers=headers)).status_code == 403

    await integration_client.post(
        f"/admin/toggle-suspend/{account['id']}",
        headers=admin_headers,
        json={"is_suspended": False},
    )
    assert (await integration_client.get("/wallet", headers=headers)).status_code == 200

    stats = (await integration_client.get("/admin/stats", headers=admin_headers)).json()
    assert stats["total_users"] == 2
    users = (await integration_client.get("/admin/users", headers=admin_headers, params={"q": "memb"})).json()
    assert [item["username"] for item in users["items"]] == ["member"]


@pytest.mark.asyncio
async def test_notifications_mark_read(integration_client, admin_headers):
    account, headers = await _register(integration_client, "reader")
    for amount in ("1.00", "2.00"):
        await integration_client.post(
            "/admin/gift-money",
            headers=admin_headers,
            json={"user_id": account["id"], "amount": amount},
        )

    inbox = (await integration_client.get("/notifications", headers=headers)).json()
    assert inbox["unread_count"] == 2
    first_id = inbox["items"][0]["id"]

    marked = await integration_client.patch(f"/notifications/{first_id}/read", headers=headers)
    assert marked.status_code == 200
    assert marked.json()["is_read"] is True

    rest = await integration_client.post("/notifications/read-all", headers=headers)
    assert rest.json()["marked_read"] == 1
    assert (await integration_client.get("/notifications", headers=headers)).json()["unread_count"] == 0

    missing = await integration_client.patch("/notifications/nope/read", headers=headers)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_presence_heartbeat_uses_local_fallback(integration_client, monkeypatch):
    monkeypatch.setattr(settings, "REDIS_URL", "redis://127.0.0.1:1/0")
    account, headers = await _register(integration_client, "chatter")

    beat = await integration_client.post("/chat/heartbeat", headers=headers)
    assert beat.status_code == 200

    online = (await integration_client.get("/chat/online", headers=headers)).json()
    assert [entry["id"] for entry in online] == [account["id"]]
    assert online[0]["username"] == "chatter"


@pytest.mark.asyncio
async def test_health_live(integration_client):
    response = await integration_client.get("/health/live")
    assert response.status_code == 200
    assert response.json() == {"alive": True}


@pytest.mark.asyncio
async def test_admin_bootstrap_matches_existing_username_case_insensitively(session_maker, monkeypatch):
    async with session_maker() as session:
        existing = await register_account("Overseer", session)

    monkeypatch.setattr(settings, "ADMIN_USERNAME", "overseer")
    async with session_maker() as session:
        admin = await ensure_admin_account(session)
    assert admin.id == existing.id
    assert admin.username == "Overseer"
    assert admin.is_admin is True

    async with session_maker() as session:
        count = await session.execute(select(func.count(User.id)))
        assert count.scalar() == 1


@pytest.mark.asyncio
async def test_rating_favorites_and_achievements_over_http(integration_client):
    _, seller_headers = await _register(integration_client, "seller")
    _, buyer_headers = await _register(integration_client, "buyer")
    listing = await _publish(integration_client, seller_headers, price="40.00")

    early = await integration_client.post(
        f"/marketplace/{listing['id']}/rate", headers=buyer_headers, json={"rating": 5}
    )
    assert early.status_code == 403

    saved = await integration_client.post(f"/favorites/{listing['id']}", headers=buyer_headers)
    assert saved.status_code == 200
    again = await integration_client.post(f"/favorites/{listing['id']}", headers=buyer_headers)
    assert again.status_code == 409
    check = (await integration_client.get(f"/favorites/{listing['id']}/check", headers=buyer_headers)).json()
    assert check == {"is_favorite": True}
    favorites = (await integration_client.get("/favorites", headers=buyer_headers)).json()
    assert favorites["items"][0]["price_drop"] is False

    await integration_client.post(f"/marketplace/{listing['id']}/purchase", headers=buyer_headers)
    out_of_range = await integration_client.post(
        f"/marketplace/{listing['id']}/rate", headers=buyer_headers, json={"rating": 6}
    )
    assert out_of_range.status_code == 422
    rated = await integration_client.post(
        f"/marketplace/{listing['id']}/rate",
        headers=buyer_headers,
        json={"rating": 4, "review": "Solid"},
    )
    assert rated.status_code == 200, rated.text
    assert rated.json()["average_rating"] == "4.00"
    detail = (await integration_client.get(f"/marketplace/{listing['id']}")).json()
    assert detail["total_ratings"] == 1

    achievements = (await integration_client.get("/achievements", headers=buyer_headers)).json()
    assert [item["type"] for item in achievements["items"]] == ["first_purchase"]
    seller_achievements = (await integration_client.get("/achievements", headers=seller_headers)).json()
    assert [item["type"] for item in seller_achievements["items"]] == ["first_sale"]

    removed = await integration_client.delete(f"/favorites/{listing['id']}", headers=buyer_headers)
    assert removed.status_code == 200
    assert (await integration_client.get("/favorites", headers=buyer_headers)).json()["items"] == []


@pytest.mark.asyncio
async def test_my_listings_shows_removed_listings(integration_client):
    _, seller_headers = await _register(integration_client, "seller")
    kept = await _publish(integration_client, seller_headers, title="Kept")
    dropped = await _publish(integration_client, seller_headers, title="Dropped")
    await integration_client.delete(f"/marketplace/{dropped['id']}", headers=seller_headers)

    mine = (await integration_client.get("/marketplace/my/listings", headers=seller_headers)).json()
    status = {item["id"]: item["is_active"] for item in mine["items"]}
    assert status == {kept["id"]: True, dropped["id"]: False}


@pytest.mark.asyncio
async def test_user_search_needs_two_characters_and_hides_private_fields(integration_client):
    _, headers = await _register(integration_client, "searcher")
    await _register(integration_client, "pixelsmith")

    short = (await integration_client.get("/users/search", params={"q": "p"}, headers=headers)).json()
    assert short["items"] == []

    found = (await integration_client.get("/users/search", params={"q": "PIXEL"}, headers=headers)).json()
    assert [item["username"] for item in found["items"]] == ["pixelsmith"]
    assert "balance" not in found["items"][0]


@pytest.mark.asyncio
async def test_notifications_unread_count_and_delete(integration_client, admin_headers):
    account, headers = await _register(integration_client, "tidy")
    for amount in ("1.00", "2.00", "3.00"):
        await integration_client.post(
            "/admin/gift-money",
            headers=admin_headers,
            json={"user_id": account["id"], "amount": amount},
        )

    count = (await integration_client.get("/notifications/unread-count", headers=headers)).json()
    assert count == {"count": 3}

    inbox = (await integration_client.get("/notifications", headers=headers)).json()
    deleted = await integration_client.delete(f"/notifications/{inbox['items'][0]['id']}", headers=headers)
    assert deleted.status_code == 200
    assert (await integration_client.get("/notifications/unread-count", headers=headers)).json() == {"count": 2}

    missing = await integration_client.delete("/notifications/nope", headers=headers)
    assert missing.status_code == 404

    cleared = (await integration_client.delete("/notifications", headers=headers)).json()
    assert cleared == {"ok": True, "deleted": 2}
    assert (await integration_client.get("/notifications", headers=headers)).json()["items"] == []
