# tests/test_routes/test_webhook_routes.py
import json
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from stocksync.core.security import canonical_webhook_body, compute_signature
from stocksync.models.webhook_log import WebhookLog
from stocksync.services.mapping_service import MappingService

WEBHOOK_URL = "/webhook/stock-sync"
STORE_WEBHOOK_SECRET = "store-webhook-secret"


def envelope(store_url, product_id=101, quantity=9, event="stock.updated", sent_at=None, **data):
    sent_at = sent_at or datetime.now(timezone.utc)
    return {
        "event": event,
        "store_url": store_url,
        "timestamp": sent_at.strftime("%Y-%m-%dT%H:%M:%SZ"),
        "data": {"product_id": product_id, "stock_quantity": quantity, **data},
    }


def signed(body: dict, secret: str = STORE_WEBHOOK_SECRET) -> dict:
    return {**body, "signature": compute_signature(secret, canonical_webhook_body(body))}


@pytest.fixture
async def mapped_pair(db_session, make_store, make_product):
    store_a = await make_store(name="A", url="https://a.example.com")
    store_b = await make_store(name="B", url="https://b.example.com")
    a1 = await make_product(store_a, 101, sku="MUG", stock=4)
    b1 = await make_product(store_b, 201, sku="MUG", stock=4)
    await MappingService(db_session).create_mapping(1, "MUG", [a1.id, b1.id])
    return store_a, store_b


async def count_logs(db_session) -> int:
    result = await db_session.execute(select(func.count(WebhookLog.id)))
    return result.scalar()


@pytest.mark.asyncio
async def test_signed_webhook_propagates(async_client, gateways, mapped_pair):
    store_a, store_b = mapped_pair

    response = await async_client.post(WEBHOOK_URL, json=signed(envelope("https://a.example.com/")))

    assert response.status_code == 200
    assert response.json() == {"success": True, "synced": 1, "message": "Stock updated, synced to 1 stores"}
    assert [(c["remote_id"], c["quantity"]) for c in gateways.calls_for(store_b.id)] == [(201, 9)]
    assert gateways.calls_for(store_a.id) == []


@pytest.mark.asyncio
async def test_header_signature_over_raw_body(async_client, gateways, mapped_pair):
    raw = json.dumps(envelope("https://a.example.com")).encode()

    response = await async_client.post(
        WEBHOOK_URL,
        content=raw,
        headers={
            "Content-Type": "application/json",
            "X-WCSC-Signature": compute_signature(STORE_WEBHOOK_SECRET, raw),
        },
    )

    assert response.status_code == 200
    assert response.json()["synced"] == 1


@pytest.mark.asyncio
async def test_invalid_signature_is_rejected_before_any_write(async_client, db_session, gateways, mapped_pair):
    response = await async_client.post(
        WEBHOOK_URL, json=signed(envelope("https://a.example.com"), secret="wrong")
    )

    assert response.status_code == 401
    assert gateways.update_calls == []
    assert await count_logs(db_session) == 0


@pytest.mark.asyncio
async def test_missing_signature_is_rejected(async_client, mapped_pair):
    response = await async_client.post(WEBHOOK_URL, json=envelope("https://a.example.com"))

    assert response.status_code == 401


@pytest.mark.asyncio
@pytest.mark.parametrize("skew", [timedelta(minutes=-6), timedelta(minutes=6), timedelta(hours=-1)])
async def test_stale_timestamp_is_rejected(async_client, db_session, gateways, mapped_pair, skew):
    stale = datetime.now(timezone.utc) + skew

    response = await async_client.post(
        WEBHOOK_URL, json=signed(envelope("https://a.example.com", sent_at=stale))
    )

    assert response.status_code == 400
    assert await count_logs(db_session) == 0
    assert gateways.update_calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("content", [b"not json", b"[1, 2]", b'{"event": "stock.updated"}'])
async def test_malformed_body_is_rejected(async_client, content):
    response = await async_client.post(
        WEBHOOK_URL, content=content, headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_global_secret_when_store_has_none(async_client, make_store, make_product):
    store = await make_store(url="https://plain.example.com", webhook_secret=None)
    await make_product(store, 101, stock=1)

    response = await async_client.post(
        WEBHOOK_URL, json=signed(envelope("https://plain.example.com"), secret="global-webhook-secret")
    )

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert response.json()["synced"] == 0


@pytest.mark.asyncio
async def test_unknown_store_is_logged(async_client, db_session):
    response = await async_client.post(
        WEBHOOK_URL, json=signed(envelope("https://nowhere.example.com"), secret="global-webhook-secret")
    )

    assert response.status_code == 200
    assert response.json() == {"success": False, "synced": 0, "message": "Store not found"}
    result = await db_session.execute(select(WebhookLog))
    log = result.scalar_one()
    assert log.store_id is None
    assert log.status == "failed"


@pytest.mark.asyncio
async def test_test_event_is_acknowledged(async_client, gateways, mapped_pair):
    body = envelope("https://a.example.com", event="test", product_id=None, quantity=None)

    response = await async_client.post(WEBHOOK_URL, json=signed(body))

    assert response.status_code == 200
    assert response.json()["message"] == "Test webhook received"
    assert gateways.update_calls == []


@pytest.mark.asyncio
async def test_webhook_needs_no_basic_auth(async_client, mapped_pair):
    response = await async_client.post(
        WEBHOOK_URL, json=signed(envelope("https://a.example.com")), auth=("admin", "wrong")
    )

    assert response.status_code == 200
