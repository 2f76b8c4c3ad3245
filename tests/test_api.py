"""
HTTP surface: routing, status codes and the error body shape.

Every request runs in its own committed session against the test database,
the same way get_db does in production.
"""

import uuid

import pytest
from httpx import ASGITransport, AsyncClient

from docflow.database import get_db, get_db_session
from docflow.main import app
from docflow.services.sales_order_service import SalesOrderService

from conftest import DocumentFactory


@pytest.fixture
async def client(session_factory, seed):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()


@pytest.fixture
def headers(seed):
    return {"X-User-Id": str(seed.user_id)}


def quotation_payload(seed, quantity=10, unit_price="10.00"):
    return {
        "customer_id": str(seed.customer_id),
        "items": [{
            "item_id": str(seed.item_ids[0]),
            "description": "Steel bracket",
            "quantity": quantity,
            "unit_price": unit_price,
        }],
    }


async def create_order(client, seed, headers):
    quotation = (await client.post("/api/v1/quotations", json=quotation_payload(seed), headers=headers)).json()
    await client.post(f"/api/v1/quotations/{quotation['id']}/approve", json={}, headers=headers)
    response = await client.post(
        "/api/v1/sales-orders/from-quotation", json={"quotation_id": quotation["id"]}, headers=headers
    )
    assert response.status_code == 201
    return response.json()


class TestHealth:

    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["checks"]["database"] == "connected"

    async def test_root(self, client):
        response = await client.get("/")
        assert response.json()["docs"] == "/docs"


class TestErrorMapping:

    async def test_not_found(self, client):
        missing = uuid.uuid4()
        response = await client.get(f"/api/v1/sales-orders/{missing}")

        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "not_found"
        assert body["detail"] == {"entity": "Sales order", "entity_id": str(missing)}
        assert body["retryable"] is False

    async def test_service_validation_error_names_fields(self, client, seed, headers):
        order = await create_order(client, seed, headers)

        response = await client.post(
            f"/api/v1/sales-orders/{order['id']}/amendments", json={"reason": "abc"}, headers=headers
        )

        assert response.status_code == 422
        assert response.json()["detail"]["fields"] == ["reason"]

    async def test_request_validation_error(self, client, seed):
        payload = quotation_payload(seed)
        payload["items"] = []
        response = await client.post("/api/v1/quotations", json=payload)
        assert response.status_code == 422

    async def test_conflict(self, client, seed, headers):
        quotation = (await client.post("/api/v1/quotations", json=quotation_payload(seed))).json()

        response = await client.post(
            "/api/v1/sales-orders/from-quotation", json={"quotation_id": quotation["id"]}
        )

        assert response.status_code == 409
        assert response.json()["error"] == "conflict"

    async def test_invalid_transition(self, client, seed):
        quotation = (await client.post("/api/v1/quotations", json=quotation_payload(seed))).json()
        await client.put(f"/api/v1/quotations/{quotation['id']}/status", json={"status": "Expired"})

        response = await client.put(f"/api/v1/quotations/{quotation['id']}/status", json={"status": "Sent"})

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "invalid_transition"
        assert body["detail"]["current_status"] == "Expired"

    async def test_failed_request_does_not_persist(self, client, seed):
        quotation = (await client.post("/api/v1/quotations", json=quotation_payload(seed))).json()

        response = await client.post(f"/api/v1/quotations/{quotation['id']}/reject", json={"reason": " "})
        assert response.status_code == 422

        reloaded = (await client.get(f"/api/v1/quotations/{quotation['id']}")).json()
        assert reloaded["status"] == "Draft"


class TestDocumentFlow:

    async def test_quotation_to_paid_invoice(self, client, session_factory, seed, headers):
        order = await create_order(client, seed, headers)
        assert order["status"] == "Draft"
        assert order["created_by"] == str(seed.user_id)

        amendment = await client.post(
            f"/api/v1/sales-orders/{order['id']}/amendments", json={"reason": "Customer changed terms"}
        )
        assert amendment.status_code == 201
        assert amendment.json()["order_number"] == f"{order['order_number']}-A1"

        lineage = (await client.get(f"/api/v1/sales-orders/{order['id']}/lineage")).json()
        assert [row["amendment_sequence"] for row in lineage] == [None, 1]

        lpos = await client.post("/api/v1/supplier-lpos/from-sales-orders", json={"sales_order_ids": [order["id"]]})
        assert lpos.status_code == 201
        [lpo] = lpos.json()
        sent = await client.post(f"/api/v1/supplier-lpos/{lpo['id']}/send")
        assert sent.json()["status"] == "Sent"
        item_id = lpo["items"][0]["id"]
        received = await client.post(
            f"/api/v1/supplier-lpos/{lpo['id']}/receive", json={"quantities": {item_id: 10}}
        )
        assert received.json()["status"] == "Received"

        async with get_db_session(session_factory) as session:
            so = await SalesOrderService(session).get_order(uuid.UUID(order["id"]))
            delivery = await DocumentFactory(session, seed).delivery(so)
            delivery_id = str(delivery.id)

        invoice = (await client.post("/api/v1/invoices/from-delivery", json={"delivery_id": delivery_id})).json()
        assert invoice["outstanding_amount"] == "100.00"

        paid = await client.post(f"/api/v1/invoices/{invoice['id']}/payments", json={"amount": "100.00"})
        assert paid.json()["status"] == "Paid"
        assert paid.json()["outstanding_amount"] == "0.00"

    async def test_customer_lpo_override_flow(self, client, seed, headers):
        order = await create_order(client, seed, headers)
        url = f"/api/v1/sales-orders/{order['id']}/customer-lpo"

        assert (await client.put(url, json={"status": "Approved"}, headers=headers)).status_code == 200
        assert (await client.put(url, json={"status": "Pending"})).status_code == 409

        response = await client.put(url, json={"status": "Pending", "override": True})
        assert response.status_code == 200
        assert response.json()["customer_lpo_validation_status"] == "Pending"

    async def test_malformed_actor_header_is_ignored(self, client, seed):
        response = await client.post(
            "/api/v1/quotations", json=quotation_payload(seed), headers={"X-User-Id": "not-a-uuid"}
        )
        assert response.status_code == 201
        assert response.json()["created_by"] is None
