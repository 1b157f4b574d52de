import httpx
import pytest

from orderhub.adapters.errors import AlreadyExistsError, AuthError, TransientError, ValidationError
from orderhub.adapters.http import raise_for_provider
from orderhub.adapters.shopify import ShopifyAdapter, imported_from_payload
from orderhub.adapters.base import TrackingInfo


def _resp(status, **kw):
    return httpx.Response(status, request=httpx.Request("POST", "https://p.invalid/x"), **kw)


@pytest.mark.parametrize(
    "status, body, exc",
    [
        (401, {"message": "bad token"}, AuthError),
        (403, {"message": "nope"}, AuthError),
        (429, {"message": "slow down"}, TransientError),
        (502, {"message": "bad gateway"}, TransientError),
        (409, {"message": "conflict"}, AlreadyExistsError),
        (422, {"errors": "order has already been fulfilled"}, AlreadyExistsError),
        (422, {"errors": "zip is invalid"}, ValidationError),
        (404, {"message": "not found"}, ValidationError),
    ],
)
def test_status_mapping(status, body, exc):
    with pytest.raises(exc):
        raise_for_provider("p", _resp(status, json=body))


def test_success_passes():
    raise_for_provider("p", _resp(201, json={}))


class _Order:
    order_name = "#3001"
    platform_order_id = "555"


def _shopify(handler):
    return ShopifyAdapter(
        {"shop": "demo.myshopify.com", "access_token": "tok"},
        api_version="2025-01",
        timeout=5,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_push_fulfillment_posts_open_fulfillment_orders():
    posted = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["X-Shopify-Access-Token"] == "tok"
        if request.url.path.endswith("/orders/555/fulfillment_orders.json"):
            return httpx.Response(
                200,
                json={
                    "fulfillment_orders": [
                        {"id": 1, "status": "open", "line_items": [{"id": 11, "fulfillable_quantity": 2}]},
                        {"id": 2, "status": "closed", "line_items": [{"id": 21, "fulfillable_quantity": 0}]},
                    ]
                },
            )
        posted.append(request.read())
        return httpx.Response(201, json={"fulfillment": {"id": 9001}})

    res = await _shopify(handler).push_fulfillment(_Order(), TrackingInfo("V1", "Meest", "https://t/V1"))
    assert res.fulfillment_id == "9001"
    assert res.platform_order_id == "555"
    assert len(posted) == 1
    assert b'"fulfillment_order_id":1' in posted[0].replace(b" ", b"")


@pytest.mark.asyncio
async def test_push_fulfillment_when_already_fulfilled():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/fulfillment_orders.json"):
            return httpx.Response(200, json={"fulfillment_orders": [{"id": 1, "status": "closed", "line_items": []}]})
        return httpx.Response(
            200, json={"order": {"fulfillment_status": "fulfilled", "fulfillments": [{"id": 77}]}}
        )

    with pytest.raises(AlreadyExistsError) as exc:
        await _shopify(handler).push_fulfillment(_Order(), TrackingInfo("V1", "Meest"))
    assert exc.value.existing_ref == "77"
    assert exc.value.payload["platform_order_id"] == "555"


@pytest.mark.asyncio
async def test_fetch_orders_follows_next_link():
    def handler(request: httpx.Request) -> httpx.Response:
        if "page_info" in str(request.url):
            return httpx.Response(200, json={"orders": [{"id": 2, "name": "#2", "total_price": "5.00"}]})
        return httpx.Response(
            200,
            json={"orders": [{"id": 1, "name": "#1", "total_price": "10.00"}]},
            headers={"Link": '<https://demo.myshopify.com/admin/api/2025-01/orders.json?page_info=abc>; rel="next"'},
        )

    orders = await _shopify(handler).fetch_orders(None)
    assert [o.order_name for o in orders] == ["#1", "#2"]


def test_imported_from_payload_maps_address_and_lines():
    item = imported_from_payload(
        {
            "id": 42,
            "name": "#1042",
            "total_price": "19.90",
            "financial_status": "paid",
            "payment_gateway_names": ["Cash on Delivery (COD)"],
            "shipping_address": {"first_name": "A", "last_name": "B", "city": "Patra", "country_code": "GR"},
            "line_items": [{"title": "Soap", "quantity": 2, "price": "9.95"}],
        }
    )
    assert item.order_name == "#1042"
    assert item.platform_order_id == "42"
    assert item.city == "Patra"
    assert item.payment_gateway == "Cash on Delivery (COD)"
    assert item.products == [{"name": "Soap", "quantity": 2, "price": "9.95"}]


class _DeliveredOrder(_Order):
    platform_fulfillment_id = "77"
    total_price = "40.00"
    currency = "EUR"


@pytest.mark.asyncio
async def test_mark_delivered_posts_fulfillment_event():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path, request.read()))
        return httpx.Response(201, json={"fulfillment_event": {"id": 1, "status": "delivered"}})

    await _shopify(handler).mark_delivered(_DeliveredOrder())
    assert [(m, p.rsplit("/admin/api/2025-01", 1)[-1]) for m, p, _ in seen] == [
        ("POST", "/orders/555/fulfillments/77/events.json")
    ]
    assert b'"status":"delivered"' in seen[0][2].replace(b" ", b"")


@pytest.mark.asyncio
async def test_capture_cod_payment_captures_outstanding_amount():
    posted = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(
                200,
                json={"order": {"financial_status": "pending", "total_outstanding": "40.00", "currency": "EUR"}},
            )
        posted.append(request.read().replace(b" ", b""))
        return httpx.Response(201, json={"transaction": {"id": 4242, "kind": "capture", "status": "success"}})

    res = await _shopify(handler).capture_cod_payment(_DeliveredOrder())
    assert res.captured is True
    assert res.financial_status == "paid"
    assert res.transaction_id == "4242"
    assert b'"kind":"capture"' in posted[0]
    assert b'"amount":"40.00"' in posted[0]


@pytest.mark.asyncio
async def test_capture_cod_payment_skips_paid_orders():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "GET"
        return httpx.Response(200, json={"order": {"financial_status": "paid"}})

    res = await _shopify(handler).capture_cod_payment(_DeliveredOrder())
    assert res.captured is False
    assert res.financial_status == "paid"
