import uuid
from decimal import Decimal
import httpx
import pytest
from sqlalchemy import func, select
from printstore.common.custom_exceptions import (Forbidden, InsufficientStock, NotFound, PaymentPreconditionFailed,
                                                 PromoInvalid, SignatureMismatch, UpstreamFailure, ValidationError)
from printstore.db.connection import async_session
from printstore.payments.gateway import RazorpayGateway
from printstore.payments.services import create_checkout_payment, verify_payment
from printstore.payments.utils import build_receipt, verify_checkout_signature
from printstore.schema.full_schema import (Address, CartItem, OrderItem, Orders, PaymentRecord, PaymentSource,
                                           Product, PromoCode)

SECRET = "rzp_unit_test_secret"


async def _count(model, *where):
    async with async_session() as session:
        stmt = select(func.count()).select_from(model)
        for clause in where:
            stmt = stmt.where(clause)
        res = await session.execute(stmt)
        return res.scalar_one()


async def _record(gateway_order_id):
    async with async_session() as session:
        res = await session.execute(select(PaymentRecord).where(PaymentRecord.gateway_order_id == gateway_order_id))
        return res.scalar_one()


def test_signature_check():
    sig = "b2c1c3c0d35f0a1b0f0c1b4f8d7f0e8e3c9a6d3f1c4b2a0e9d8c7b6a5f4e3d2c"
    assert verify_checkout_signature("order_1", "pay_1", sig, SECRET) is False
    assert verify_checkout_signature("", "pay_1", sig, SECRET) is False


def test_signature_roundtrip(sign):
    sig = sign("order_1", "pay_1")
    assert verify_checkout_signature("order_1", "pay_1", sig, SECRET)
    assert not verify_checkout_signature("order_1", "pay_2", sig, SECRET)
    assert not verify_checkout_signature("order_1", "pay_1", sig, "another-secret")


def test_receipt_namespaces():
    eid = uuid.UUID("0190f3b2-6c1d-7aa0-8e55-3b2f1c0d9e8f")
    assert build_receipt("design_request", eid) == "design_0190f3b26c1d7aa08e55"
    assert build_receipt("cart", eid).startswith("cart_")
    assert build_receipt("single", eid).startswith("item_")


@pytest.mark.asyncio
async def test_open_intent_persists_pending_record(db_session, factory, gateway, gateway_calls):
    user = await factory.user()
    poster = await factory.product(price="500", stock=10)
    await factory.cart_item(user, poster, 2)

    resp = await create_checkout_payment(db_session, gateway, factory.identity(user), PaymentSource.CART)

    assert resp["amount"] == 100000
    assert resp["currency"] == "INR"
    assert resp["key_id"] == "rzp_test_key"
    assert "secret" not in str(resp).lower()

    assert len(gateway_calls) == 1
    sent = gateway_calls[0]
    assert sent["url"] == "https://gateway.test/v1/orders"
    assert sent["body"]["amount"] == 100000
    assert sent["body"]["receipt"].startswith("cart_")
    assert sent["headers"]["authorization"].startswith("Basic ")

    record = await _record(resp["gateway_order_id"])
    assert record.status == "pending"
    assert record.amount_minor == 100000
    assert record.charge_snapshot["total"] == "1000.00"


@pytest.mark.asyncio
async def test_gateway_outage_writes_nothing(db_session, factory):
    attempts = []

    def failing(request):
        attempts.append(request)
        return httpx.Response(503, json={"error": "unavailable"})

    gw = RazorpayGateway(client=httpx.AsyncClient(transport=httpx.MockTransport(failing)),
                         base_url="https://gateway.test/v1", key_secret=SECRET, max_attempts=3, backoff_base=0)
    user = await factory.user()
    poster = await factory.product()
    try:
        with pytest.raises(UpstreamFailure) as exc_info:
            await create_checkout_payment(db_session, gw, factory.identity(user), PaymentSource.SINGLE,
                                          product_id=poster.public_id, quantity=1)
    finally:
        await gw.aclose()

    assert exc_info.value.retryable is True
    assert len(attempts) == 3
    assert await _count(PaymentRecord) == 0


@pytest.mark.asyncio
async def test_gateway_rejection_is_not_retried(db_session, factory):
    attempts = []

    def rejecting(request):
        attempts.append(request)
        return httpx.Response(400, json={"error": {"description": "amount invalid"}})

    gw = RazorpayGateway(client=httpx.AsyncClient(transport=httpx.MockTransport(rejecting)),
                         base_url="https://gateway.test/v1", key_secret=SECRET, backoff_base=0)
    user = await factory.user()
    poster = await factory.product()
    try:
        with pytest.raises(UpstreamFailure) as exc_info:
            await create_checkout_payment(db_session, gw, factory.identity(user), PaymentSource.SINGLE,
                                          product_id=poster.public_id, quantity=1)
    finally:
        await gw.aclose()

    assert exc_info.value.retryable is False
    assert len(attempts) == 1
    assert await _count(PaymentRecord) == 0


@pytest.mark.asyncio
async def test_network_errors_are_retried(db_session, factory):
    attempts = []

    def flaky(request):
        attempts.append(request)
        if len(attempts) < 2:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"id": "order_after_retry"})

    gw = RazorpayGateway(client=httpx.AsyncClient(transport=httpx.MockTransport(flaky)),
                         base_url="https://gateway.test/v1", key_secret=SECRET, backoff_base=0)
    user = await factory.user()
    poster = await factory.product()
    try:
        resp = await create_checkout_payment(db_session, gw, factory.identity(user), PaymentSource.SINGLE,
                                             product_id=poster.public_id, quantity=1)
    finally:
        await gw.aclose()

    assert resp["gateway_order_id"] == "order_after_retry"
    assert len(attempts) == 2


@pytest.mark.asyncio
async def test_cart_payment_materializes_one_order(db_session, factory, gateway, sign):
    user = await factory.user()
    poster = await factory.product(price="500", stock=10)
    await factory.cart_item(user, poster, 2)
    promo = await factory.promo(value="10", max_discount="50")
    identity = factory.identity(user)

    intent = await create_checkout_payment(db_session, gateway, identity, PaymentSource.CART,
                                           promo_code_id=promo.public_id)
    gw_order = intent["gateway_order_id"]

    result = await verify_payment(db_session, identity, None, gw_order, "pay_001", sign(gw_order, "pay_001"),
                                  secret=SECRET)

    assert result["replayed"] is False
    assert result["total_amount"] == "950.00"
    assert result["order_number"].startswith("ORD-")

    async with async_session() as session:
        order = (await session.execute(select(Orders))).scalar_one()
        items = (await session.execute(select(OrderItem))).scalars().all()
        product = await session.get(Product, poster.id)
        promo_row = await session.get(PromoCode, promo.id)

    assert order.status == "confirmed"
    assert order.payment_status == "paid"
    assert order.total_amount == Decimal("950.00")
    assert order.discount_amount == Decimal("50.00")
    assert order.shipping_address["city"] == "Pune"
    assert [(it.product_name, it.quantity, it.unit_price_snapshot) for it in items] == [
        ("A3 Poster", 2, Decimal("500.00"))]
    assert product.stock_qty == 8
    assert product.availability == "low_stock"
    assert promo_row.used_count == 1
    assert await _count(CartItem) == 0
    assert (await _record(gw_order)).status == "success"


@pytest.mark.asyncio
async def test_verify_twice_returns_the_same_order(db_session, factory, gateway, sign):
    user = await factory.user()
    poster = await factory.product(price="500", stock=10)
    identity = factory.identity(user)
    intent = await create_checkout_payment(db_session, gateway, identity, PaymentSource.SINGLE,
                                           product_id=poster.public_id, quantity=1)
    gw_order = intent["gateway_order_id"]
    sig = sign(gw_order, "pay_002")

    first = await verify_payment(db_session, identity, None, gw_order, "pay_002", sig, secret=SECRET)
    second = await verify_payment(db_session, identity, None, gw_order, "pay_002", sig, secret=SECRET)

    assert second["replayed"] is True
    assert second["order_number"] == first["order_number"]
    assert second["order_id"] == first["order_id"]
    assert await _count(Orders) == 1
    assert (await factory.get(Product, poster.id)).stock_qty == 9


@pytest.mark.asyncio
async def test_bad_signature_never_creates_order(db_session, factory, gateway, sign):
    user = await factory.user()
    poster = await factory.product()
    identity = factory.identity(user)
    intent = await create_checkout_payment(db_session, gateway, identity, PaymentSource.SINGLE,
                                           product_id=poster.public_id, quantity=1)
    gw_order = intent["gateway_order_id"]

    with pytest.raises(SignatureMismatch):
        await verify_payment(db_session, identity, None, gw_order, "pay_003",
                             sign(gw_order, "pay_003", secret="wrong"), secret=SECRET)

    assert await _count(Orders) == 0
    assert (await _record(gw_order)).status == "pending"


@pytest.mark.asyncio
async def test_verify_rejects_foreign_and_unknown_payments(db_session, factory, gateway, sign):
    owner = await factory.user()
    other = await factory.user(name="Rahul Verma")
    poster = await factory.product()
    intent = await create_checkout_payment(db_session, gateway, factory.identity(owner), PaymentSource.SINGLE,
                                           product_id=poster.public_id, quantity=1)
    gw_order = intent["gateway_order_id"]

    with pytest.raises(Forbidden):
        await verify_payment(db_session, factory.identity(other), None, gw_order, "pay_004",
                             sign(gw_order, "pay_004"), secret=SECRET)
    with pytest.raises(NotFound):
        await verify_payment(db_session, factory.identity(owner), None, "order_missing", "pay_004",
                             sign("order_missing", "pay_004"), secret=SECRET)
    with pytest.raises(ValidationError):
        await verify_payment(db_session, factory.identity(owner), None, gw_order, "pay_004",
                             sign(gw_order, "pay_004"), secret=SECRET, source_entity_id=owner.public_id)
    assert await _count(Orders) == 0


@pytest.mark.asyncio
async def test_last_unit_cannot_be_sold_twice(db_session, factory, gateway, sign):
    buyer_a = await factory.user()
    buyer_b = await factory.user(name="Rahul Verma")
    poster = await factory.product(price="500", stock=1)

    # both quotes pass the advisory stock check before either payment lands
    intent_a = await create_checkout_payment(db_session, gateway, factory.identity(buyer_a), PaymentSource.SINGLE,
                                             product_id=poster.public_id, quantity=1)
    intent_b = await create_checkout_payment(db_session, gateway, factory.identity(buyer_b), PaymentSource.SINGLE,
                                             product_id=poster.public_id, quantity=1)

    oa, ob = intent_a["gateway_order_id"], intent_b["gateway_order_id"]
    await verify_payment(db_session, factory.identity(buyer_a), None, oa, "pay_a", sign(oa, "pay_a"), secret=SECRET)
    with pytest.raises(InsufficientStock):
        await verify_payment(db_session, factory.identity(buyer_b), None, ob, "pay_b", sign(ob, "pay_b"),
                             secret=SECRET)

    product = await factory.get(Product, poster.id)
    assert product.stock_qty == 0
    assert product.availability == "out_of_stock"
    assert await _count(Orders) == 1

    failed = await _record(ob)
    assert failed.status == "failed"
    assert failed.failure_reason.startswith("INSUFFICIENT_STOCK")

    with pytest.raises(PaymentPreconditionFailed):
        await verify_payment(db_session, factory.identity(buyer_b), None, ob, "pay_b", sign(ob, "pay_b"),
                             secret=SECRET)


@pytest.mark.asyncio
async def test_promo_redemptions_never_exceed_max_uses(db_session, factory, gateway, sign):
    promo = await factory.promo(code="ONCE", value="10", max_uses=1)
    poster = await factory.product(price="500", stock=10)
    buyers = [await factory.user(name=f"Buyer {i}") for i in range(3)]

    intents = []
    for buyer in buyers:
        intents.append(await create_checkout_payment(
            db_session, gateway, factory.identity(buyer), PaymentSource.SINGLE,
            product_id=poster.public_id, quantity=1, promo_code_id=promo.public_id))
    assert all(i["discount"] == "50.00" for i in intents)

    outcomes = []
    for buyer, intent in zip(buyers, intents):
        gw_order = intent["gateway_order_id"]
        try:
            await verify_payment(db_session, factory.identity(buyer), None, gw_order, f"pay_{gw_order}",
                                 sign(gw_order, f"pay_{gw_order}"), secret=SECRET)
            outcomes.append("ok")
        except PromoInvalid:
            outcomes.append("promo_invalid")

    assert outcomes == ["ok", "promo_invalid", "promo_invalid"]
    assert (await factory.get(PromoCode, promo.id)).used_count == 1
    assert await _count(Orders) == 1
    assert (await factory.get(Product, poster.id)).stock_qty == 9


@pytest.mark.asyncio
async def test_missing_address_keeps_payment_pending(db_session, factory, gateway, sign):
    user = await factory.user(with_address=False)
    poster = await factory.product()
    identity = factory.identity(user)
    intent = await create_checkout_payment(db_session, gateway, identity, PaymentSource.SINGLE,
                                           product_id=poster.public_id, quantity=1)
    gw_order = intent["gateway_order_id"]

    with pytest.raises(ValidationError):
        await verify_payment(db_session, identity, None, gw_order, "pay_005", sign(gw_order, "pay_005"),
                             secret=SECRET)

    assert (await _record(gw_order)).status == "pending"
    assert await _count(Orders) == 0

    await factory.address(user)
    result = await verify_payment(db_session, identity, None, gw_order, "pay_005", sign(gw_order, "pay_005"),
                                  secret=SECRET)
    assert result["replayed"] is False


@pytest.mark.asyncio
async def test_gateway_timeouts_are_retried_then_reported(db_session, factory):
    attempts = []

    def slow(request):
        attempts.append(request)
        raise httpx.ReadTimeout("gateway took too long", request=request)

    gw = RazorpayGateway(client=httpx.AsyncClient(transport=httpx.MockTransport(slow)),
                         base_url="https://gateway.test/v1", key_secret=SECRET, max_attempts=2, backoff_base=0)
    user = await factory.user()
    poster = await factory.product()
    try:
        with pytest.raises(UpstreamFailure) as exc_info:
            await create_checkout_payment(db_session, gw, factory.identity(user), PaymentSource.SINGLE,
                                          product_id=poster.public_id, quantity=1)
    finally:
        await gw.aclose()

    assert exc_info.value.retryable is True
    assert len(attempts) == 2
    assert await _count(PaymentRecord) == 0


@pytest.mark.asyncio
async def test_order_keeps_quoted_prices_after_repricing(db_session, factory, gateway, sign):
    user = await factory.user()
    poster = await factory.product(price="500", stock=10)
    identity = factory.identity(user)
    intent = await create_checkout_payment(db_session, gateway, identity, PaymentSource.SINGLE,
                                           product_id=poster.public_id, quantity=2)
    gw_order = intent["gateway_order_id"]

    async with async_session() as session:
        row = await session.get(Product, poster.id)
        row.price = Decimal("650")
        await session.commit()

    result = await verify_payment(db_session, identity, None, gw_order, "pay_006", sign(gw_order, "pay_006"),
                                  secret=SECRET)

    assert result["total_amount"] == "1000.00"
    async with async_session() as session:
        order = (await session.execute(select(Orders))).scalar_one()
        item = (await session.execute(select(OrderItem))).scalar_one()
    assert order.total_amount == Decimal("1000.00")
    assert order.subtotal == Decimal("1000.00")
    assert item.unit_price_snapshot == Decimal("500.00")
    assert item.line_total == Decimal("1000.00")


@pytest.mark.asyncio
async def test_shipping_address_is_frozen_on_the_order(db_session, factory, gateway, sign):
    user = await factory.user()
    poster = await factory.product()
    identity = factory.identity(user)
    intent = await create_checkout_payment(db_session, gateway, identity, PaymentSource.SINGLE,
                                           product_id=poster.public_id, quantity=1)
    gw_order = intent["gateway_order_id"]
    await verify_payment(db_session, identity, None, gw_order, "pay_007", sign(gw_order, "pay_007"), secret=SECRET)

    async with async_session() as session:
        address = (await session.execute(select(Address).where(Address.user_id == user.id))).scalar_one()
        address.line1 = "99 New Street"
        address.city = "Mumbai"
        await session.commit()

    async with async_session() as session:
        order = (await session.execute(select(Orders))).scalar_one()
    assert order.shipping_address["address_line1"] == "12 MG Road"
    assert order.shipping_address["city"] == "Pune"
    assert order.shipping_address["state"] == "Maharashtra"
