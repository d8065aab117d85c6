import itertools
import uuid
import json
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_printstore.db")
os.environ.setdefault("ENV", "dev")

from datetime import timedelta
from decimal import Decimal

import httpx
import pytest
from jose import jwt
from sqlmodel import SQLModel

from printstore.auth.constants import Role
from printstore.auth.dependencies import RequestIdentity
from printstore.common.utils import now
from printstore.config.settings import config_settings
from printstore.db.connection import async_engine, async_session
from printstore.payments.gateway import RazorpayGateway
from printstore.payments.utils import expected_checkout_signature
from printstore.schema.full_schema import (Address, CartItem, DesignRequest, DesignRequestStatus, Product, PromoCode,
                                           RawMaterial, Users)

TEST_GATEWAY_SECRET = "rzp_unit_test_secret"
url_prefix = "/api/v1"


@pytest.fixture(autouse=True)
async def setup_db():
    async with async_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
        await conn.run_sync(SQLModel.metadata.create_all)
    yield
    async with async_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
    await async_engine.dispose()


@pytest.fixture
async def db_session(setup_db):
    async with async_session() as session:
        yield session


class Factory:
    """Seeds rows in short-lived sessions so the session under test starts clean."""

    async def _save(self, obj):
        async with async_session() as session:
            session.add(obj)
            await session.commit()
            await session.refresh(obj)
        return obj

    async def get(self, model, row_id):
        async with async_session() as session:
            return await session.get(model, row_id)

    async def user(self, name="Priya Sharma", with_address=True):
        user = await self._save(Users(name=name, email=f"{uuid.uuid4().hex[:12]}@example.com"))
        if with_address:
            await self.address(user, full_name=name)
        return user

    async def address(self, user, full_name="Priya Sharma", is_default=True, city="Pune", state="Maharashtra"):
        return await self._save(Address(
            user_id=user.id, full_name=full_name, phone="9876543210", line1="12 MG Road", line2="Flat 4B",
            city=city, state=state, postal_code="411001", country="IN", is_default=is_default,
        ))

    async def product(self, name="A3 Poster", price="500", stock=10, availability="available"):
        return await self._save(Product(name=name, price=Decimal(price), stock_qty=stock, availability=availability))

    async def cart_item(self, user, product, quantity):
        return await self._save(CartItem(user_id=user.id, product_id=product.id, quantity=quantity))

    async def promo(self, code="SAVE10", discount_type="percentage", value="10", max_discount=None,
                    min_order=None, max_uses=100, used_count=0, is_active=True, expires_at=None):
        return await self._save(PromoCode(
            code=code, discount_type=discount_type, discount_value=Decimal(value),
            max_discount_amount=Decimal(max_discount) if max_discount is not None else None,
            min_order_amount=Decimal(min_order) if min_order is not None else None,
            max_uses=max_uses, used_count=used_count, is_active=is_active, expires_at=expires_at,
        ))

    async def design_request(self, user, final_amount="2500", price_locked=True,
                             status=DesignRequestStatus.PAYMENT_PENDING.value, quantity=1):
        return await self._save(DesignRequest(
            user_id=user.id, description="Wedding invite, 50 cards", quantity=quantity,
            quoted_amount=Decimal(final_amount) if final_amount is not None else None,
            final_amount=Decimal(final_amount) if final_amount is not None else None,
            price_locked=price_locked, status=status,
        ))

    async def material(self, name="Matte paper A3", quantity="20", min_quantity="10", availability="available"):
        return await self._save(RawMaterial(name=name, unit="sheets", quantity=Decimal(quantity),
                                            min_quantity=Decimal(min_quantity), availability=availability))

    def identity(self, user, *roles):
        return RequestIdentity(user_id=user.id, user_public_id=user.public_id,
                               roles=frozenset(roles or (Role.CUSTOMER,)))

    def token(self, user, *roles):
        claims = {
            "sub": str(user.public_id),
            "roles": [r.value for r in (roles or (Role.CUSTOMER,))],
            "exp": int((now() + timedelta(minutes=15)).timestamp()),
        }
        return jwt.encode(claims, config_settings.JWT_SECRET, algorithm=config_settings.JWT_ALGO)

    def auth_headers(self, user, *roles):
        return {"Authorization": f"Bearer {self.token(user, *roles)}"}


@pytest.fixture
def factory(setup_db):
    return Factory()


@pytest.fixture
def sign():
    def _sign(gateway_order_id: str, gateway_payment_id: str, secret: str = TEST_GATEWAY_SECRET) -> str:
        return expected_checkout_signature(gateway_order_id, gateway_payment_id, secret)
    return _sign


@pytest.fixture
def gateway_calls():
    return []


@pytest.fixture
def gateway_handler(gateway_calls):
    counter = itertools.count(1)

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        gateway_calls.append({"body": body, "headers": dict(request.headers), "url": str(request.url)})
        return httpx.Response(200, json={
            "id": f"order_T{next(counter):08d}",
            "entity": "order",
            "amount": body["amount"],
            "currency": body["currency"],
            "receipt": body["receipt"],
            "status": "created",
        })

    return handler


@pytest.fixture
async def gateway(gateway_handler):
    gw = RazorpayGateway(
        client=httpx.AsyncClient(transport=httpx.MockTransport(gateway_handler)),
        base_url="https://gateway.test/v1",
        key_id="rzp_test_key",
        key_secret=TEST_GATEWAY_SECRET,
        backoff_base=0,
    )
    yield gw
    await gw.aclose()
