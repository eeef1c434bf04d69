# tests/conftest.py
import os
import uuid
from types import SimpleNamespace

# Settings are read at import time: configure before importing the app.
os.environ["JWT_SECRET"] = "test-secret"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CRON_SECRET"] = "cron-secret"
for _name in ("SMTP_HOST", "SMTP_USERNAME", "SMTP_PASSWORD"):
    os.environ.pop(_name, None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from jose import jwt  # noqa: E402
from sqlmodel import Session, SQLModel  # noqa: E402

from app.core.config import get_settings  # noqa: E402
from app.database import build_engine, get_session, get_session_factory  # noqa: E402
from app.main import app  # noqa: E402
from app.models.user import User  # noqa: E402
from app.repositories.coupon_repo import CouponRepository  # noqa: E402
from app.repositories.notification_repo import NotificationRepository  # noqa: E402
from app.repositories.order_repo import OrderRepository  # noqa: E402
from app.repositories.user_repo import UserRepository  # noqa: E402
from app.repositories.wallet_repo import WalletRepository  # noqa: E402
from app.services.coupon_service import CouponService  # noqa: E402
from app.services.notification_service import NotificationService  # noqa: E402
from app.services.order_service import OrderService  # noqa: E402
from app.services.wallet_service import WalletService  # noqa: E402

settings = get_settings()


class RecordingSender:
    """Stands in for the SMTP transport."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    def __call__(self, *, to_email, subject, text_body, html_body=None):
        if self.fail:
            raise OSError("smtp down")
        self.sent.append((to_email, subject))


def make_token(user: User) -> str:
    return jwt.encode(
        {"sub": str(user.id), "email": user.email},
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALG,
    )


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user)}"}


@pytest.fixture
def engine(tmp_path):
    eng = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    SQLModel.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    def factory() -> Session:
        return Session(engine)

    return factory


@pytest.fixture
def session(session_factory):
    with session_factory() as s:
        yield s


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def services(sender):
    notifier = NotificationService(NotificationRepository(), UserRepository(), sender=sender)
    coupons = CouponService(CouponRepository())
    wallet = WalletService(WalletRepository(), coupons, notifier)
    orders = OrderService(OrderRepository(), coupons, wallet, notifier)
    return SimpleNamespace(
        notifier=notifier,
        coupons=coupons,
        wallet=wallet,
        orders=orders,
    )


def _make_user(session: Session, role: str, email: str) -> User:
    user = User(id=uuid.uuid4(), email=email, name=email.split("@")[0], role=role)
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def customer(session):
    return _make_user(session, "user", "rina@example.com")


@pytest.fixture
def admin(session):
    return _make_user(session, "admin", "chef@example.com")


@pytest.fixture
def client(engine, session_factory):
    def override_get_session():
        with Session(engine) as s:
            yield s

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth():
    return auth_headers


def order_payload(items=None, **overrides) -> dict:
    payload = {
        "items": items if items is not None else [
            {"name": "Chicken Biryani", "unit_price": 250.0, "quantity": 2}
        ],
        "customer_name": "Rina",
        "phone": "01700000000",
        "address": "12 Lake Road",
        "order_type": "Delivery",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def make_order_payload():
    return order_payload


@pytest.fixture
def failing_sender():
    return RecordingSender(fail=True)
