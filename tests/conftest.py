import os
import tempfile
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

os.environ["ENVIRONMENT"] = "development"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key-for-storefront-suite"
os.environ["CACHE_ENABLED"] = "false"
os.environ["EMAILS_FROM_EMAIL"] = "orders@storefront.test"

import storefront.db.base  # noqa: F401,E402
from storefront.core.security import create_access_token  # noqa: E402
from storefront.db.base_class import Base  # noqa: E402
from storefront.db.session import get_db  # noqa: E402
from storefront.main import app  # noqa: E402
from storefront.models.product import Product, ProductVariant  # noqa: E402
from storefront.models.user import User, UserRole  # noqa: E402
from storefront.tasks.cache_tasks import invalidate_cache_keys  # noqa: E402
from storefront.tasks.email_tasks import send_order_notification  # noqa: E402


class TaskRecorder:
    """Stands in for ``Task.delay`` and keeps the positional arguments of each call."""

    def __init__(self):
        self.calls = []

    def __call__(self, *args, **kwargs):
        self.calls.append(args)
        return None

    def kinds(self):
        return [call[0] for call in self.calls]


@pytest.fixture()
def db_engine():
    db_file = tempfile.NamedTemporaryFile(suffix=".db", delete=False)
    db_file.close()

    engine = create_engine(
        f"sqlite:///{db_file.name}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()
        os.unlink(db_file.name)


@pytest.fixture()
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture()
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def notifications(monkeypatch) -> TaskRecorder:
    recorder = TaskRecorder()
    monkeypatch.setattr(send_order_notification, "delay", recorder)
    return recorder


@pytest.fixture(autouse=True)
def cache_invalidations(monkeypatch) -> TaskRecorder:
    recorder = TaskRecorder()
    monkeypatch.setattr(invalidate_cache_keys, "delay", recorder)
    return recorder


@pytest.fixture()
def make_user(db_session: Session):
    def _make_user(email: str, role: UserRole = UserRole.CUSTOMER) -> User:
        user = User(email=email, full_name=email.split("@")[0].title(), role=role, is_active=True)
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture()
def make_variant(db_session: Session):
    def _make_variant(slug: str, stock: int, price: float = 1000.0, sale_price=None) -> ProductVariant:
        product = Product(name=f"Product {slug}", slug=slug, base_price=price, is_active=True)
        db_session.add(product)
        db_session.flush()

        variant = ProductVariant(
            product_id=product.id,
            sku=f"SKU-{slug.upper()}",
            size="7",
            metal_type="Gold",
            stock_quantity=stock,
            price=price,
            sale_price=sale_price,
            is_active=True,
        )
        db_session.add(variant)
        db_session.commit()
        db_session.refresh(variant)
        return variant

    return _make_variant


@pytest.fixture()
def customer(make_user) -> User:
    return make_user("shopper@example.com")


@pytest.fixture()
def admin(make_user) -> User:
    return make_user("admin@example.com", role=UserRole.ADMIN)


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture()
def headers_for():
    return auth_headers


@pytest.fixture()
def customer_headers(customer: User) -> dict:
    return auth_headers(customer)


@pytest.fixture()
def admin_headers(admin: User) -> dict:
    return auth_headers(admin)
