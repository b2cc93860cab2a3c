import mongomock
import pytest
from fastapi.testclient import TestClient

from config import Settings
from main import create_app
from schemas import Product, User
from stores import ProductStore, UserStore, hash_password


class FakeStorage:
    """Stands in for the Supabase bucket; payload b"fail" simulates a rejected upload."""

    def __init__(self):
        self.uploaded = []

    def upload(self, filename, data, content_type):
        if data == b"fail":
            raise RuntimeError("upload rejected")
        self.uploaded.append((filename, content_type))
        return f"https://cdn.test/products/{filename}"


@pytest.fixture
def settings():
    return Settings(jwt_secret="test-secret", database_name="shop_test")


@pytest.fixture
def db():
    return mongomock.MongoClient()["shop_test"]


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def client(settings, db, storage):
    app = create_app(settings, db=db, storage=storage)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def register(client):
    def _register(email="alice@example.com", name="Alice", password="secret123"):
        response = client.post("/api/auth/register", json={"name": name, "email": email, "password": password})
        assert response.status_code == 201, response.text
        body = response.json()
        return {"token": body["token"], "user": body["user"], "headers": {"Authorization": f"Bearer {body['token']}"}}

    return _register


@pytest.fixture
def admin(client, db):
    UserStore(db).create(
        User(name="Admin", email="admin@example.com", password=hash_password("adminpass"), role="admin")
    )
    response = client.post("/api/auth/login", json={"email": "admin@example.com", "password": "adminpass"})
    assert response.status_code == 200, response.text
    body = response.json()
    return {"token": body["token"], "user": body["user"], "headers": {"Authorization": f"Bearer {body['token']}"}}


@pytest.fixture
def make_product(db):
    products = ProductStore(db)

    def _make(name="Silk Saree", price=10.0, stock=5, category="sarees", **extra):
        return products.create(Product(name=name, price=price, stock=stock, category=category, **extra))

    return _make
