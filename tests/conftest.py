import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

import accounts
import database
import main
import uploads
from mailer import Mailer, get_mailer
from security import create_access_token


class RecordingMailer(Mailer):
    def __init__(self):
        super().__init__(host="smtp.test", port=25, user="shop@example.com")
        self.outbox = []

    def send(self, to, subject, body, sender=None, reply_to=None):
        self.outbox.append({"to": to, "subject": subject, "body": body, "reply_to": reply_to})


@pytest.fixture
def db():
    mongo = mongomock.MongoClient()
    test_db = mongo["storefront_test"]
    database.ensure_indexes(test_db)
    return test_db


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def client(db, mailer, tmp_path, monkeypatch):
    monkeypatch.setattr(uploads, "UPLOAD_DIR", str(tmp_path))
    main.app.dependency_overrides[database.get_db] = lambda: db
    main.app.dependency_overrides[get_mailer] = lambda: mailer
    with TestClient(main.app) as c:
        yield c
    main.app.dependency_overrides.clear()


@pytest.fixture
def admin(db):
    return accounts.create_user(db, "Admin", "admin@example.com", "secret123", role="admin")


@pytest.fixture
def customer(db):
    return accounts.create_user(db, "Ana", "ana@example.com", "secret123")


def auth_header(user):
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
def admin_headers(admin):
    return auth_header(admin)


@pytest.fixture
def customer_headers(customer):
    return auth_header(customer)


@pytest.fixture
def make_product(db):
    def _make(name="Mate", stock=10, price=12.5, category="kitchen"):
        doc = {
            "name": name,
            "description": f"{name} description",
            "images": [],
            "price": price,
            "category": category,
            "available": True,
            "stock": stock,
        }
        return ObjectId(database.create_document(db, "product", doc))
    return _make
