from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from motorent import create_app
from motorent.core.config import Config
from motorent.core.extensions import db
from motorent.core.models import CuentaBancaria, seed_demo_data


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    SECRET_KEY = "test-secret"
    LOG_LEVEL = "WARNING"


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        seed_demo_data(db.session)
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def _login_as(client, email: str, password: str):
    def _login():
        return client.post("/auth/login", data={"email": email, "password": password})

    return _login


@pytest.fixture
def login_admin(client):
    return _login_as(client, "admin@motorent.local", "admin123")


@pytest.fixture
def login_operator(client):
    return _login_as(client, "operador@motorent.local", "operador123")


@pytest.fixture
def login_contador(client):
    return _login_as(client, "contador@motorent.local", "contador123")


@pytest.fixture
def login_consulta(client):
    return _login_as(client, "consulta@motorent.local", "consulta123")


@pytest.fixture
def cuenta_id(app):
    with app.app_context():
        return CuentaBancaria.query.first().id
