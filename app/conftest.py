"""
Fixtures compartidos para los tests de caja.

Cada test usa una base SQLite propia (archivo en tmp_path) creada con
build_engine, de modo que las transacciones arrancan con BEGIN IMMEDIATE
igual que en desarrollo local.
"""

import os

# Antes de importar la app: sin create_all contra postgres ni logs DEBUG
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "false"
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from uuid import UUID

from app.main import app
from app.database.database import Base, build_engine, get_db
from app.modules.auth.models import User, UserLocation
from app.modules.auth.utils import create_access_token, create_context_token

LOCATION = "PHARM-1"
OTHER_LOCATION = "PHARM-2"


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'till.db'}", timeout=30)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def operators(db):
    """Operadores con membresía en PHARM-1 (y uno solo en PHARM-2)"""
    people = {
        "cashier": ("caixa@farmacia.local", "Carla", "Caixa", LOCATION),
        "owner": ("dona@farmacia.local", "Dona", "Farmacia", LOCATION),
        "accountant": ("conta@farmacia.local", "Conta", "Bilidade", LOCATION),
        "viewer": ("visita@farmacia.local", "Vera", "Visita", LOCATION),
        "other_cashier": ("caixa2@farmacia.local", "Otto", "Outra", OTHER_LOCATION),
    }
    created = {}
    for key, (email, first_name, last_name, location_id) in people.items():
        user = User(email=email, first_name=first_name, last_name=last_name, is_active=True)
        db.add(user)
        db.flush()
        role = "cashier" if key == "other_cashier" else key
        db.add(UserLocation(user_id=user.id, location_id=location_id, role=role, is_active=True))
        created[key] = user.id
    db.commit()
    return created


def context_headers(user_id: UUID, role: str, location_id: str = LOCATION) -> dict:
    token = create_context_token({"sub": str(user_id), "location_id": location_id, "user_role": role})
    return {"Authorization": f"Bearer {token}"}


def access_headers(user_id: UUID, location_id: str) -> dict:
    token = create_access_token({"sub": str(user_id)})
    return {"Authorization": f"Bearer {token}", "X-Location-ID": location_id}


@pytest.fixture
def cashier_headers(operators):
    return context_headers(operators["cashier"], "cashier")
