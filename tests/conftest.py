import pytest
import os
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import backoffice.models  # noqa: F401
from backoffice.core.config import settings
from backoffice.core.deps import get_db
from backoffice.core.security import hash_password
from backoffice.db.base import Base
from backoffice.db.tenant_store import TenantStore
from backoffice.main import app
from backoffice.models.tenant import Tenant
from backoffice.models.user import User


@pytest.fixture()
def test_context():
    original_secret = settings.secret_key
    settings.secret_key = "test-secret-key"

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    def override_get_db():
        db = session_local()
        try:
            yield db
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as client:
        yield client, session_local

    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)
    settings.secret_key = original_secret


def seed_tenant(db, *, name: str = "Monita Mart", prefix: str = "MONI", role: str = "owner") -> TenantStore:
    tenant = Tenant(name=name, invoice_prefix=prefix)
    db.add(tenant)
    db.flush()
    user = User(
        tenant_id=tenant.id,
        username=f"{prefix.lower()}-{role}",
        hashed_password=hash_password("password123"),
        role=role,
        is_active=True,
    )
    db.add(user)
    db.commit()
    return TenantStore(db, tenant.id, user_id=user.id)


@pytest.fixture()
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    db = session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def store(db_session):
    return seed_tenant(db_session)


@pytest.fixture()
def seed_store(db_session):
    def _seed(**kwargs) -> TenantStore:
        return seed_tenant(db_session, **kwargs)

    return _seed
