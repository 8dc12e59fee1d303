import os

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("JWT_ACCESS_SECRET", "test-access-secret-0123456789abcdefghij")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret-0123456789abcdefghij")
os.environ.setdefault("REFRESH_TOKEN_HMAC_SECRET", "test-hmac-secret-0123456789abcdefghijkl")
os.environ.setdefault("FRONTEND_URL", "https://frontend.local")
os.environ.setdefault("SESSION_PURGE_INTERVAL_SECONDS", "0")

from collections.abc import Generator  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import StaticPool, create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402

from propcare.core.database import get_db  # noqa: E402
from propcare.main import app  # noqa: E402
from propcare.models import Base, Organization, OrgAdmin, Property, User  # noqa: E402
from propcare.schemas.users import UserType  # noqa: E402
from propcare.tests.factories import bearer, create_property, create_user  # noqa: E402


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine) -> Generator[Session]:
    TestingSessionLocal = sessionmaker(
        bind=engine, autoflush=False, expire_on_commit=False
    )
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db_session) -> Generator[TestClient]:
    # Override FastAPI's get_db to use our testing session
    def _override_get_db():
        try:
            yield db_session
        except Exception:
            db_session.rollback()
            raise

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def organization(db_session) -> Organization:
    org = Organization(name="Acme Property Co", contact_info="ops@acme.com")
    db_session.add(org)
    db_session.commit()
    db_session.refresh(org)
    return org


@pytest.fixture
def owner(db_session, organization) -> User:
    user = create_user(db_session, email="owner@acme.com", user_type=UserType.org_owner)
    db_session.add(OrgAdmin(user_id=user.id, organization_id=organization.id))
    db_session.commit()
    return user


@pytest.fixture
def prop(db_session, organization) -> Property:
    return create_property(db_session, organization)


@pytest.fixture
def owner_headers(owner, organization) -> dict[str, str]:
    return bearer(owner, organization)
