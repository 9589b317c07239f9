"""Shared fixtures: a migrated temp database, settings pointing at it, and a wired TestClient."""
import pytest
from fastapi.testclient import TestClient

from launchpad.config import Settings
from launchpad.db.connection import run_migrations
from launchpad.main import create_app
from launchpad.models.federation import FederationInstance, FederationPartner
from launchpad.models.submission import Profile
from launchpad.repositories.federation_repository import FederationRepository
from launchpad.repositories.submission_repository import ProfileRepository


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "launchpad.db")
    run_migrations(path)
    return path


@pytest.fixture
def config(db_path):
    return Settings(
        _env_file=None,
        DB_PATH=db_path,
        JWT_SECRET="integration-test-signing-secret-0123456789",
        OPENAI_API_KEY=None,
        LOG_LEVEL="warning",
        METADATA_RETRY_DELAY=0.0,
        AI_RETRY_DELAY=0.0,
    )


@pytest.fixture
def client(config):
    app = create_app(config)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_profile(db_path):
    def _make(user_id: str = "user-1", is_admin: bool = False) -> Profile:
        return ProfileRepository(db_path).create(Profile(id=user_id, username=user_id, is_admin=is_admin))

    return _make


@pytest.fixture
def make_partner(db_path):
    def _make(
        partner_id: str = "partner-1",
        api_key: str = "fed_key_valid123",
        tier: str = "basic",
        status: str = "active",
    ) -> FederationPartner:
        return FederationRepository(db_path).create_partner(
            FederationPartner(id=partner_id, name=f"Partner {partner_id}", api_key=api_key, tier=tier, status=status)
        )

    return _make


@pytest.fixture
def make_instance(db_path):
    def _make(instance_id: str, base_url: str, status: str = "active") -> FederationInstance:
        return FederationRepository(db_path).create_instance(
            FederationInstance(
                id=instance_id,
                name=f"Instance {instance_id}",
                base_url=base_url,
                admin_email=f"ops@{instance_id}.example.org",
                status=status,
            )
        )

    return _make
