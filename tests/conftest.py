import os

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

# In-memory DB, no LLM keys and no Pub/Sub for tests
os.environ["OPENAI_API_KEY"] = ""
os.environ["ANTHROPIC_API_KEY"] = ""
os.environ["LLM_PROVIDER"] = "auto"
os.environ["DATABASE_PATH"] = ":memory:"
os.environ["DATABASE_URL"] = ""
os.environ["GCP_PROJECT_ID"] = ""
os.environ["GCP_PUBSUB_TOPIC"] = ""

from specforge.database import close_db, init_db
from specforge.main import app
from specforge.services.event_bus import TransformationEventBus
from specforge.services.transformation import build_transformation_engine


@pytest.fixture
def community_questionnaire():
    """Community hospital, 100 beds, Epic, HIPAA, no timeline."""
    return {
        "facility_name": "Riverside Community Hospital",
        "facility_type": "community",
        "bed_count": 100,
        "primary_ehr": "Epic",
        "compliance_frameworks": ["HIPAA"],
    }


@pytest.fixture
def constrained_questionnaire(community_questionnaire):
    """Same hospital with a 90-day target, 8 IT staff and a $50k budget."""
    return {
        **community_questionnaire,
        "timeline": "90_days",
        "it_staff_count": 8,
        "implementation_budget": 50000,
    }


@pytest_asyncio.fixture
async def db():
    """Provide a fresh in-memory database for each test."""
    import specforge.database as db_mod

    if db_mod._db is not None:
        await db_mod._db.close()
    db_mod._db = None

    # Override module-level config directly (avoids fragile importlib.reload)
    db_mod.DATABASE_PATH = ":memory:"
    db_mod.DATABASE_URL = ""

    await init_db()
    database = await db_mod.get_db()
    yield database
    await close_db()


@pytest.fixture
def engine():
    """Fresh engine (own cache and event bus) attached to the app."""
    transformation_engine = build_transformation_engine(bus=TransformationEventBus())
    app.state.engine = transformation_engine
    return transformation_engine


@pytest.fixture
def client(db, engine):
    """Provide a synchronous TestClient for HTTP endpoint tests."""
    return TestClient(app)


@pytest_asyncio.fixture
async def async_client(db, engine):
    """Provide an async httpx client for async HTTP tests."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
