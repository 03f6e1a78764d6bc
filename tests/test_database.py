"""Tests for database initialization and transformation persistence."""

import pytest_asyncio

from specforge.database import (
    PostgresAdapter,
    _sqlite_path_from_url,
    get_transformation,
    list_transformations,
    save_transformation,
)
from specforge.services.event_bus import TransformationEventBus
from specforge.services.transformation import TransformationEngine


@pytest_asyncio.fixture
async def result(community_questionnaire):
    engine = TransformationEngine(bus=TransformationEventBus())
    return await engine.transform(community_questionnaire)


async def test_init_creates_tables(db):
    """init_db creates the transformations table and its indexes."""
    rows = await db.fetch_all("SELECT name, type FROM sqlite_master ORDER BY name")
    names = {row["name"]: row["type"] for row in rows}
    assert names["transformations"] == "table"
    assert names["idx_transformations_hospital"] == "index"
    assert names["idx_transformations_created"] == "index"


async def test_save_and_get(db, result):
    await save_transformation(result)

    loaded = await get_transformation(result.id)
    assert loaded == result

    row = await db.fetch_one(
        "SELECT hospital_id, quality_score, refinement_applied FROM transformations WHERE id = ?",
        (result.id,),
    )
    assert row["hospital_id"] == "hosp-riverside-community-hospital"
    assert row["quality_score"] == result.quality_score
    assert row["refinement_applied"] == 0


async def test_get_missing_returns_none(db):
    assert await get_transformation("transform-0-missing") is None


async def test_list_newest_first(db, result):
    older = result.model_copy(update={"id": "transform-1-older", "created_at": "2026-01-01T00:00:00+00:00"})
    newer = result.model_copy(update={"id": "transform-2-newer", "created_at": "2026-02-01T00:00:00+00:00"})
    other = result.model_copy(update={
        "id": "transform-3-other",
        "created_at": "2026-03-01T00:00:00+00:00",
        "hospital_id": "hosp-elsewhere",
    })
    for item in (older, newer, other):
        await save_transformation(item)

    listed = await list_transformations()
    assert [item.id for item in listed] == ["transform-3-other", "transform-2-newer", "transform-1-older"]

    filtered = await list_transformations(hospital_id="hosp-riverside-community-hospital")
    assert [item.id for item in filtered] == ["transform-2-newer", "transform-1-older"]
    assert filtered[0].hospital_name == "Riverside Community Hospital"

    limited = await list_transformations(limit=1)
    assert [item.id for item in limited] == ["transform-3-other"]


def test_sqlite_path_from_url():
    assert _sqlite_path_from_url("sqlite:///specforge.db") == "specforge.db"
    assert _sqlite_path_from_url("sqlite:////var/data/specforge.db") == "/var/data/specforge.db"
    assert _sqlite_path_from_url("sqlite://") == ""


def test_postgres_placeholder_translation():
    query = "SELECT * FROM transformations WHERE hospital_id = ? LIMIT ?"
    assert PostgresAdapter._translate_query(query) == (
        "SELECT * FROM transformations WHERE hospital_id = $1 LIMIT $2"
    )
    assert PostgresAdapter._translate_query("SELECT $1") == "SELECT $1"
