"""Tests for the SQLite resolution store."""
import pathlib
import sys
from datetime import datetime, timedelta, timezone

import aiosqlite
import pytest

sys.path.insert(0, str(pathlib.Path(__file__).resolve().parents[1] / "smartlink"))

from modules.helperClasses import ResolutionRecord, empty_link_set
from modules.store import ResolutionStore, record_identity


def make_record(**overrides) -> ResolutionRecord:
    links = empty_link_set()
    links["spotify"] = "https://open.spotify.com/track/4uLU6hMCjMI75M1A2tKUQC"
    values = dict(
        id="",
        acrid=None,
        isrc="USRC17607839",
        smart_link_id=None,
        title="Song",
        artist="Artist",
        album=None,
        duration_ms=215000,
        cover_image_url=None,
        platform_links=links,
        raw_ids={"spotify_track_id": "4uLU6hMCjMI75M1A2tKUQC"},
        acrcloud={"acrid": None, "score": 0.9},
        confidence=0.9,
        resolver_path="acrcloud_strong",
        resolver_sources=["acrcloud"],
        needs_manual_review=False,
    )
    values.update(overrides)
    return ResolutionRecord(**values)


@pytest.fixture
async def store(tmp_path):
    store = ResolutionStore(str(tmp_path / "resolutions.db"), cache_ttl_days=30)
    await store.initialize()
    return store


async def _age_rows(store: ResolutionStore, days: int) -> None:
    stamp = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()
    async with aiosqlite.connect(store.db_path) as conn:
        await conn.execute("UPDATE track_resolutions SET updated_at = ?", (stamp,))
        await conn.commit()


def test_record_identity_precedence():
    assert record_identity(make_record(acrid="abc", smart_link_id="sl")) == ("acrid", "abc")
    assert record_identity(make_record(smart_link_id="sl")) == ("isrc", "USRC17607839")
    assert record_identity(make_record(isrc=None, smart_link_id="sl")) == ("smart_link_id", "sl")
    assert record_identity(make_record(isrc=None, spotify_track_id="4uLU6hMCjMI75M1A2tKUQC")) == (
        "spotify_track_id", "4uLU6hMCjMI75M1A2tKUQC"
    )
    assert record_identity(make_record(isrc=None)) is None


@pytest.mark.asyncio
async def test_upsert_and_find(store):
    record_id = await store.upsert(make_record())

    found = await store.find({"isrc": "USRC17607839"})

    assert found is not None
    assert found.id == record_id
    assert found.platform_links["spotify"].endswith("4uLU6hMCjMI75M1A2tKUQC")
    assert found.raw_ids == {"spotify_track_id": "4uLU6hMCjMI75M1A2tKUQC"}
    assert found.resolver_sources == ["acrcloud"]
    assert found.needs_manual_review is False
    assert found.status == "resolved"


@pytest.mark.asyncio
async def test_upsert_overwrites_same_identity(store):
    first_id = await store.upsert(make_record(confidence=0.5, resolver_path="fallback_only"))
    second_id = await store.upsert(make_record(confidence=0.95))

    found = await store.find({"isrc": "USRC17607839"})
    stats = await store.get_stats()

    assert first_id == second_id
    assert found.confidence == 0.95
    assert stats["total"] == 1


@pytest.mark.asyncio
async def test_status_column_follows_confidence(store):
    await store.upsert(make_record(confidence=0.4))

    async with aiosqlite.connect(store.db_path) as conn:
        async with conn.execute("SELECT status FROM track_resolutions") as cursor:
            (status,) = await cursor.fetchone()

    assert status == "needs_review"


@pytest.mark.asyncio
async def test_record_without_identity_not_persisted(store):
    record_id = await store.upsert(make_record(isrc=None))

    assert record_id is None
    assert (await store.get_stats())["total"] == 0


@pytest.mark.asyncio
async def test_find_ignores_expired_rows(store):
    await store.upsert(make_record())
    await _age_rows(store, days=31)

    assert await store.find({"isrc": "USRC17607839"}) is None


@pytest.mark.asyncio
async def test_find_by_smart_link_id(store):
    await store.upsert(make_record(smart_link_id="link-1"))

    found = await store.find({"smart_link_id": "link-1"})

    assert found is not None
    assert found.isrc == "USRC17607839"


@pytest.mark.asyncio
async def test_attach_to_smart_link(store):
    record = make_record()
    await store.upsert(record)

    await store.attach_to_smart_link("link-1", record)
    attachment = await store.get_smart_link_resolution("link-1")

    assert attachment["track_resolution_id"] == record.id
    assert attachment["resolved_isrc"] == "USRC17607839"
    assert attachment["resolver_confidence"] == 0.9
    assert attachment["resolver_sources"] == ["acrcloud"]


@pytest.mark.asyncio
async def test_cleanup_expired_and_stats(store):
    await store.upsert(make_record())
    await store.upsert(make_record(isrc="GBUM71029604", confidence=0.3, resolver_path="fallback_only"))
    await _age_rows(store, days=45)
    await store.upsert(make_record(isrc="USUM71703861"))

    stats = await store.get_stats()
    assert stats["total"] == 3
    assert stats["expired"] == 2
    assert stats["by_status"] == {"resolved": 2, "needs_review": 1}
    assert stats["by_resolver_path"] == {"acrcloud_strong": 2, "fallback_only": 1}

    removed = await store.cleanup_expired()

    assert removed == 2
    assert (await store.get_stats())["total"] == 1


@pytest.mark.asyncio
async def test_find_by_spotify_track_id(store):
    record_id = await store.upsert(make_record(
        acrid="6049f11da7095e8bb8266871d4a70873", spotify_track_id="4uLU6hMCjMI75M1A2tKUQC"
    ))

    found = await store.find({"spotify_track_id": "4uLU6hMCjMI75M1A2tKUQC"})

    assert found is not None
    assert found.id == record_id
    assert found.spotify_track_id == "4uLU6hMCjMI75M1A2tKUQC"
    assert await store.find({"spotify_track_id": "0000000000000000000000"}) is None


@pytest.mark.asyncio
async def test_initialize_adds_spotify_column_to_older_tables(tmp_path):
    db_path = str(tmp_path / "older.db")
    async with aiosqlite.connect(db_path) as conn:
        await conn.execute("""
            CREATE TABLE track_resolutions (
                id TEXT PRIMARY KEY,
                acrid TEXT,
                isrc TEXT,
                smart_link_id TEXT,
                title TEXT,
                artist TEXT,
                album TEXT,
                duration_ms INTEGER,
                cover_image_url TEXT,
                platform_links TEXT NOT NULL DEFAULT '{}',
                raw_ids TEXT NOT NULL DEFAULT '{}',
                acrcloud TEXT,
                confidence REAL NOT NULL DEFAULT 0,
                resolver_path TEXT NOT NULL,
                resolver_sources TEXT NOT NULL DEFAULT '[]',
                needs_manual_review INTEGER NOT NULL DEFAULT 1,
                status TEXT NOT NULL,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL
            )
        """)
        await conn.commit()

    store = ResolutionStore(db_path)
    await store.initialize()
    await store.upsert(make_record(isrc=None, spotify_track_id="4uLU6hMCjMI75M1A2tKUQC"))

    found = await store.find({"spotify_track_id": "4uLU6hMCjMI75M1A2tKUQC"})

    assert found is not None
    assert found.isrc is None
