"""
Resolution Store

SQLite persistence for track resolutions. A stored resolution is the cache of
the resolver pipeline: it is looked up by the strongest identity of a request
(ACRCloud acrid > ISRC > smart link id > Spotify track id) and reused until it
is older than the configured TTL (RESOLUTION_CACHE_TTL_DAYS, 30 days by default).

Tables:
- track_resolutions: one row per resolved recording
- smart_link_resolutions: which resolution a smart link page currently points at
"""

import json
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

import aiosqlite

from .helperClasses import ResolutionRecord

# Identity columns in lookup precedence order
IDENTITY_COLUMNS = ("acrid", "isrc", "smart_link_id", "spotify_track_id")

_RECORD_COLUMNS = (
    "id",
    "acrid",
    "isrc",
    "smart_link_id",
    "spotify_track_id",
    "title",
    "artist",
    "album",
    "duration_ms",
    "cover_image_url",
    "platform_links",
    "raw_ids",
    "acrcloud",
    "confidence",
    "resolver_path",
    "resolver_sources",
    "needs_manual_review",
    "created_at",
    "updated_at",
)


def record_identity(record: ResolutionRecord) -> Optional[Tuple[str, str]]:
    """Strongest identity of a record as (column, value), or None."""
    for column in IDENTITY_COLUMNS:
        value = getattr(record, column)
        if value:
            return column, value
    return None


def _row_to_record(row: aiosqlite.Row) -> ResolutionRecord:
    return ResolutionRecord(
        id=row["id"],
        acrid=row["acrid"],
        isrc=row["isrc"],
        smart_link_id=row["smart_link_id"],
        spotify_track_id=row["spotify_track_id"],
        title=row["title"],
        artist=row["artist"],
        album=row["album"],
        duration_ms=row["duration_ms"],
        cover_image_url=row["cover_image_url"],
        platform_links=json.loads(row["platform_links"] or "{}"),
        raw_ids=json.loads(row["raw_ids"] or "{}"),
        acrcloud=json.loads(row["acrcloud"]) if row["acrcloud"] else None,
        confidence=float(row["confidence"] or 0.0),
        resolver_path=row["resolver_path"],
        resolver_sources=json.loads(row["resolver_sources"] or "[]"),
        needs_manual_review=bool(row["needs_manual_review"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class ResolutionStore:
    """aiosqlite-backed store for resolution records."""

    def __init__(self, db_path: str = "smartlink.db", cache_ttl_days: int = 30):
        self.db_path = db_path
        self.cache_ttl_days = cache_ttl_days

    def _cutoff(self) -> str:
        return (datetime.now(timezone.utc) - timedelta(days=self.cache_ttl_days)).isoformat()

    async def initialize(self) -> None:
        """Create the resolution tables if they don't exist."""
        async with aiosqlite.connect(self.db_path) as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS track_resolutions (
                    id TEXT PRIMARY KEY,
                    acrid TEXT,
                    isrc TEXT,
                    smart_link_id TEXT,
                    spotify_track_id TEXT,
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
            # Databases created before spotify_track_id became an identity
            async with conn.execute("PRAGMA table_info(track_resolutions)") as cursor:
                existing_columns = {row[1] async for row in cursor}
            if "spotify_track_id" not in existing_columns:
                await conn.execute("ALTER TABLE track_resolutions ADD COLUMN spotify_track_id TEXT")
                logging.info("Added spotify_track_id column to track_resolutions")
            for column in IDENTITY_COLUMNS:
                await conn.execute(f"""
                    CREATE INDEX IF NOT EXISTS idx_track_resolutions_{column}
                    ON track_resolutions({column})
                """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_track_resolutions_updated_at
                ON track_resolutions(updated_at)
            """)

            await conn.execute("""
                CREATE TABLE IF NOT EXISTS smart_link_resolutions (
                    smart_link_id TEXT PRIMARY KEY,
                    track_resolution_id TEXT NOT NULL,
                    resolved_isrc TEXT,
                    resolver_confidence REAL,
                    resolver_sources TEXT NOT NULL DEFAULT '[]',
                    updated_at TIMESTAMP NOT NULL
                )
            """)
            await conn.commit()
            logging.info("Resolution tables initialized (%s)", self.db_path)

    async def find(self, identity: Dict[str, Optional[str]]) -> Optional[ResolutionRecord]:
        """
        Return the freshest unexpired record for an identity.

        Args:
            identity: A single-entry mapping such as {"isrc": "USRC17607839"}

        Returns:
            The stored record, or None when missing or older than the TTL
        """
        for column in IDENTITY_COLUMNS:
            value = identity.get(column)
            if not value:
                continue
            async with aiosqlite.connect(self.db_path) as conn:
                conn.row_factory = aiosqlite.Row
                async with conn.execute(f"""
                    SELECT {", ".join(_RECORD_COLUMNS)} FROM track_resolutions
                    WHERE {column} = ? AND updated_at >= ?
                    ORDER BY updated_at DESC LIMIT 1
                """, (value, self._cutoff())) as cursor:
                    row = await cursor.fetchone()
            if row is None:
                logging.debug("No cached resolution for %s=%s", column, value)
                return None
            return _row_to_record(row)
        return None

    async def get(self, record_id: str) -> Optional[ResolutionRecord]:
        async with aiosqlite.connect(self.db_path) as conn:
            conn.row_factory = aiosqlite.Row
            async with conn.execute(f"""
                SELECT {", ".join(_RECORD_COLUMNS)} FROM track_resolutions WHERE id = ?
            """, (record_id,)) as cursor:
                row = await cursor.fetchone()
        return _row_to_record(row) if row is not None else None

    async def upsert(self, record: ResolutionRecord) -> Optional[str]:
        """
        Insert or overwrite the record stored under the record's strongest identity.

        Concurrent writers for the same identity are not serialized; the last
        write wins.

        Returns:
            The row id, or None when the record has no identity to key on
        """
        identity = record_identity(record)
        if identity is None:
            logging.debug("Resolution has no identity, not persisting")
            return None
        column, value = identity
        now = datetime.now(timezone.utc).isoformat()

        values: Dict[str, Any] = {
            "acrid": record.acrid,
            "isrc": record.isrc,
            "smart_link_id": record.smart_link_id,
            "spotify_track_id": record.spotify_track_id,
            "title": record.title,
            "artist": record.artist,
            "album": record.album,
            "duration_ms": record.duration_ms,
            "cover_image_url": record.cover_image_url,
            "platform_links": json.dumps(record.platform_links),
            "raw_ids": json.dumps(record.raw_ids),
            "acrcloud": json.dumps(record.acrcloud) if record.acrcloud is not None else None,
            "confidence": record.confidence,
            "resolver_path": record.resolver_path,
            "resolver_sources": json.dumps(record.resolver_sources),
            "needs_manual_review": 1 if record.needs_manual_review else 0,
            "status": record.status,
            "updated_at": now,
        }

        async with aiosqlite.connect(self.db_path) as conn:
            async with conn.execute(f"""
                SELECT id FROM track_resolutions WHERE {column} = ?
                ORDER BY updated_at DESC LIMIT 1
            """, (value,)) as cursor:
                existing = await cursor.fetchone()

            if existing:
                record_id = existing[0]
                assignments = ", ".join(f"{key} = ?" for key in values)
                await conn.execute(
                    f"UPDATE track_resolutions SET {assignments} WHERE id = ?",
                    (*values.values(), record_id),
                )
                logging.debug("Updated resolution %s (%s=%s)", record_id, column, value)
            else:
                record_id = record.id or str(uuid.uuid4())
                values["id"] = record_id
                values["created_at"] = now
                columns = ", ".join(values)
                placeholders = ", ".join("?" for _ in values)
                await conn.execute(
                    f"INSERT INTO track_resolutions ({columns}) VALUES ({placeholders})",
                    tuple(values.values()),
                )
                logging.debug("Inserted resolution %s (%s=%s)", record_id, column, value)
            await conn.commit()

        record.id = record_id
        return record_id

    async def attach_to_smart_link(self, smart_link_id: str, record: ResolutionRecord) -> None:
        """Point a smart link at a stored resolution."""
        async with aiosqlite.connect(self.db_path) as conn:
            await conn.execute("""
                INSERT OR REPLACE INTO smart_link_resolutions (
                    smart_link_id, track_resolution_id, resolved_isrc,
                    resolver_confidence, resolver_sources, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?)
            """, (
                smart_link_id,
                record.id,
                record.isrc,
                record.confidence,
                json.dumps(record.resolver_sources),
                datetime.now(timezone.utc).isoformat(),
            ))
            await conn.commit()
        logging.info("Attached resolution %s to smart link %s", record.id, smart_link_id)

    async def get_smart_link_resolution(self, smart_link_id: str) -> Optional[Dict[str, Any]]:
        async with aiosqlite.connect(self.db_path) as conn:
            conn.row_factory = aiosqlite.Row
            async with conn.execute("""
                SELECT smart_link_id, track_resolution_id, resolved_isrc,
                       resolver_confidence, resolver_sources, updated_at
                FROM smart_link_resolutions WHERE smart_link_id = ?
            """, (smart_link_id,)) as cursor:
                row = await cursor.fetchone()
        if row is None:
            return None
        attachment = dict(row)
        attachment["resolver_sources"] = json.loads(attachment["resolver_sources"] or "[]")
        return attachment

    async def cleanup_expired(self) -> int:
        """
        Remove resolutions older than the TTL.

        Returns:
            Number of rows removed
        """
        async with aiosqlite.connect(self.db_path) as conn:
            cursor = await conn.execute(
                "DELETE FROM track_resolutions WHERE updated_at < ?",
                (self._cutoff(),),
            )
            deleted_count = cursor.rowcount
            await conn.commit()

        if deleted_count > 0:
            logging.info(f"Cleaned up {deleted_count} expired track resolutions")
        return deleted_count

    async def get_stats(self) -> Dict[str, Any]:
        """Row counts by status and resolver path, plus expired and attached totals."""
        async with aiosqlite.connect(self.db_path) as conn:
            async with conn.execute("SELECT COUNT(*) FROM track_resolutions") as cursor:
                total = (await cursor.fetchone())[0]

            async with conn.execute(
                "SELECT COUNT(*) FROM track_resolutions WHERE updated_at < ?",
                (self._cutoff(),),
            ) as cursor:
                expired = (await cursor.fetchone())[0]

            by_status: Dict[str, int] = {}
            async with conn.execute(
                "SELECT status, COUNT(*) FROM track_resolutions GROUP BY status"
            ) as cursor:
                async for status, count in cursor:
                    by_status[status] = count

            by_path: Dict[str, int] = {}
            async with conn.execute(
                "SELECT resolver_path, COUNT(*) FROM track_resolutions GROUP BY resolver_path"
            ) as cursor:
                async for path, count in cursor:
                    by_path[path] = count

            async with conn.execute("SELECT COUNT(*) FROM smart_link_resolutions") as cursor:
                attached = (await cursor.fetchone())[0]

        return {
            "total": total,
            "expired": expired,
            "by_status": by_status,
            "by_resolver_path": by_path,
            "smart_links": attached,
        }
