"""SQLite memory repository.

Persists semantic memories with aiosqlite. Embeddings are stored as
little-endian float32 BLOBs; tags and context as JSON text; timestamps
as UTC ISO-8601 strings so lexical order matches time order.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite
from loguru import logger
from pydantic import TypeAdapter

from ..embedding import deserialize_embedding, serialize_embedding
from ..models import Memory, MemoryContext

_context_adapter: TypeAdapter = TypeAdapter(MemoryContext)

_COLUMNS = """
    id, owner_user_id, companion_id, document_id, conversation_id,
    kind, content, embedding, importance, tags, context,
    created_at, last_accessed_at
"""


def _to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _from_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class SQLiteMemoryRepository:
    """aiosqlite-backed ``MemoryRepository``.

    Uses WAL mode for concurrent reads. Every method raises RuntimeError
    when called before ``initialize()``.
    """

    def __init__(self, db_path: str = "./memory/inkwell.db"):
        """Initialize SQLite repository.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path
        self._db: aiosqlite.Connection | None = None
        logger.info(f"SQLiteMemoryRepository initialized with db_path: {db_path}")

    async def initialize(self) -> None:
        """Create the database file, tables and indexes if they don't exist."""
        db_dir = Path(self.db_path).parent
        db_dir.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Ensured database directory exists: {db_dir}")

        self._db = await aiosqlite.connect(self.db_path)
        await self._db.execute("PRAGMA journal_mode=WAL")

        await self._create_tables()
        await self._create_indexes()

        await self._db.commit()
        logger.info("SQLite memory database initialized successfully")

    async def _create_tables(self) -> None:
        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS memories (
                id TEXT PRIMARY KEY,
                owner_user_id TEXT NOT NULL,
                companion_id TEXT,
                document_id TEXT,
                conversation_id TEXT,
                kind TEXT NOT NULL,
                content TEXT NOT NULL,
                embedding BLOB,
                importance INTEGER DEFAULT 5,
                tags TEXT,
                context TEXT,
                created_at TEXT NOT NULL,
                last_accessed_at TEXT NOT NULL
            )
        """)

    async def _create_indexes(self) -> None:
        await self._db.execute("""
            CREATE INDEX IF NOT EXISTS idx_memory_owner
            ON memories(owner_user_id, companion_id)
        """)

        await self._db.execute("""
            CREATE INDEX IF NOT EXISTS idx_memory_document
            ON memories(document_id)
        """)

        await self._db.execute("""
            CREATE INDEX IF NOT EXISTS idx_memory_created
            ON memories(created_at DESC)
        """)

        logger.debug("Memory indexes created successfully")

    async def close(self) -> None:
        """Close database connection."""
        if self._db:
            await self._db.close()
            self._db = None
            logger.info("SQLite memory database connection closed")

    def _require_db(self) -> aiosqlite.Connection:
        if not self._db:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self._db

    async def insert_memory(self, memory: Memory) -> None:
        """Insert a memory record.

        Args:
            memory: Memory to persist
        """
        db = self._require_db()

        await db.execute(
            f"INSERT INTO memories ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                memory.id,
                memory.owner_user_id,
                memory.companion_id,
                memory.document_id,
                memory.conversation_id,
                memory.kind.value,
                memory.content,
                serialize_embedding(memory.embedding) if memory.embedding else None,
                memory.importance,
                json.dumps(memory.tags),
                memory.context.model_dump_json() if memory.context else None,
                _to_iso(memory.created_at),
                _to_iso(memory.last_accessed_at),
            ),
        )
        await db.commit()
        logger.debug(f"Memory inserted: {memory.id}")

    async def query_memories(
        self,
        owner_user_id: str,
        companion_id: str | None = None,
        document_id: str | None = None,
        limit: int = 30,
    ) -> list[Memory]:
        """Fetch an owner's memories, newest first, with optional narrowing filters."""
        db = self._require_db()

        clauses = ["owner_user_id = ?"]
        params: list = [owner_user_id]
        if companion_id:
            clauses.append("companion_id = ?")
            params.append(companion_id)
        if document_id:
            clauses.append("document_id = ?")
            params.append(document_id)
        params.append(limit)

        query = f"""
            SELECT {_COLUMNS}
            FROM memories
            WHERE {' AND '.join(clauses)}
            ORDER BY created_at DESC
            LIMIT ?
        """

        async with db.execute(query, params) as cursor:
            rows = await cursor.fetchall()
            return [self._row_to_memory(row) for row in rows]

    async def touch_memories(self, memory_ids: list[str]) -> None:
        if not memory_ids:
            return
        db = self._require_db()

        now = _to_iso(datetime.now(timezone.utc))
        placeholders = ", ".join("?" for _ in memory_ids)
        await db.execute(
            f"UPDATE memories SET last_accessed_at = ? WHERE id IN ({placeholders})",
            (now, *memory_ids),
        )
        await db.commit()

    async def delete_memories(self, memory_ids: list[str]) -> int:
        if not memory_ids:
            return 0
        db = self._require_db()

        placeholders = ", ".join("?" for _ in memory_ids)
        cursor = await db.execute(
            f"DELETE FROM memories WHERE id IN ({placeholders})",
            tuple(memory_ids),
        )
        deleted = cursor.rowcount
        await cursor.close()
        await db.commit()
        logger.debug(f"Deleted {deleted} memories")
        return deleted

    async def count_memories(self, owner_user_id: str) -> int:
        db = self._require_db()

        async with db.execute(
            "SELECT COUNT(*) FROM memories WHERE owner_user_id = ?",
            (owner_user_id,),
        ) as cursor:
            row = await cursor.fetchone()
            return row[0] if row else 0

    @staticmethod
    def _row_to_memory(row: tuple) -> Memory:
        return Memory(
            id=row[0],
            owner_user_id=row[1],
            companion_id=row[2],
            document_id=row[3],
            conversation_id=row[4],
            kind=row[5],
            content=row[6],
            embedding=deserialize_embedding(row[7]),
            importance=row[8],
            tags=json.loads(row[9]) if row[9] else [],
            context=_context_adapter.validate_json(row[10]) if row[10] else None,
            created_at=_from_iso(row[11]),
            last_accessed_at=_from_iso(row[12]),
        )
