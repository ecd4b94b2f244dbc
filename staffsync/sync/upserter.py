"""
Chunked Upsert Module
Writes batches of mapped records in bounded chunks, idempotent on a natural key.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Set, Tuple

from sqlalchemy import func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from staffsync.config_manager import DEFAULT_CHUNK_SIZE
from staffsync.errors import StorageWriteFailed
from staffsync.utils.helpers import chunk_list
from staffsync.utils.logger import get_logger

logger = get_logger(__name__)

_INSERT_BY_DIALECT = {
    'postgresql': postgresql.insert,
    'sqlite': sqlite.insert,
}


@dataclass
class UpsertStats:
    inserted: int = 0
    updated: int = 0
    duplicate_keys: List[Tuple] = field(default_factory=list)

    @property
    def written(self) -> int:
        return self.inserted + self.updated


class ChunkedUpserter:
    """
    Upserts rows with INSERT ... ON CONFLICT DO UPDATE, chunk by chunk.

    Each chunk runs inside a savepoint; the first failing chunk aborts
    the call with StorageWriteFailed.
    """

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.chunk_size = chunk_size

    def _insert_for(self, session: Session):
        dialect = session.get_bind().dialect.name
        try:
            return _INSERT_BY_DIALECT[dialect]
        except KeyError:
            raise StorageWriteFailed(f"Upsert is not supported on dialect '{dialect}'")

    def _existing_keys(self, session: Session, model, key_columns: Sequence[str],
                       chunk: List[Dict]) -> Set[Tuple]:
        """Natural keys of the chunk that are already stored."""
        lead = key_columns[0]
        lead_values = {row[lead] for row in chunk}
        columns = [getattr(model, name) for name in key_columns]

        rows = session.query(*columns).filter(columns[0].in_(lead_values)).all()
        return {tuple(row) for row in rows}

    def upsert(
        self,
        session: Session,
        model,
        rows: List[Dict],
        key_columns: Sequence[str]
    ) -> UpsertStats:
        """
        Upsert rows into the model's table.

        Args:
            session: Active session (committed by the caller)
            model: ORM model class
            rows: Mapped records; every row carries the same columns
            key_columns: Natural key backed by a unique constraint

        Returns:
            UpsertStats with inserted/updated counts

        Raises:
            StorageWriteFailed: On the first chunk that fails
        """
        stats = UpsertStats()
        if not rows:
            return stats

        rows, stats.duplicate_keys = self._dedupe(rows, key_columns)
        insert = self._insert_for(session)
        chunks = chunk_list(rows, self.chunk_size)
        table_name = model.__tablename__

        for index, chunk in enumerate(chunks, start=1):
            logger.debug(f"Upserting {table_name} chunk {index}/{len(chunks)} ({len(chunk)} rows)")
            try:
                with session.begin_nested():
                    existing = self._existing_keys(session, model, key_columns, chunk)

                    stmt = insert(model).values(chunk)
                    update_columns = {
                        name: stmt.excluded[name]
                        for name in chunk[0].keys()
                        if name not in key_columns
                    }
                    if hasattr(model, 'updated_at') and 'updated_at' not in update_columns:
                        update_columns['updated_at'] = func.now()

                    if update_columns:
                        stmt = stmt.on_conflict_do_update(
                            index_elements=list(key_columns),
                            set_=update_columns
                        )
                    else:
                        stmt = stmt.on_conflict_do_nothing(index_elements=list(key_columns))

                    session.execute(stmt)
            except SQLAlchemyError as e:
                logger.error(f"Upsert of {table_name} failed on chunk {index}/{len(chunks)}: {e}")
                raise StorageWriteFailed(
                    f"Failed to write {table_name} chunk {index}/{len(chunks)}: {e}",
                    inserted=stats.inserted,
                    updated=stats.updated,
                    chunk_index=index,
                    duplicate_keys=stats.duplicate_keys
                )

            updated = sum(
                1 for row in chunk
                if tuple(row[name] for name in key_columns) in existing
            )
            stats.updated += updated
            stats.inserted += len(chunk) - updated

        logger.info(
            f"Upserted {stats.written} {table_name} rows "
            f"({stats.inserted} inserted, {stats.updated} updated)"
        )
        return stats

    def _dedupe(self, rows: List[Dict],
                key_columns: Sequence[str]) -> Tuple[List[Dict], List[Tuple]]:
        """
        Keep the last row per natural key; ON CONFLICT cannot touch a row twice.

        Returns the unique rows and the key of every superseded row.
        """
        by_key: Dict[Tuple, Dict] = {}
        duplicate_keys: List[Tuple] = []
        for row in rows:
            key = tuple(row[name] for name in key_columns)
            if key in by_key:
                duplicate_keys.append(key)
            by_key[key] = row
        if duplicate_keys:
            logger.warning(f"Dropped {len(duplicate_keys)} duplicate rows before upsert")
        return list(by_key.values()), duplicate_keys
