import logging
import os
import sqlite3
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from barometer_core.domain.models import DeviceInfo, Reading, Serializable
from barometer_core.domain.ports import PersistenceSink, SyncTarget

logger = logging.getLogger(__name__)

TABLES = (Reading.TABLE_NAME, DeviceInfo.TABLE_NAME)


class SQLiteStore(PersistenceSink):
    """Local store for readings and device snapshots.

    Each record type has its own table holding the JSON payload and a
    ``synced`` flag. Syncing pushes unsynced rows through a SyncTarget and
    then either deletes them or marks them synced.
    """

    CREATE_SQL = """
    CREATE TABLE IF NOT EXISTS "{table}" (
        id            INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp     INTEGER NOT NULL,
        payload_json  TEXT    NOT NULL,
        synced        INTEGER NOT NULL DEFAULT 0
    );
    CREATE INDEX IF NOT EXISTS "idx_{table}_synced" ON "{table}"(synced);
    """

    INSERT_SQL = 'INSERT INTO "{table}" (timestamp, payload_json) VALUES (?, ?);'

    UNSYNCED_SQL = 'SELECT id, payload_json FROM "{table}" WHERE synced = 0 ORDER BY id;'

    MARK_SYNCED_SQL = 'UPDATE "{table}" SET synced = 1 WHERE id = ?;'

    DELETE_SQL = 'DELETE FROM "{table}" WHERE id = ?;'

    EVICT_SQL = """
    DELETE FROM "{table}" WHERE id IN (SELECT id FROM "{table}" ORDER BY id LIMIT ?);
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        sync_target: Optional[SyncTarget] = None,
        max_mb: int | None = None,
        eviction_batch: int = 500,
    ):
        self.conn = conn
        self.sync_target = sync_target
        self.max_mb = max_mb
        self.eviction_batch = eviction_batch

        for table in TABLES:
            self.conn.executescript(self.CREATE_SQL.format(table=table))

        logger.info(
            "Initialized SQLiteStore with max_mb=%s, eviction_batch=%s, sync=%s",
            max_mb,
            eviction_batch,
            sync_target is not None,
        )

    @classmethod
    def open(cls, path: str, **kwargs) -> "SQLiteStore":
        return cls(sqlite3.connect(path), **kwargs)

    @staticmethod
    def _check_table(table_name: str) -> None:
        if table_name not in TABLES:
            raise ValueError(f"Unknown table: {table_name}")

    def db_file_size(self) -> int:
        db_info = self.conn.execute("PRAGMA database_list").fetchone()
        if not db_info:
            return 0

        # index 2 is the file path, empty for in-memory databases
        path = db_info[2]
        if not path or path == ":memory:":
            return 0

        try:
            return os.path.getsize(path)
        except OSError as e:
            logger.warning("Could not get file size for %s: %s", path, e)
            return 0

    def db_used_size(self) -> int:
        """Bytes held by live pages.

        DELETE leaves the file size unchanged and moves pages to the freelist,
        so the size cap is checked against pages in use.
        """
        page_count = self.conn.execute("PRAGMA page_count").fetchone()[0]
        freelist_count = self.conn.execute("PRAGMA freelist_count").fetchone()[0]
        page_size = self.conn.execute("PRAGMA page_size").fetchone()[0]
        return (page_count - freelist_count) * page_size

    def _over_limit(self) -> bool:
        return self.max_mb is not None and self.db_used_size() > self.max_mb * 1024 * 1024

    def _evict_until_size_below_limit(self) -> None:
        """Evict the oldest readings in batches until the used size fits the limit."""
        if self.max_mb is None:
            return

        table = Reading.TABLE_NAME
        eviction_rounds = 0
        while self._over_limit():
            current_count = self.conn.execute(f'SELECT COUNT(*) FROM "{table}"').fetchone()[0]
            if current_count == 0:
                break

            with self.conn:
                self.conn.execute(self.EVICT_SQL.format(table=table), (self.eviction_batch,))
            eviction_rounds += 1

            logger.info(
                "Eviction round %s: removed up to %s readings, remaining: %s",
                eviction_rounds,
                self.eviction_batch,
                max(current_count - self.eviction_batch, 0),
            )

        if eviction_rounds > 0:
            logger.info(
                "Eviction complete: %s rounds, used size: %s bytes",
                eviction_rounds,
                self.db_used_size(),
            )

    def save(
        self, record_or_batch: Union[Serializable, Sequence[Serializable]], table_name: str
    ) -> None:
        """Persist one record or a batch of records in a single transaction."""
        self._check_table(table_name)

        if isinstance(record_or_batch, (list, tuple)):
            records = list(record_or_batch)
        else:
            records = [record_or_batch]
        if not records:
            return

        if self._over_limit():
            self._evict_until_size_below_limit()

        rows = [(getattr(r, "timestamp", 0), r.to_string()) for r in records]
        with self.conn:
            self.conn.executemany(self.INSERT_SQL.format(table=table_name), rows)
        logger.debug("Saved %d record(s) to %s", len(rows), table_name)

    def unsynced(self, table_name: str) -> List[Tuple[int, str]]:
        self._check_table(table_name)
        return list(self.conn.execute(self.UNSYNCED_SQL.format(table=table_name)))

    def start_sync(self, table_name: str, *, remove_after_sync: bool = True) -> int:
        """Push unsynced rows of a table to the sync target.

        Stops at the first failed publish; rows not yet published stay
        unsynced for the next sync.

        Returns:
            int: number of rows synced
        """
        self._check_table(table_name)
        if self.sync_target is None:
            logger.warning("No sync target configured, skipping sync of %s", table_name)
            return 0

        done: List[int] = []
        for row_id, payload in self.unsynced(table_name):
            if not self.sync_target.publish(payload, table_name):
                logger.warning("Sync of %s stopped at row %s", table_name, row_id)
                break
            done.append(row_id)

        sql = self.DELETE_SQL if remove_after_sync else self.MARK_SYNCED_SQL
        with self.conn:
            self.conn.executemany(sql.format(table=table_name), [(i,) for i in done])

        logger.info("Synced %d row(s) of %s", len(done), table_name)
        return len(done)

    def rows(self, table_name: str) -> Iterable[Tuple[int, int, str, int]]:
        self._check_table(table_name)
        return list(
            self.conn.execute(
                f'SELECT id, timestamp, payload_json, synced FROM "{table_name}" ORDER BY id'
            )
        )

    def get_stats(self) -> dict:
        """Get row counts per table and file size."""
        stats: dict = {}
        for table in TABLES:
            total = self.conn.execute(f'SELECT COUNT(*) FROM "{table}"').fetchone()[0]
            synced = self.conn.execute(
                f'SELECT COUNT(*) FROM "{table}" WHERE synced = 1'
            ).fetchone()[0]
            stats[table] = {"total_entries": total, "synced_entries": synced}
        stats["file_size_bytes"] = self.db_file_size()
        stats["used_size_bytes"] = self.db_used_size()
        stats["max_mb"] = self.max_mb

        logger.info("Store stats: %s", stats)
        return stats

    def close(self) -> None:
        if self.sync_target is not None:
            self.sync_target.close()
        self.conn.close()
