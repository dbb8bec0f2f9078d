"""
Postgres adapter implementations for the job source and the record store.

Jobs live in a `jobs` table claimed with FOR UPDATE SKIP LOCKED. Dialogues,
videos and templates are JSONB documents, one table per collection, so
partial updates merge with `data || patch` and conditional updates guard
on `data->>field`.
"""

import uuid
import logging
from enum import Enum
from typing import Optional, Dict, Any, List, Sequence

from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from .base import JobSourceAdapter, RecordStore
from ..models import Job
from ..logging_setup import log_exception

logger = logging.getLogger("dialogue_worker")

COLLECTIONS = ("dialogues", "videos", "templates")


def _text(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _open_pool(database_url: str, pool_size: int, timeout: int, application_name: str) -> ConnectionPool:
    return ConnectionPool(
        database_url,
        min_size=1,
        max_size=pool_size,
        kwargs={
            "connect_timeout": timeout,
            "application_name": application_name
        }
    )


class PostgresJobSourceAdapter(JobSourceAdapter):
    """Postgres implementation of job source adapter"""

    def __init__(self, database_url: str, pool_size: int = 5, timeout: int = 10):
        self.database_url = database_url
        self.pool_size = pool_size
        self.timeout = timeout
        self.pool = None

    def connect(self):
        """Initialize connection pool"""
        try:
            self.pool = _open_pool(self.database_url, self.pool_size, self.timeout, "dialogue_worker")
            logger.info("Postgres job source connection pool initialized")
            self._bootstrap_schema()
        except Exception as e:
            log_exception(logger, f"Failed to connect to Postgres job source: {e}")
            raise

    def _bootstrap_schema(self):
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("""
                    CREATE TABLE IF NOT EXISTS jobs (
                        id TEXT PRIMARY KEY,
                        job_type TEXT NOT NULL,
                        entity_id TEXT NOT NULL,
                        payload JSONB NOT NULL DEFAULT '{}'::jsonb,
                        status TEXT NOT NULL DEFAULT 'pending',
                        attempts INTEGER NOT NULL DEFAULT 0,
                        error TEXT,
                        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
                    );
                """)
                cur.execute("CREATE INDEX IF NOT EXISTS jobs_status_created_idx ON jobs (status, created_at);")
                conn.commit()
                logger.info("Postgres job source schema validated")

    def enqueue(self, job_type: str, entity_id: str, payload: Dict[str, Any]) -> str:
        job_id = str(uuid.uuid4())
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "INSERT INTO jobs (id, job_type, entity_id, payload) VALUES (%s, %s, %s, %s)",
                    (job_id, _text(job_type), entity_id, Jsonb(payload))
                )
                conn.commit()
        logger.info(f"Enqueued {_text(job_type)} job {job_id} for {entity_id}")
        return job_id

    def claim_job(self) -> Optional[Job]:
        """Atomically claim the oldest pending job"""
        with self.pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("""
                    WITH j AS (
                        SELECT id
                        FROM jobs
                        WHERE status = 'pending'
                        ORDER BY created_at
                        FOR UPDATE SKIP LOCKED
                        LIMIT 1
                    )
                    UPDATE jobs
                    SET status = 'processing', attempts = COALESCE(attempts, 0) + 1
                    FROM j
                    WHERE jobs.id = j.id
                    RETURNING jobs.id, jobs.job_type, jobs.entity_id, jobs.payload,
                              jobs.created_at, jobs.attempts;
                """)
                result = cur.fetchone()
                conn.commit()
                if result:
                    logger.info(f"Claimed {result['job_type']} job {result['id']} for {result['entity_id']}")
                    return self._row_to_job(result, status='processing')
                return None

    def complete_job(self, job: Job) -> None:
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("UPDATE jobs SET status = 'done', error = NULL WHERE id = %s", (job.id,))
                conn.commit()
                logger.info(f"Job {job.id} completed for {job.entity_id}")

    def fail_job(self, job: Job, error: str, retry: bool = False) -> None:
        status = 'pending' if retry else 'failed'
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("UPDATE jobs SET status = %s, error = %s WHERE id = %s", (status, error, job.id))
                conn.commit()
                logger.error(f"Job {job.id} failed ({'requeued' if retry else 'permanent'}): {error}")

    def get_job_info(self, job_id: str) -> Optional[Job]:
        with self.pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("""
                    SELECT id, job_type, entity_id, payload, status, created_at, attempts, error
                    FROM jobs WHERE id = %s
                """, (job_id,))
                result = cur.fetchone()
                return self._row_to_job(result) if result else None

    def get_pending_jobs(self) -> List[Job]:
        """Get pending jobs for monitoring"""
        with self.pool.connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("""
                    SELECT id, job_type, entity_id, payload, status, created_at, attempts, error
                    FROM jobs
                    WHERE status = 'pending'
                    ORDER BY created_at
                    LIMIT 10
                """)
                return [self._row_to_job(row) for row in cur.fetchall()]

    @staticmethod
    def _row_to_job(row: Dict[str, Any], status: Optional[str] = None) -> Job:
        return Job(
            id=row['id'],
            job_type=row['job_type'],
            entity_id=row['entity_id'],
            payload=row.get('payload') or {},
            status=status or row.get('status', 'pending'),
            created_at=row.get('created_at'),
            attempts=row.get('attempts') or 0,
            error=row.get('error')
        )

    def close(self):
        """Close connection pool"""
        if self.pool:
            self.pool.close()
            logger.info("Postgres job source connection pool closed")


class PostgresRecordStore(RecordStore):
    """JSONB document tables behind the record store interface"""

    def __init__(self, database_url: str, pool_size: int = 5, timeout: int = 10):
        self.database_url = database_url
        self.pool_size = pool_size
        self.timeout = timeout
        self.pool = None

    def connect(self):
        """Initialize connection pool"""
        try:
            self.pool = _open_pool(self.database_url, self.pool_size, self.timeout, "dialogue_worker_records")
            logger.info("Postgres record store connection pool initialized")
            self._bootstrap_schema()
        except Exception as e:
            log_exception(logger, f"Failed to connect to Postgres record store: {e}")
            raise

    def _bootstrap_schema(self):
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                for collection in COLLECTIONS:
                    cur.execute(sql.SQL("""
                        CREATE TABLE IF NOT EXISTS {} (
                            id TEXT PRIMARY KEY,
                            data JSONB NOT NULL,
                            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
                            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
                        );
                    """).format(sql.Identifier(collection)))
                conn.commit()

    @staticmethod
    def _table(collection: str) -> sql.Identifier:
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection: {collection}")
        return sql.Identifier(collection)

    def ping(self) -> bool:
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
                cur.fetchone()
        return True

    def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    sql.SQL("SELECT data FROM {} WHERE id = %s").format(self._table(collection)),
                    (record_id,)
                )
                result = cur.fetchone()
                return result[0] if result else None

    def insert(self, collection: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    sql.SQL("INSERT INTO {} (id, data) VALUES (%s, %s) RETURNING data").format(
                        self._table(collection)
                    ),
                    (fields["id"], Jsonb(fields))
                )
                result = cur.fetchone()
                conn.commit()
                return result[0]

    def update(self, collection: str, record_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    sql.SQL(
                        "UPDATE {} SET data = data || %s, updated_at = now() WHERE id = %s RETURNING data"
                    ).format(self._table(collection)),
                    (Jsonb(fields), record_id)
                )
                result = cur.fetchone()
                conn.commit()
                return result[0] if result else None

    def update_if(self, collection: str, record_id: str, expected: Dict[str, Sequence[Any]],
                  fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        guards = []
        params: List[Any] = [Jsonb(fields), record_id]
        for key, values in expected.items():
            options = []
            present = [_text(v) for v in values if v is not None]
            if present:
                options.append(sql.SQL("(data->>%s) = ANY(%s)"))
                params.extend([key, present])
            if any(v is None for v in values):
                options.append(sql.SQL("(data->>%s) IS NULL"))
                params.append(key)
            guards.append(sql.SQL("(") + sql.SQL(" OR ").join(options or [sql.SQL("FALSE")]) + sql.SQL(")"))

        query = sql.SQL(
            "UPDATE {} SET data = data || %s, updated_at = now() WHERE id = %s{} RETURNING data"
        ).format(
            self._table(collection),
            sql.SQL("").join(sql.SQL(" AND ") + guard for guard in guards)
        )
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                result = cur.fetchone()
                conn.commit()
                return result[0] if result else None

    def list(self, collection: str, filters: Optional[Dict[str, Any]] = None,
             order_by: Optional[str] = None, descending: bool = False,
             page: int = 1, limit: int = 100) -> List[Dict[str, Any]]:
        clauses = [sql.SQL("SELECT data FROM {}").format(self._table(collection))]
        params: List[Any] = []
        if filters:
            clauses.append(sql.SQL("WHERE data @> %s"))
            params.append(Jsonb(filters))
        if order_by:
            clauses.append(sql.SQL("ORDER BY data->>%s " + ("DESC" if descending else "ASC")))
            params.append(order_by)
        clauses.append(sql.SQL("LIMIT %s OFFSET %s"))
        params.extend([limit, max(page - 1, 0) * limit])

        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(sql.SQL(" ").join(clauses), params)
                return [row[0] for row in cur.fetchall()]

    def delete(self, collection: str, record_id: str) -> bool:
        with self.pool.connection() as conn:
            with conn.cursor() as cur:
                cur.execute(sql.SQL("DELETE FROM {} WHERE id = %s").format(self._table(collection)), (record_id,))
                deleted = cur.rowcount > 0
                conn.commit()
                return deleted

    def close(self):
        """Close connection pool"""
        if self.pool:
            self.pool.close()
            logger.info("Postgres record store connection pool closed")
