"""Catalog/social store backed by PostgreSQL."""
import asyncio
import psycopg2
from psycopg2 import pool, sql
from psycopg2.extras import RealDictCursor
from typing import Optional, List, Dict, Any, Iterable, Tuple
import logging

from readshelf.errors import RemoteFetchError, RemoteWriteError

logger = logging.getLogger(__name__)

# Columns each table accepts; identifiers outside this map are rejected
TABLE_COLUMNS = {
    "books": (
        "id", "title", "author", "cover_url", "status", "source", "rating",
        "ideas_count", "created_at", "updated_at",
    ),
    "book_notes": (
        "id", "book_id", "content", "created_at", "shared_at",
        "likes_count", "comments_count",
    ),
    "comments": ("id", "note_id", "content", "user_name", "created_at"),
    "likes": ("id", "note_id", "actor_id", "created_at"),
}

SCHEMA_STATEMENTS = (
    "CREATE EXTENSION IF NOT EXISTS pgcrypto",
    """
    CREATE TABLE IF NOT EXISTS books (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        title TEXT NOT NULL,
        author TEXT NOT NULL,
        cover_url TEXT,
        status VARCHAR(32) NOT NULL DEFAULT 'To Read',
        source VARCHAR(64) NOT NULL DEFAULT 'Physical Book',
        rating INTEGER NOT NULL DEFAULT 0 CHECK (rating BETWEEN 0 AND 5),
        ideas_count INTEGER NOT NULL DEFAULT 0 CHECK (ideas_count >= 0),
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS book_notes (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        book_id UUID NOT NULL REFERENCES books (id) ON DELETE CASCADE,
        content TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        shared_at TIMESTAMPTZ,
        likes_count INTEGER NOT NULL DEFAULT 0 CHECK (likes_count >= 0),
        comments_count INTEGER NOT NULL DEFAULT 0 CHECK (comments_count >= 0)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS comments (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        note_id UUID NOT NULL REFERENCES book_notes (id) ON DELETE CASCADE,
        content TEXT NOT NULL,
        user_name TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS likes (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        note_id UUID NOT NULL REFERENCES book_notes (id) ON DELETE CASCADE,
        actor_id TEXT NOT NULL DEFAULT 'local',
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        UNIQUE (note_id, actor_id)
    )
    """,
    # Server-maintained counters: a like or comment is a single atomic insert/delete
    """
    CREATE OR REPLACE FUNCTION bump_note_counter() RETURNS trigger AS $$
    DECLARE
        col TEXT := TG_ARGV[0];
    BEGIN
        IF TG_OP = 'INSERT' THEN
            EXECUTE format('UPDATE book_notes SET %I = %I + 1 WHERE id = $1', col, col)
                USING NEW.note_id;
            RETURN NEW;
        ELSE
            EXECUTE format('UPDATE book_notes SET %I = GREATEST(%I - 1, 0) WHERE id = $1', col, col)
                USING OLD.note_id;
            RETURN OLD;
        END IF;
    END;
    $$ LANGUAGE plpgsql
    """,
    "DROP TRIGGER IF EXISTS likes_count_trigger ON likes",
    """
    CREATE TRIGGER likes_count_trigger AFTER INSERT OR DELETE ON likes
        FOR EACH ROW EXECUTE FUNCTION bump_note_counter('likes_count')
    """,
    "DROP TRIGGER IF EXISTS comments_count_trigger ON comments",
    """
    CREATE TRIGGER comments_count_trigger AFTER INSERT OR DELETE ON comments
        FOR EACH ROW EXECUTE FUNCTION bump_note_counter('comments_count')
    """,
    "CREATE INDEX IF NOT EXISTS idx_books_status_updated ON books (status, updated_at DESC)",
    "CREATE INDEX IF NOT EXISTS idx_notes_book_created ON book_notes (book_id, created_at DESC)",
    "CREATE INDEX IF NOT EXISTS idx_notes_shared ON book_notes (shared_at DESC) WHERE shared_at IS NOT NULL",
    "CREATE INDEX IF NOT EXISTS idx_comments_note_created ON comments (note_id, created_at DESC)",
)


def _check_columns(table: str, columns: Iterable[str]) -> None:
    allowed = TABLE_COLUMNS.get(table)
    if allowed is None:
        raise ValueError(f"Unknown table: {table}")
    unknown = [column for column in columns if column not in allowed]
    if unknown:
        raise ValueError(f"Unknown column(s) for {table}: {', '.join(unknown)}")


class Database:
    """PostgreSQL row store with connection pooling."""
    
    def __init__(self, connection_string: str, min_conn: int = 1, max_conn: int = 10):
        """
        Initialize database connection pool.
        
        The pool is shared by the worker threads AsyncDatabase runs calls in.
        
        Args:
            connection_string: PostgreSQL connection string
            min_conn: Minimum connections in pool
            max_conn: Maximum connections in pool
        """
        try:
            self.connection_pool = psycopg2.pool.ThreadedConnectionPool(
                min_conn,
                max_conn,
                connection_string
            )
        except psycopg2.Error as e:
            logger.error(f"Failed to create connection pool: {e}")
            raise RemoteFetchError("Could not connect to the database") from e
        logger.info("Database connection pool created successfully")
    
    def init_schema(self):
        """Create tables, counter triggers and indexes if they don't exist."""
        conn = self.connection_pool.getconn()
        try:
            with conn.cursor() as cur:
                for statement in SCHEMA_STATEMENTS:
                    cur.execute(statement)
                conn.commit()
                logger.info("Database schema initialized successfully")
        except psycopg2.Error as e:
            conn.rollback()
            logger.error(f"Failed to initialize schema: {e}")
            raise RemoteWriteError("Failed to initialize the database") from e
        finally:
            self.connection_pool.putconn(conn)
    
    def _run(self, query, params, error_cls, fetch: str = "all"):
        """Execute one statement in its own transaction."""
        conn = self.connection_pool.getconn()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(query, params)
                if fetch == "all":
                    result = [dict(row) for row in cur.fetchall()]
                elif fetch == "one":
                    row = cur.fetchone()
                    result = dict(row) if row else None
                else:
                    result = cur.rowcount
            conn.commit()
            return result
        except psycopg2.Error as e:
            conn.rollback()
            logger.error(f"Database error: {e}")
            raise error_cls() from e
        finally:
            self.connection_pool.putconn(conn)
    
    def select(
        self,
        table: str,
        columns: Optional[List[str]] = None,
        filters: Optional[Dict[str, Any]] = None,
        not_null: Optional[List[str]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Select rows matching equality filters.
        
        Args:
            table: Table name
            columns: Columns to return (all when omitted)
            filters: Column -> value equality conditions
            not_null: Columns that must be set
            order_by: Sort column
            descending: Sort direction
            limit: Maximum rows
            
        Returns:
            List of row dicts
        """
        filters = filters or {}
        not_null = not_null or []
        _check_columns(table, list(columns or []) + list(filters) + not_null + ([order_by] if order_by else []))
        
        fields = (
            sql.SQL(", ").join(map(sql.Identifier, columns)) if columns else sql.SQL("*")
        )
        query = sql.SQL("SELECT {} FROM {}").format(fields, sql.Identifier(table))
        
        conditions = [
            sql.SQL("{} = %s").format(sql.Identifier(column)) for column in filters
        ] + [
            sql.SQL("{} IS NOT NULL").format(sql.Identifier(column)) for column in not_null
        ]
        if conditions:
            query += sql.SQL(" WHERE ") + sql.SQL(" AND ").join(conditions)
        if order_by:
            query += sql.SQL(" ORDER BY {} {}").format(
                sql.Identifier(order_by), sql.SQL("DESC" if descending else "ASC")
            )
        params = list(filters.values())
        if limit is not None:
            query += sql.SQL(" LIMIT %s")
            params.append(limit)
        
        return self._run(query, params, RemoteFetchError)
    
    def insert(self, table: str, values: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a row and return it with server-assigned fields."""
        _check_columns(table, values)
        query = sql.SQL("INSERT INTO {} ({}) VALUES ({}) RETURNING *").format(
            sql.Identifier(table),
            sql.SQL(", ").join(map(sql.Identifier, values)),
            sql.SQL(", ").join(sql.Placeholder() * len(values)),
        )
        row = self._run(query, list(values.values()), RemoteWriteError, fetch="one")
        logger.info(f"Inserted into {table}: {row['id']}")
        return row
    
    def update(self, table: str, row_id: str, values: Dict[str, Any]) -> Dict[str, Any]:
        """
        Update a row by id and return it.
        
        Raises:
            RemoteWriteError: if the row does not exist or the write fails
        """
        _check_columns(table, values)
        assignments = [sql.SQL("{} = %s").format(sql.Identifier(column)) for column in values]
        if table == "books":
            assignments.append(sql.SQL("updated_at = now()"))
        query = sql.SQL("UPDATE {} SET {} WHERE id = %s RETURNING *").format(
            sql.Identifier(table), sql.SQL(", ").join(assignments)
        )
        row = self._run(query, list(values.values()) + [row_id], RemoteWriteError, fetch="one")
        if row is None:
            raise RemoteWriteError(f"No {table} row with id {row_id}")
        return row
    
    def delete(self, table: str, row_id: str) -> None:
        """
        Delete a row by id.
        
        Raises:
            RemoteWriteError: if nothing was deleted (e.g. already gone)
        """
        _check_columns(table, ())
        query = sql.SQL("DELETE FROM {} WHERE id = %s").format(sql.Identifier(table))
        deleted = self._run(query, [row_id], RemoteWriteError, fetch="count")
        if not deleted:
            raise RemoteWriteError(f"No {table} row with id {row_id}")
        logger.info(f"Deleted from {table}: {row_id}")
    
    def add_note_atomic(self, values: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """
        Insert a note and increment its book's ideas_count in one transaction.
        
        Returns:
            (note row, updated book row)
        """
        _check_columns("book_notes", values)
        conn = self.connection_pool.getconn()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    sql.SQL("INSERT INTO book_notes ({}) VALUES ({}) RETURNING *").format(
                        sql.SQL(", ").join(map(sql.Identifier, values)),
                        sql.SQL(", ").join(sql.Placeholder() * len(values)),
                    ),
                    list(values.values()),
                )
                note = dict(cur.fetchone())
                cur.execute("""
                    UPDATE books SET ideas_count = ideas_count + 1, updated_at = now()
                    WHERE id = %s RETURNING *
                """, (note["book_id"],))
                book = cur.fetchone()
                if book is None:
                    raise RemoteWriteError(f"No books row with id {note['book_id']}")
            conn.commit()
            return note, dict(book)
        except psycopg2.Error as e:
            conn.rollback()
            logger.error(f"Failed to add note: {e}")
            raise RemoteWriteError() from e
        except RemoteWriteError:
            conn.rollback()
            raise
        finally:
            self.connection_pool.putconn(conn)
    
    def get_stats(self) -> Dict[str, Any]:
        """Get database statistics."""
        conn = self.connection_pool.getconn()
        try:
            with conn.cursor() as cur:
                cur.execute("SELECT COUNT(*) FROM books")
                book_count = cur.fetchone()[0]
                
                cur.execute("SELECT COUNT(*) FROM book_notes")
                note_count = cur.fetchone()[0]
                
                cur.execute("SELECT COUNT(*) FROM book_notes WHERE shared_at IS NOT NULL")
                shared_count = cur.fetchone()[0]
                
                cur.execute("SELECT COUNT(*) FROM comments")
                comment_count = cur.fetchone()[0]
                
                return {
                    "total_books": book_count,
                    "total_notes": note_count,
                    "shared_notes": shared_count,
                    "total_comments": comment_count,
                }
        except psycopg2.Error as e:
            logger.error(f"Failed to read stats: {e}")
            raise RemoteFetchError("Failed to load statistics") from e
        finally:
            self.connection_pool.putconn(conn)
    
    def close(self):
        """Close all connections in the pool."""
        if self.connection_pool:
            self.connection_pool.closeall()
            logger.info("Database connection pool closed")
    
    def __enter__(self):
        """Context manager entry."""
        return self
    
    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()


class AsyncDatabase:
    """
    Awaitable facade over Database for the event-loop components.
    
    psycopg2 is blocking, so each call runs in a worker thread; every
    call is still its own atomic unit and results are handed back to the
    loop before any shared state is touched.
    """
    
    def __init__(self, db: Database):
        self.db = db
    
    async def select(self, table: str, **kwargs) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self.db.select, table, **kwargs)
    
    async def insert(self, table: str, values: Dict[str, Any]) -> Dict[str, Any]:
        return await asyncio.to_thread(self.db.insert, table, values)
    
    async def update(self, table: str, row_id: str, values: Dict[str, Any]) -> Dict[str, Any]:
        return await asyncio.to_thread(self.db.update, table, row_id, values)
    
    async def delete(self, table: str, row_id: str) -> None:
        await asyncio.to_thread(self.db.delete, table, row_id)
    
    async def add_note_atomic(self, values: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        return await asyncio.to_thread(self.db.add_note_atomic, values)
