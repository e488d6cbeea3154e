import logging
from datetime import date, datetime
from typing import Iterable, List, Optional, Union

import psycopg2
import psycopg2.extras
from psycopg2 import Error
from psycopg2.pool import ThreadedConnectionPool

from config import get_settings
from errors import StorageError
from models import MERGEABLE_FIELDS, DailyEntry

logger = logging.getLogger(__name__)

# Global connection pool
db_pool = None

KPI_COLUMNS = ["restaurant_id", "date", "day_name", "week_number"] + list(MERGEABLE_FIELDS)


def init_connection_pool():
    """Initialize the database connection pool."""
    global db_pool
    if db_pool is None:
        url = get_settings().database_url
        if not url:
            logger.warning("DATABASE_URL not set; persistence disabled.")
            return None
        try:
            # min 1, max 20 connections
            db_pool = ThreadedConnectionPool(1, 20, url)
            logger.info("Database connection pool created.")
        except Error as e:
            logger.error("Error creating connection pool: %s", e)
            db_pool = None
    return db_pool


def get_db_connection():
    """Get a connection from the pool, or None when no database is configured."""
    if db_pool is None:
        init_connection_pool()
    if db_pool is None:
        return None
    try:
        return db_pool.getconn()
    except Error as e:
        logger.error("Error getting connection from pool: %s", e)
        return None


def return_db_connection(connection):
    """Return a connection to the pool."""
    if db_pool and connection:
        db_pool.putconn(connection)


def _require_connection():
    connection = get_db_connection()
    if connection is None:
        raise StorageError("Database is not available")
    return connection


def init_db():
    """Create the tables if they don't exist."""
    connection = get_db_connection()
    if not connection:
        logger.warning("Failed to connect to database during initialization.")
        return False
    try:
        cursor = connection.cursor()
        cursor.execute("""
        CREATE TABLE IF NOT EXISTS kpi_entries (
            restaurant_id VARCHAR(64) NOT NULL,
            date DATE NOT NULL,
            day_name VARCHAR(16),
            week_number INT,
            planned_revenue NUMERIC(12, 2) DEFAULT 0,
            gross_revenue NUMERIC(12, 2) DEFAULT 0,
            net_revenue NUMERIC(12, 2) DEFAULT 0,
            burger_kitchen_revenue NUMERIC(12, 2),
            planned_labour_cost NUMERIC(12, 2) DEFAULT 0,
            labour_cost NUMERIC(12, 2) DEFAULT 0,
            planned_labour_pct NUMERIC(6, 2),
            labour_pct NUMERIC(6, 2) DEFAULT 0,
            worked_hours NUMERIC(8, 2) DEFAULT 0,
            labour_productivity NUMERIC(10, 2) DEFAULT 0,
            food_cost NUMERIC(12, 2) DEFAULT 0,
            food_cost_pct NUMERIC(6, 2) DEFAULT 0,
            delivery_rate_30min NUMERIC(6, 2) DEFAULT 0,
            delivery_rate_20min NUMERIC(6, 2),
            on_time_delivery_mins NUMERIC(8, 2) DEFAULT 0,
            make_time_mins NUMERIC(8, 2) DEFAULT 0,
            drive_time_mins NUMERIC(8, 2) DEFAULT 0,
            order_count INT DEFAULT 0,
            avg_order_value NUMERIC(10, 2) DEFAULT 0,
            orders_per_run NUMERIC(6, 2) DEFAULT 0,
            cash_difference NUMERIC(12, 2),
            manager VARCHAR(255),
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            PRIMARY KEY (restaurant_id, date)
        );
        """)
        cursor.execute("""
        CREATE TABLE IF NOT EXISTS reports (
            id SERIAL PRIMARY KEY,
            restaurant_id VARCHAR(64) NOT NULL,
            filename VARCHAR(255) NOT NULL,
            report_type VARCHAR(32) NOT NULL,
            report_period VARCHAR(7),
            file_data BYTEA NOT NULL,
            file_size INT,
            status VARCHAR(20) DEFAULT 'uploaded',
            uploaded_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );
        """)
        connection.commit()
        logger.info("Database initialized successfully.")
        return True
    except Error as e:
        connection.rollback()
        logger.error("Error initializing database: %s", e)
        return False
    finally:
        return_db_connection(connection)


def upsert_kpi_entries(restaurant_id: str, entries: Iterable[DailyEntry], batch_size: Optional[int] = None) -> int:
    """Insert or update entries keyed by (restaurant_id, date). Returns the row count."""
    rows = [
        tuple(record[c] for c in KPI_COLUMNS)
        for record in (e.to_record(restaurant_id) for e in entries)
    ]
    if not rows:
        return 0
    batch_size = batch_size or get_settings().upsert_batch_size

    updates = ", ".join(f"{c} = EXCLUDED.{c}" for c in KPI_COLUMNS[2:])
    query = (
        f"INSERT INTO kpi_entries ({', '.join(KPI_COLUMNS)}) VALUES %s "
        f"ON CONFLICT (restaurant_id, date) DO UPDATE SET {updates}, updated_at = NOW()"
    )

    connection = _require_connection()
    try:
        cursor = connection.cursor()
        for i in range(0, len(rows), batch_size):
            psycopg2.extras.execute_values(cursor, query, rows[i:i + batch_size], page_size=batch_size)
        connection.commit()
        logger.info("Upserted %d KPI entries for '%s'.", len(rows), restaurant_id)
        return len(rows)
    except Error as e:
        connection.rollback()
        raise StorageError(f"Error upserting KPI entries: {e}") from e
    finally:
        return_db_connection(connection)


def get_kpi_entries(restaurant_id: str, start: Union[str, date], end: Union[str, date]) -> List[DailyEntry]:
    """Entries for one restaurant between start and end (inclusive), sorted by date."""
    connection = _require_connection()
    try:
        cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
        query = f"""
        SELECT {', '.join(KPI_COLUMNS)} FROM kpi_entries
        WHERE restaurant_id = %s AND date BETWEEN %s AND %s
        ORDER BY date
        """
        cursor.execute(query, (restaurant_id, start, end))
        return [DailyEntry.from_record(r) for r in cursor.fetchall()]
    except Error as e:
        raise StorageError(f"Error fetching KPI entries: {e}") from e
    finally:
        return_db_connection(connection)


def save_report_to_db(restaurant_id, filename, report_type, report_period, file_bytes, status="parsed"):
    """Store a raw uploaded report. Returns the new id, or None when storage is unavailable."""
    connection = get_db_connection()
    if not connection:
        return None
    try:
        cursor = connection.cursor()
        cursor.execute(
            """
            INSERT INTO reports (restaurant_id, filename, report_type, report_period,
                                 file_data, file_size, status, uploaded_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING id
            """,
            (restaurant_id, filename, report_type, report_period,
             psycopg2.Binary(file_bytes), len(file_bytes), status, datetime.now()),
        )
        report_id = cursor.fetchone()[0]
        connection.commit()
        logger.info("Report '%s' saved to database (id %s).", filename, report_id)
        return report_id
    except Error as e:
        connection.rollback()
        logger.error("Error saving report '%s' to database: %s", filename, e)
        return None
    finally:
        return_db_connection(connection)
