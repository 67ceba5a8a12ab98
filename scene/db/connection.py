import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

logger = logging.getLogger(__name__)

_MIGRATIONS_DIR = Path(__file__).parent / "migrations"


def get_connection(db_path: str) -> sqlite3.Connection:
    """Open a SQLite connection with WAL mode and row factory enabled."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path, timeout=10, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    return conn


@contextmanager
def transaction(db_path: str) -> Iterator[sqlite3.Connection]:
    """
    Yield a connection that commits on success, rolls back on error,
    and is always closed. One call == one atomic unit of work.
    """
    conn = get_connection(db_path)
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def run_migrations(db_path: str) -> None:
    """Apply unapplied *.sql files from the migrations directory, in name order."""
    with transaction(db_path) as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS _schema_migrations (
                filename   TEXT PRIMARY KEY,
                applied_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
            """
        )
        applied = {row["filename"] for row in conn.execute("SELECT filename FROM _schema_migrations")}

    pending = [p for p in sorted(_MIGRATIONS_DIR.glob("*.sql")) if p.name not in applied]
    for migration_path in pending:
        logger.info("[db] applying migration | file=%s | db=%s", migration_path.name, db_path)
        with transaction(db_path) as conn:
            conn.executescript(migration_path.read_text())
            conn.execute("INSERT INTO _schema_migrations (filename) VALUES (?)", (migration_path.name,))
    if pending:
        logger.info("[db] migrations applied | count=%d", len(pending))
