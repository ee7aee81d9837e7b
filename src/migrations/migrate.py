"""SQLite schema migrations for the metrics database, with a backup before upgrading."""

from __future__ import annotations

import re
import shutil
import sqlite3
from datetime import datetime
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[2]
DATA_DIR = PROJECT_ROOT / "data"
DB_PATH = DATA_DIR / "app.db"
BACKUPS_DIR = PROJECT_ROOT / "backups"
MIGRATIONS_SQL_DIR = Path(__file__).resolve().parent / "sql"


class MigrationError(RuntimeError):
    """Raised when a migration fails and rollback was triggered."""


class MigrationInProgressError(RuntimeError):
    """Raised when a migration lock already exists."""


def list_migrations() -> list[tuple[int, Path]]:
    """Numbered SQL files ("001_name.sql") sorted by version."""
    out: list[tuple[int, Path]] = []
    for path in MIGRATIONS_SQL_DIR.glob("[0-9][0-9][0-9]_*.sql"):
        match = re.match(r"^(\d{3})_", path.name)
        if match:
            out.append((int(match.group(1)), path))
    out.sort(key=lambda x: x[0])
    return out


def latest_migration_version() -> int:
    migrations = list_migrations()
    return migrations[-1][0] if migrations else 0


def read_schema_version(conn: sqlite3.Connection) -> int:
    # A database without the meta table is at version 0.
    row = conn.execute("SELECT name FROM sqlite_master WHERE type='table' AND name='meta'").fetchone()
    if row is None:
        return 0
    row = conn.execute("SELECT value FROM meta WHERE key = 'schema_version'").fetchone()
    try:
        return int(row[0]) if row else 0
    except (TypeError, ValueError):
        return 0


def set_schema_version(conn: sqlite3.Connection, version: int) -> None:
    conn.execute(
        """
        INSERT INTO meta(key, value)
        VALUES('schema_version', ?)
        ON CONFLICT(key) DO UPDATE SET value=excluded.value
        """,
        (str(version),),
    )


def migrate_to_latest(db_path: Path | None = None, backups_dir: Path | None = None) -> int:
    """
    Apply pending SQL migrations and return the final schema version.

    The database file is created when missing; an existing one is copied to the
    backups directory before the first pending migration runs.

    Raises:
        MigrationInProgressError: Another migration holds the lock file.
        MigrationError: A migration failed; its transaction was rolled back.
    """
    db = Path(db_path) if db_path else DB_PATH
    backups = Path(backups_dir) if backups_dir else BACKUPS_DIR
    db.parent.mkdir(parents=True, exist_ok=True)
    backups.mkdir(parents=True, exist_ok=True)

    lock_path = backups / ".migrate.lock"
    try:
        lock_path.touch(exist_ok=False)
    except FileExistsError as e:
        raise MigrationInProgressError("migration in progress") from e

    db_existed_before = db.exists()
    # Autocommit mode so each migration runs inside the explicit BEGIN/COMMIT below.
    conn = sqlite3.connect(db, isolation_level=None)
    try:
        current = read_schema_version(conn)
        pending = [(v, p) for v, p in list_migrations() if v > current]
        if not pending:
            return current

        if db_existed_before:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            shutil.copy2(db, backups / f"{db.stem}_{timestamp}.db")
        for version, sql_path in pending:
            try:
                conn.executescript("BEGIN;\n" + sql_path.read_text(encoding="utf-8"))
                set_schema_version(conn, version)
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise MigrationError(
                    f"Migration failed at {sql_path.name}. Rolled back. Use backups in: {backups}"
                ) from e
        return pending[-1][0]
    finally:
        conn.close()
        lock_path.unlink(missing_ok=True)
