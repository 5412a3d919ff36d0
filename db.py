import sqlite3
import aiosqlite
import datetime
import logging
from contextlib import contextmanager, asynccontextmanager
from typing import List, Tuple, Optional, Iterable

from config import YamlConfig, default_db_path
from settings_schema import validate_settings
from exceptions import ProgramNotFound
from algorithms.formatters import parse_target_reps

logger = logging.getLogger(__name__)

WEEKDAYS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)

BOOL_SETTINGS = {"show_weekday"}

PROGRAM_COLUMNS = (
    "id, name, description, is_active, current_day_index, created_at, updated_at"
)
DAY_COLUMNS = "id, program_id, day_index, name, weekday"
EXERCISE_COLUMNS = (
    "id, program_day_id, exercise_name, position, target_sets, target_reps, "
    "target_weight, rest_seconds, rpe, notes"
)
HISTORY_COLUMNS = (
    "id, program_id, program_day_id, day_index, day_name, performed_at, "
    "duration_seconds, created_at"
)
RECORD_COLUMNS = (
    "id, exercise_name, reps, weight, achieved_at, program_history_id, workout_session_id"
)
TEMPLATE_COLUMNS = "id, name, description, last_used, created_at, updated_at"
TEMPLATE_EXERCISE_COLUMNS = (
    "id, template_id, exercise_name, position, target_sets, target_reps, "
    "target_weight, notes"
)
SESSION_COLUMNS = (
    "id, name, template_id, program_id, day_index, program_history_id, "
    "started_at, finished_at, duration_seconds, notes"
)
SESSION_EXERCISE_COLUMNS = "id, session_id, exercise_name, position, notes"
SET_COLUMNS = (
    "id, session_exercise_id, set_number, reps, weight, rpe, completed, completed_at"
)


def _now() -> str:
    return datetime.datetime.now().isoformat(timespec="seconds")


def to_iso(value: datetime.datetime | datetime.date | str) -> str:
    """Return ``value`` as ISO-8601 text, validating string input."""
    if isinstance(value, (datetime.datetime, datetime.date)):
        return value.isoformat()
    try:
        datetime.datetime.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValueError(f"invalid timestamp: {value!r}")
    return value


def _program_from_row(row: Tuple) -> dict:
    return {
        "id": row[0],
        "name": row[1],
        "description": row[2],
        "is_active": bool(row[3]),
        "current_day_index": int(row[4]),
        "created_at": row[5],
        "updated_at": row[6],
    }


def _day_from_row(row: Tuple) -> dict:
    return {
        "id": row[0],
        "program_id": row[1],
        "day_index": int(row[2]),
        "name": row[3],
        "weekday": row[4],
        "exercises": [],
    }


def _exercise_from_row(row: Tuple) -> dict:
    return {
        "id": row[0],
        "program_day_id": row[1],
        "exercise_name": row[2],
        "position": int(row[3]),
        "target_sets": int(row[4]),
        "target_reps": row[5],
        "target_weight": row[6],
        "rest_seconds": int(row[7]),
        "rpe": row[8],
        "notes": row[9],
    }


def _history_from_row(row: Tuple) -> dict:
    return {
        "id": row[0],
        "program_id": row[1],
        "program_day_id": row[2],
        "day_index": row[3],
        "day_name": row[4],
        "performed_at": row[5],
        "duration_seconds": row[6],
        "created_at": row[7],
    }


def _record_from_row(row: Tuple) -> dict:
    return {
        "id": row[0],
        "exercise_name": row[1],
        "reps": int(row[2]),
        "weight": float(row[3]),
        "achieved_at": row[4],
        "program_history_id": row[5],
        "workout_session_id": row[6],
    }


def _template_from_row(row: Tuple) -> dict:
    return {
        "id": row[0],
        "name": row[1],
        "description": row[2],
        "last_used": row[3],
        "created_at": row[4],
        "updated_at": row[5],
        "exercises": [],
    }


def _template_exercise_from_row(row: Tuple) -> dict:
    return {
        "id": row[0],
        "template_id": row[1],
        "exercise_name": row[2],
        "position": int(row[3]),
        "target_sets": row[4],
        "target_reps": row[5],
        "target_weight": row[6],
        "notes": row[7],
    }


def _session_from_row(row: Tuple) -> dict:
    return {
        "id": row[0],
        "name": row[1],
        "template_id": row[2],
        "program_id": row[3],
        "day_index": row[4],
        "program_history_id": row[5],
        "started_at": row[6],
        "finished_at": row[7],
        "duration_seconds": row[8],
        "notes": row[9],
    }


def _session_exercise_from_row(row: Tuple) -> dict:
    return {
        "id": row[0],
        "session_id": row[1],
        "exercise_name": row[2],
        "position": int(row[3]),
        "notes": row[4],
        "sets": [],
    }


def _set_from_row(row: Tuple) -> dict:
    return {
        "id": row[0],
        "session_exercise_id": row[1],
        "set_number": int(row[2]),
        "reps": int(row[3]),
        "weight": float(row[4]),
        "rpe": row[5],
        "completed": bool(row[6]),
        "completed_at": row[7],
    }


def _history_query(
    program_id: int | None, start: str | None, end: str | None
) -> tuple[str, tuple]:
    """Build the history select; a bare ``end`` date includes that whole day."""
    query = f"SELECT {HISTORY_COLUMNS} FROM program_history"
    params: list[str | int] = []
    where: list[str] = []
    if program_id is not None:
        where.append("program_id = ?")
        params.append(program_id)
    if start:
        where.append("performed_at >= ?")
        params.append(start)
    if end:
        if len(end) == 10:
            following = datetime.date.fromisoformat(end) + datetime.timedelta(days=1)
            where.append("performed_at < ?")
            params.append(following.isoformat())
        else:
            where.append("performed_at <= ?")
            params.append(end)
    if where:
        query += " WHERE " + " AND ".join(where)
    query += " ORDER BY performed_at, id;"
    return query, tuple(params)


def _attach_exercises(days: List[dict], exercise_rows: Iterable[Tuple]) -> List[dict]:
    by_id = {day["id"]: day for day in days}
    for row in exercise_rows:
        day = by_id.get(row[1])
        if day is not None:
            day["exercises"].append(_exercise_from_row(row))
    return days


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "programs": (
            """CREATE TABLE programs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    description TEXT,
                    is_active INTEGER NOT NULL DEFAULT 0,
                    current_day_index INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );""",
            [
                "id",
                "name",
                "description",
                "is_active",
                "current_day_index",
                "created_at",
                "updated_at",
            ],
        ),
        "program_days": (
            """CREATE TABLE program_days (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    program_id INTEGER NOT NULL,
                    day_index INTEGER NOT NULL,
                    name TEXT NOT NULL,
                    weekday TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE (program_id, day_index),
                    FOREIGN KEY(program_id) REFERENCES programs(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "program_id",
                "day_index",
                "name",
                "weekday",
                "created_at",
                "updated_at",
            ],
        ),
        "program_day_exercises": (
            """CREATE TABLE program_day_exercises (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    program_day_id INTEGER NOT NULL,
                    exercise_name TEXT NOT NULL,
                    position INTEGER NOT NULL DEFAULT 0,
                    target_sets INTEGER NOT NULL,
                    target_reps TEXT NOT NULL,
                    target_weight REAL,
                    rest_seconds INTEGER NOT NULL DEFAULT 90,
                    rpe REAL,
                    notes TEXT,
                    FOREIGN KEY(program_day_id) REFERENCES program_days(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "program_day_id",
                "exercise_name",
                "position",
                "target_sets",
                "target_reps",
                "target_weight",
                "rest_seconds",
                "rpe",
                "notes",
            ],
        ),
        "program_history": (
            """CREATE TABLE program_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    program_id INTEGER NOT NULL,
                    program_day_id INTEGER NOT NULL,
                    day_index INTEGER NOT NULL,
                    day_name TEXT NOT NULL,
                    performed_at TEXT NOT NULL,
                    duration_seconds INTEGER,
                    created_at TEXT NOT NULL,
                    FOREIGN KEY(program_id) REFERENCES programs(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "program_id",
                "program_day_id",
                "day_index",
                "day_name",
                "performed_at",
                "duration_seconds",
                "created_at",
            ],
        ),
        "personal_records": (
            """CREATE TABLE personal_records (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    exercise_name TEXT NOT NULL,
                    reps INTEGER NOT NULL,
                    weight REAL NOT NULL,
                    achieved_at TEXT NOT NULL,
                    program_history_id INTEGER,
                    workout_session_id INTEGER,
                    FOREIGN KEY(program_history_id) REFERENCES program_history(id) ON DELETE SET NULL,
                    FOREIGN KEY(workout_session_id) REFERENCES workout_sessions(id) ON DELETE SET NULL
                );""",
            [
                "id",
                "exercise_name",
                "reps",
                "weight",
                "achieved_at",
                "program_history_id",
                "workout_session_id",
            ],
        ),
        "templates": (
            """CREATE TABLE templates (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    description TEXT,
                    last_used TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );""",
            ["id", "name", "description", "last_used", "created_at", "updated_at"],
        ),
        "template_exercises": (
            """CREATE TABLE template_exercises (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    template_id INTEGER NOT NULL,
                    exercise_name TEXT NOT NULL,
                    position INTEGER NOT NULL DEFAULT 0,
                    target_sets INTEGER,
                    target_reps INTEGER,
                    target_weight REAL,
                    notes TEXT,
                    FOREIGN KEY(template_id) REFERENCES templates(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "template_id",
                "exercise_name",
                "position",
                "target_sets",
                "target_reps",
                "target_weight",
                "notes",
            ],
        ),
        "workout_sessions": (
            """CREATE TABLE workout_sessions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    template_id INTEGER,
                    program_id INTEGER,
                    day_index INTEGER,
                    program_history_id INTEGER,
                    started_at TEXT NOT NULL,
                    finished_at TEXT,
                    duration_seconds INTEGER,
                    notes TEXT,
                    FOREIGN KEY(template_id) REFERENCES templates(id) ON DELETE SET NULL,
                    FOREIGN KEY(program_id) REFERENCES programs(id) ON DELETE SET NULL,
                    FOREIGN KEY(program_history_id) REFERENCES program_history(id) ON DELETE SET NULL
                );""",
            [
                "id",
                "name",
                "template_id",
                "program_id",
                "day_index",
                "program_history_id",
                "started_at",
                "finished_at",
                "duration_seconds",
                "notes",
            ],
        ),
        "session_exercises": (
            """CREATE TABLE session_exercises (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_id INTEGER NOT NULL,
                    exercise_name TEXT NOT NULL,
                    position INTEGER NOT NULL DEFAULT 0,
                    notes TEXT,
                    FOREIGN KEY(session_id) REFERENCES workout_sessions(id) ON DELETE CASCADE
                );""",
            ["id", "session_id", "exercise_name", "position", "notes"],
        ),
        "session_sets": (
            """CREATE TABLE session_sets (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_exercise_id INTEGER NOT NULL,
                    set_number INTEGER NOT NULL,
                    reps INTEGER NOT NULL,
                    weight REAL NOT NULL,
                    rpe REAL,
                    completed INTEGER NOT NULL DEFAULT 0,
                    completed_at TEXT,
                    FOREIGN KEY(session_exercise_id) REFERENCES session_exercises(id) ON DELETE CASCADE
                );""",
            [
                "id",
                "session_exercise_id",
                "set_number",
                "reps",
                "weight",
                "rpe",
                "completed",
                "completed_at",
            ],
        ),
        "settings": (
            """CREATE TABLE settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );""",
            ["key", "value"],
        ),
    }

    _INDEXES = (
        "CREATE INDEX IF NOT EXISTS idx_program_days_program ON program_days(program_id, day_index);",
        "CREATE INDEX IF NOT EXISTS idx_day_exercises_day ON program_day_exercises(program_day_id, position);",
        "CREATE INDEX IF NOT EXISTS idx_program_history_program ON program_history(program_id, performed_at);",
        "CREATE INDEX IF NOT EXISTS idx_program_history_performed ON program_history(performed_at);",
        "CREATE INDEX IF NOT EXISTS idx_personal_records_exercise ON personal_records(exercise_name, reps);",
        "CREATE INDEX IF NOT EXISTS idx_template_exercises_template ON template_exercises(template_id, position);",
        "CREATE INDEX IF NOT EXISTS idx_workout_sessions_started ON workout_sessions(started_at);",
        "CREATE INDEX IF NOT EXISTS idx_session_exercises_session ON session_exercises(session_id, position);",
        "CREATE INDEX IF NOT EXISTS idx_session_sets_exercise ON session_sets(session_exercise_id, set_number);",
    )

    def __init__(self, db_path: str | None = None) -> None:
        self._db_path = db_path or default_db_path()
        self._ensure_schema()
        self._ensure_indexes()
        self._init_settings()

    @property
    def db_path(self) -> str:
        return self._db_path

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path)
        connection.execute("PRAGMA foreign_keys=on;")
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    @contextmanager
    def _transaction(self):
        """Yield a connection inside ``BEGIN IMMEDIATE``; roll back on error."""
        connection = sqlite3.connect(self._db_path, isolation_level=None)
        try:
            connection.execute("PRAGMA foreign_keys=on;")
            connection.execute("BEGIN IMMEDIATE;")
            try:
                yield connection
            except BaseException:
                connection.execute("ROLLBACK;")
                raise
            connection.execute("COMMIT;")
        finally:
            connection.close()

    def transaction(self):
        """Public handle on :meth:`_transaction` for multi-table writes."""
        return self._transaction()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute("PRAGMA foreign_keys=off;")
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)
            cursor.execute("PRAGMA foreign_keys=on;")

    def _ensure_indexes(self) -> None:
        with self._connection() as conn:
            for sql in self._INDEXES:
                conn.execute(sql)

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        logger.info("migrating table %s (%s -> %s)", table, existing_cols, columns)
        conn.execute(f"DROP TABLE IF EXISTS {table}_old;")
        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)

        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            missing = [c for c in columns if c not in existing_cols]
            if missing:
                def default_val(col: str) -> str:
                    if col in ("is_active", "current_day_index", "position", "completed"):
                        return "0"
                    if col == "rest_seconds":
                        return "90"
                    if col == "target_sets":
                        return "1"
                    if col == "target_reps":
                        return "'10'"
                    if col in ("created_at", "updated_at"):
                        return "datetime('now', 'localtime')"
                    if col in ("day_name", "name"):
                        return "''"
                    if col == "day_index":
                        return "0"
                    return "NULL"

                defaults = ", ".join(default_val(c) for c in missing)
                conn.execute(
                    f"INSERT INTO {table} ({cols}, {', '.join(missing)}) SELECT {cols}, {defaults} FROM {table}_old;"
                )
            else:
                conn.execute(
                    f"INSERT INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
                )
        conn.execute(f"DROP TABLE {table}_old;")

    def _init_settings(self) -> None:
        defaults = {
            "weight_unit": "kg",
            "time_format": "24h",
            "timezone": "UTC",
            "log_level": "INFO",
            "week_start": "monday",
            "show_weekday": "1",
        }
        with self._connection() as conn:
            for key, value in defaults.items():
                conn.execute(
                    "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?);",
                    (key, value),
                )

    def vacuum(self) -> None:
        """Run SQLite VACUUM to reduce database size."""
        with self._connection() as conn:
            conn.execute("VACUUM;")


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.lastrowid

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()

    def _rows(
        self, conn: Optional[sqlite3.Connection], query: str, params: Tuple = ()
    ) -> List[Tuple]:
        """Fetch through ``conn`` when inside a transaction."""
        if conn is None:
            return BaseRepository.fetch_all(self, query, params)
        return conn.execute(query, params).fetchall()

    def _run(
        self, conn: Optional[sqlite3.Connection], query: str, params: Tuple = ()
    ) -> int:
        """Write through ``conn`` when inside a transaction."""
        if conn is None:
            return self.execute(query, params)
        return conn.execute(query, params).lastrowid

    def _load_program(
        self, program_id: int, conn: Optional[sqlite3.Connection] = None
    ) -> dict:
        rows = self._rows(
            conn,
            f"SELECT {PROGRAM_COLUMNS} FROM programs WHERE id = ?;",
            (program_id,),
        )
        if not rows:
            raise ProgramNotFound(program_id)
        return _program_from_row(rows[0])

    def _store_pointer(
        self,
        program_id: int,
        index: int,
        conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        if index < 0:
            raise ValueError("index must be non-negative")
        self._run(
            conn,
            "UPDATE programs SET current_day_index = ?, updated_at = ? WHERE id = ?;",
            (index, _now(), program_id),
        )


class AsyncDatabase(Database):
    """Provides asynchronous connection management."""

    @asynccontextmanager
    async def _async_connection(self):
        conn = await aiosqlite.connect(self._db_path)
        try:
            await conn.execute("PRAGMA foreign_keys=on;")
            yield conn
            await conn.commit()
        finally:
            await conn.close()

    @asynccontextmanager
    async def _async_transaction(self):
        conn = await aiosqlite.connect(self._db_path, isolation_level=None)
        try:
            await conn.execute("PRAGMA foreign_keys=on;")
            await conn.execute("BEGIN IMMEDIATE;")
            try:
                yield conn
            except BaseException:
                await conn.execute("ROLLBACK;")
                raise
            await conn.execute("COMMIT;")
        finally:
            await conn.close()

    def async_transaction(self):
        return self._async_transaction()


class AsyncBaseRepository(AsyncDatabase):
    """Asynchronous variant of BaseRepository using aiosqlite."""

    async def execute(self, query: str, params: Tuple = ()) -> int:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            await conn.commit()
            return cursor.lastrowid

    async def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        async with self._async_connection() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            return list(rows)

    async def _rows(
        self, conn: Optional[aiosqlite.Connection], query: str, params: Tuple = ()
    ) -> List[Tuple]:
        if conn is None:
            return await AsyncBaseRepository.fetch_all(self, query, params)
        cursor = await conn.execute(query, params)
        return list(await cursor.fetchall())

    async def _run(
        self, conn: Optional[aiosqlite.Connection], query: str, params: Tuple = ()
    ) -> int:
        if conn is None:
            return await self.execute(query, params)
        cursor = await conn.execute(query, params)
        return cursor.lastrowid


class ProgramRepository(BaseRepository):
    """Repository for program table operations."""

    def create(self, name: str, description: str | None = None) -> int:
        if not name or not name.strip():
            raise ValueError("name required")
        now = _now()
        return self.execute(
            "INSERT INTO programs (name, description, is_active, current_day_index, created_at, updated_at) "
            "VALUES (?, ?, 0, 0, ?, ?);",
            (name.strip(), description, now, now),
        )

    def fetch_all(self) -> list[dict]:
        rows = super().fetch_all(
            "SELECT p.id, p.name, p.description, p.is_active, p.current_day_index, "
            "p.created_at, p.updated_at, COUNT(d.id) "
            "FROM programs p LEFT JOIN program_days d ON d.program_id = p.id "
            "GROUP BY p.id ORDER BY p.created_at DESC, p.id DESC;"
        )
        result = []
        for row in rows:
            program = _program_from_row(row)
            program["day_count"] = int(row[7])
            result.append(program)
        return result

    def get_program(
        self, program_id: int, conn: Optional[sqlite3.Connection] = None
    ) -> dict:
        return self._load_program(program_id, conn)

    def fetch_detail(self, program_id: int) -> dict:
        """Return the program including its ordered days and exercises."""
        program = self.get_program(program_id)
        program["days"] = ProgramDayRepository(self._db_path).list_days(program_id)
        return program

    def update(
        self,
        program_id: int,
        name: str | None = None,
        description: str | None = None,
    ) -> None:
        self.get_program(program_id)
        if name is not None:
            if not name.strip():
                raise ValueError("name required")
            self.execute(
                "UPDATE programs SET name = ?, updated_at = ? WHERE id = ?;",
                (name.strip(), _now(), program_id),
            )
        if description is not None:
            self.execute(
                "UPDATE programs SET description = ?, updated_at = ? WHERE id = ?;",
                (description or None, _now(), program_id),
            )

    def delete(self, program_id: int) -> None:
        self.get_program(program_id)
        self.execute("DELETE FROM programs WHERE id = ?;", (program_id,))

    def set_active(self, program_id: int) -> None:
        """Flag ``program_id`` active and clear the flag on every other program."""
        with self._transaction() as conn:
            self.get_program(program_id, conn)
            conn.execute(
                "UPDATE programs SET is_active = 0, updated_at = ? WHERE is_active = 1 AND id != ?;",
                (_now(), program_id),
            )
            conn.execute(
                "UPDATE programs SET is_active = 1, updated_at = ? WHERE id = ?;",
                (_now(), program_id),
            )

    def deactivate(self, program_id: int) -> None:
        self.get_program(program_id)
        self.execute(
            "UPDATE programs SET is_active = 0, updated_at = ? WHERE id = ?;",
            (_now(), program_id),
        )

    def fetch_active(self) -> dict | None:
        rows = super().fetch_all(
            f"SELECT {PROGRAM_COLUMNS} FROM programs WHERE is_active = 1 "
            "ORDER BY updated_at DESC, id DESC;"
        )
        if not rows:
            return None
        if len(rows) > 1:
            logger.warning(
                "%d programs flagged active, using program %s", len(rows), rows[0][0]
            )
        return _program_from_row(rows[0])

    def update_current_day_index(
        self,
        program_id: int,
        index: int,
        conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        self._store_pointer(program_id, index, conn)


class ProgramDayRepository(BaseRepository):
    """Repository for the ordered days of a program."""

    @staticmethod
    def _check_weekday(weekday: str | None) -> str | None:
        if weekday is None or weekday == "":
            return None
        value = weekday.strip().lower()
        if value not in WEEKDAYS:
            raise ValueError(f"invalid weekday: {weekday}")
        return value

    def add(self, program_id: int, name: str, weekday: str | None = None) -> int:
        if not name or not name.strip():
            raise ValueError("name required")
        weekday = self._check_weekday(weekday)
        now = _now()
        with self._transaction() as conn:
            self._load_program(program_id, conn)
            count = conn.execute(
                "SELECT COUNT(*) FROM program_days WHERE program_id = ?;",
                (program_id,),
            ).fetchone()[0]
            cur = conn.execute(
                "INSERT INTO program_days (program_id, day_index, name, weekday, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?);",
                (program_id, count, name.strip(), weekday, now, now),
            )
            return cur.lastrowid

    def list_days(
        self,
        program_id: int,
        conn: Optional[sqlite3.Connection] = None,
        with_exercises: bool = True,
    ) -> list[dict]:
        rows = self._rows(
            conn,
            f"SELECT {DAY_COLUMNS} FROM program_days WHERE program_id = ? ORDER BY day_index;",
            (program_id,),
        )
        days = [_day_from_row(r) for r in rows]
        if not with_exercises or not days:
            return days
        exercise_rows = self._rows(
            conn,
            f"SELECT {EXERCISE_COLUMNS} FROM program_day_exercises "
            "WHERE program_day_id IN (SELECT id FROM program_days WHERE program_id = ?) "
            "ORDER BY position, id;",
            (program_id,),
        )
        return _attach_exercises(days, exercise_rows)

    def count(self, program_id: int) -> int:
        rows = self.fetch_all(
            "SELECT COUNT(*) FROM program_days WHERE program_id = ?;", (program_id,)
        )
        return int(rows[0][0])

    def fetch_detail(self, day_id: int) -> dict:
        rows = self.fetch_all(
            f"SELECT {DAY_COLUMNS} FROM program_days WHERE id = ?;", (day_id,)
        )
        if not rows:
            raise ValueError("day not found")
        day = _day_from_row(rows[0])
        exercise_rows = self.fetch_all(
            f"SELECT {EXERCISE_COLUMNS} FROM program_day_exercises "
            "WHERE program_day_id = ? ORDER BY position, id;",
            (day_id,),
        )
        return _attach_exercises([day], exercise_rows)[0]

    def update(
        self, day_id: int, name: str | None = None, weekday: str | None = None
    ) -> None:
        """Rename a day or change its weekday; an empty weekday clears it."""
        self.fetch_detail(day_id)
        if name is not None:
            if not name.strip():
                raise ValueError("name required")
            self.execute(
                "UPDATE program_days SET name = ?, updated_at = ? WHERE id = ?;",
                (name.strip(), _now(), day_id),
            )
        if weekday is not None:
            self.execute(
                "UPDATE program_days SET weekday = ?, updated_at = ? WHERE id = ?;",
                (self._check_weekday(weekday), _now(), day_id),
            )

    def delete(self, program_id: int, day_id: int) -> int:
        """Delete a day and compact the following indexes.

        The pointer keeps its index and only resets to 0 once it is past
        the last remaining day. Returns the resulting ``current_day_index``.
        """
        with self._transaction() as conn:
            program = self._load_program(program_id, conn)
            row = conn.execute(
                "SELECT day_index FROM program_days WHERE id = ? AND program_id = ?;",
                (day_id, program_id),
            ).fetchone()
            if row is None:
                raise ValueError("day not found")
            removed = int(row[0])
            conn.execute("DELETE FROM program_days WHERE id = ?;", (day_id,))
            following = conn.execute(
                "SELECT id, day_index FROM program_days WHERE program_id = ? AND day_index > ? "
                "ORDER BY day_index;",
                (program_id, removed),
            ).fetchall()
            for fid, index in following:
                conn.execute(
                    "UPDATE program_days SET day_index = ?, updated_at = ? WHERE id = ?;",
                    (index - 1, _now(), fid),
                )
            remaining = conn.execute(
                "SELECT COUNT(*) FROM program_days WHERE program_id = ?;",
                (program_id,),
            ).fetchone()[0]
            pointer = program["current_day_index"]
            if pointer >= remaining:
                pointer = 0
            if pointer != program["current_day_index"]:
                self._store_pointer(program_id, pointer, conn)
        logger.info(
            "removed day %s (index %d) from program %s, %d day(s) left, pointer %d",
            day_id,
            removed,
            program_id,
            remaining,
            pointer,
        )
        return pointer

    def reorder(self, program_id: int, order: list[int]) -> None:
        """Reorder days by id; the pointer keeps following the same day."""
        with self._transaction() as conn:
            program = self._load_program(program_id, conn)
            existing = [
                r[0]
                for r in conn.execute(
                    "SELECT id FROM program_days WHERE program_id = ? ORDER BY day_index;",
                    (program_id,),
                ).fetchall()
            ]
            if set(order) != set(existing) or len(order) != len(existing):
                raise ValueError("invalid order")
            if not existing:
                return
            pointer = program["current_day_index"] % len(existing)
            current_day_id = existing[pointer]
            for pos, did in enumerate(order):
                conn.execute(
                    "UPDATE program_days SET day_index = ? WHERE id = ?;",
                    (-(pos + 1), did),
                )
            for pos, did in enumerate(order):
                conn.execute(
                    "UPDATE program_days SET day_index = ?, updated_at = ? WHERE id = ?;",
                    (pos, _now(), did),
                )
            new_pointer = order.index(current_day_id)
            if new_pointer != program["current_day_index"]:
                self._store_pointer(program_id, new_pointer, conn)


class ProgramDayExerciseRepository(BaseRepository):
    """Repository for the exercise list of a program day."""

    @staticmethod
    def _validate(
        target_sets: int | None,
        target_reps: str | None,
        rest_seconds: int | None,
        rpe: float | None,
    ) -> None:
        if target_sets is not None and target_sets < 1:
            raise ValueError("target_sets must be positive")
        if target_reps is not None:
            parse_target_reps(target_reps)
        if rest_seconds is not None and rest_seconds < 0:
            raise ValueError("rest_seconds must be non-negative")
        if rpe is not None and not 1 <= rpe <= 10:
            raise ValueError("rpe must be between 1 and 10")

    def add(
        self,
        day_id: int,
        exercise_name: str,
        target_sets: int = 3,
        target_reps: str = "10",
        rest_seconds: int = 90,
        rpe: float | None = None,
        target_weight: float | None = None,
        notes: str | None = None,
    ) -> int:
        if not exercise_name or not exercise_name.strip():
            raise ValueError("exercise_name required")
        target_reps = str(target_reps).strip()
        self._validate(target_sets, target_reps, rest_seconds, rpe)
        with self._transaction() as conn:
            if conn.execute(
                "SELECT 1 FROM program_days WHERE id = ?;", (day_id,)
            ).fetchone() is None:
                raise ValueError("day not found")
            position = conn.execute(
                "SELECT COUNT(*) FROM program_day_exercises WHERE program_day_id = ?;",
                (day_id,),
            ).fetchone()[0]
            cur = conn.execute(
                "INSERT INTO program_day_exercises (program_day_id, exercise_name, position, target_sets, "
                "target_reps, target_weight, rest_seconds, rpe, notes) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);",
                (
                    day_id,
                    exercise_name.strip(),
                    position,
                    target_sets,
                    target_reps,
                    target_weight,
                    rest_seconds,
                    rpe,
                    notes,
                ),
            )
            return cur.lastrowid

    def fetch_for_day(self, day_id: int) -> list[dict]:
        rows = self.fetch_all(
            f"SELECT {EXERCISE_COLUMNS} FROM program_day_exercises "
            "WHERE program_day_id = ? ORDER BY position, id;",
            (day_id,),
        )
        return [_exercise_from_row(r) for r in rows]

    def fetch_detail(self, exercise_id: int) -> dict:
        rows = self.fetch_all(
            f"SELECT {EXERCISE_COLUMNS} FROM program_day_exercises WHERE id = ?;",
            (exercise_id,),
        )
        if not rows:
            raise ValueError("exercise not found")
        return _exercise_from_row(rows[0])

    def update(
        self,
        exercise_id: int,
        exercise_name: str | None = None,
        target_sets: int | None = None,
        target_reps: str | None = None,
        rest_seconds: int | None = None,
        rpe: float | None = None,
        target_weight: float | None = None,
        notes: str | None = None,
    ) -> None:
        self.fetch_detail(exercise_id)
        if target_reps is not None:
            target_reps = str(target_reps).strip()
        self._validate(target_sets, target_reps, rest_seconds, rpe)
        fields = {
            "exercise_name": exercise_name.strip() if exercise_name else None,
            "target_sets": target_sets,
            "target_reps": target_reps,
            "rest_seconds": rest_seconds,
            "rpe": rpe,
            "target_weight": target_weight,
            "notes": notes,
        }
        updates = {k: v for k, v in fields.items() if v is not None}
        if not updates:
            return
        assignments = ", ".join(f"{k} = ?" for k in updates)
        self.execute(
            f"UPDATE program_day_exercises SET {assignments} WHERE id = ?;",
            (*updates.values(), exercise_id),
        )

    def remove(self, exercise_id: int) -> None:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT program_day_id, position FROM program_day_exercises WHERE id = ?;",
                (exercise_id,),
            ).fetchone()
            if row is None:
                raise ValueError("exercise not found")
            day_id, position = row
            conn.execute(
                "DELETE FROM program_day_exercises WHERE id = ?;", (exercise_id,)
            )
            conn.execute(
                "UPDATE program_day_exercises SET position = position - 1 "
                "WHERE program_day_id = ? AND position > ?;",
                (day_id, position),
            )

    def reorder(self, day_id: int, order: list[int]) -> None:
        existing = [
            row[0]
            for row in self.fetch_all(
                "SELECT id FROM program_day_exercises WHERE program_day_id = ? ORDER BY position;",
                (day_id,),
            )
        ]
        if set(order) != set(existing) or len(order) != len(existing):
            raise ValueError("invalid order")
        with self._transaction() as conn:
            for pos, eid in enumerate(order):
                conn.execute(
                    "UPDATE program_day_exercises SET position = ? WHERE id = ?;",
                    (pos, eid),
                )


class ProgramHistoryRepository(BaseRepository):
    """Append-only log of completed program days."""

    def append(
        self,
        program_id: int,
        program_day_id: int,
        day_index: int,
        day_name: str,
        performed_at: str,
        duration_seconds: int | None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        return self._run(
            conn,
            "INSERT INTO program_history (program_id, program_day_id, day_index, day_name, "
            "performed_at, duration_seconds, created_at) VALUES (?, ?, ?, ?, ?, ?, ?);",
            (
                program_id,
                program_day_id,
                day_index,
                day_name,
                performed_at,
                duration_seconds,
                _now(),
            ),
        )

    def query_history(
        self,
        program_id: int | None = None,
        start: str | None = None,
        end: str | None = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[dict]:
        """Return history ordered by ``performed_at``.

        ``start`` and ``end`` compare against the stored ISO text.
        """
        query, params = _history_query(program_id, start, end)
        return [_history_from_row(r) for r in self._rows(conn, query, params)]

    def fetch_detail(self, history_id: int) -> dict:
        rows = self.fetch_all(
            f"SELECT {HISTORY_COLUMNS} FROM program_history WHERE id = ?;",
            (history_id,),
        )
        if not rows:
            raise ValueError("history entry not found")
        return _history_from_row(rows[0])

    def count(
        self,
        program_id: int | None = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        if program_id is None:
            rows = self._rows(conn, "SELECT COUNT(*) FROM program_history;")
        else:
            rows = self._rows(
                conn,
                "SELECT COUNT(*) FROM program_history WHERE program_id = ?;",
                (program_id,),
            )
        return int(rows[0][0])

    def day_counts(self, program_id: int) -> list[tuple[int, str, int]]:
        rows = self.fetch_all(
            "SELECT program_day_id, day_name, COUNT(*) FROM program_history "
            "WHERE program_id = ? GROUP BY program_day_id, day_name ORDER BY MIN(day_index), program_day_id;",
            (program_id,),
        )
        return [(int(r[0]), r[1], int(r[2])) for r in rows]


class PersonalRecordRepository(BaseRepository):
    """Repository for best lifts per exercise and rep count.

    Exercise names match case-insensitively. Every write accepts an open
    transaction connection so records can commit together with the
    completion or workout that produced them.
    """

    @staticmethod
    def check_lift(exercise_name: str, reps: int, weight: float) -> None:
        if not exercise_name or not exercise_name.strip():
            raise ValueError("exercise_name required")
        if reps < 1:
            raise ValueError("reps must be positive")
        if weight < 0:
            raise ValueError("weight must be non-negative")

    def add(
        self,
        exercise_name: str,
        reps: int,
        weight: float,
        achieved_at: str,
        program_history_id: int | None = None,
        workout_session_id: int | None = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        self.check_lift(exercise_name, reps, weight)
        return self._run(
            conn,
            "INSERT INTO personal_records (exercise_name, reps, weight, achieved_at, "
            "program_history_id, workout_session_id) VALUES (?, ?, ?, ?, ?, ?);",
            (
                exercise_name.strip(),
                reps,
                weight,
                to_iso(achieved_at),
                program_history_id,
                workout_session_id,
            ),
        )

    def best_weight(
        self,
        exercise_name: str,
        reps: int,
        conn: Optional[sqlite3.Connection] = None,
    ) -> float | None:
        rows = self._rows(
            conn,
            "SELECT MAX(weight) FROM personal_records "
            "WHERE exercise_name = ? COLLATE NOCASE AND reps = ?;",
            (exercise_name.strip(), reps),
        )
        return float(rows[0][0]) if rows and rows[0][0] is not None else None

    def record_if_best(
        self,
        exercise_name: str,
        reps: int,
        weight: float,
        achieved_at: str,
        program_history_id: int | None = None,
        workout_session_id: int | None = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> int | None:
        """Store the lift when it beats the best weight for ``reps``."""
        self.check_lift(exercise_name, reps, weight)
        best = self.best_weight(exercise_name, reps, conn)
        if best is not None and weight <= best:
            return None
        return self.add(
            exercise_name,
            reps,
            weight,
            achieved_at,
            program_history_id,
            workout_session_id,
            conn,
        )

    def fetch_for_exercise(self, exercise_name: str) -> list[dict]:
        rows = self.fetch_all(
            f"SELECT {RECORD_COLUMNS} FROM personal_records "
            "WHERE exercise_name = ? COLLATE NOCASE ORDER BY reps, weight DESC, id;",
            (exercise_name.strip(),),
        )
        return [_record_from_row(r) for r in rows]

    def fetch_records(self) -> list[dict]:
        rows = self.fetch_all(
            f"SELECT {RECORD_COLUMNS} FROM personal_records ORDER BY achieved_at, id;"
        )
        return [_record_from_row(r) for r in rows]


class TemplateRepository(BaseRepository):
    """Repository for workout templates and their exercise lists."""

    @staticmethod
    def _write_exercises(
        conn: sqlite3.Connection, template_id: int, exercises: Iterable[dict]
    ) -> None:
        for pos, ex in enumerate(exercises):
            conn.execute(
                "INSERT INTO template_exercises (template_id, exercise_name, position, "
                "target_sets, target_reps, target_weight, notes) VALUES (?, ?, ?, ?, ?, ?, ?);",
                (
                    template_id,
                    ex["exercise_name"].strip(),
                    pos,
                    ex.get("target_sets"),
                    ex.get("target_reps"),
                    ex.get("target_weight"),
                    ex.get("notes"),
                ),
            )

    def _attach(
        self, conn: Optional[sqlite3.Connection], templates: List[dict]
    ) -> List[dict]:
        if not templates:
            return templates
        by_id = {t["id"]: t for t in templates}
        marks = ", ".join("?" for _ in by_id)
        rows = self._rows(
            conn,
            f"SELECT {TEMPLATE_EXERCISE_COLUMNS} FROM template_exercises "
            f"WHERE template_id IN ({marks}) ORDER BY position, id;",
            tuple(by_id),
        )
        for row in rows:
            by_id[row[1]]["exercises"].append(_template_exercise_from_row(row))
        return templates

    def create(
        self,
        name: str,
        description: str | None = None,
        exercises: Iterable[dict] | None = None,
    ) -> int:
        now = _now()
        with self._transaction() as conn:
            cur = conn.execute(
                "INSERT INTO templates (name, description, created_at, updated_at) "
                "VALUES (?, ?, ?, ?);",
                (name.strip(), description, now, now),
            )
            template_id = cur.lastrowid
            self._write_exercises(conn, template_id, exercises or [])
        return template_id

    def fetch_all(self) -> list[dict]:
        """Return templates, most recently used first, with their exercises."""
        rows = super().fetch_all(
            f"SELECT {TEMPLATE_COLUMNS} FROM templates "
            "ORDER BY last_used IS NULL, last_used DESC, name COLLATE NOCASE, id;"
        )
        return self._attach(None, [_template_from_row(r) for r in rows])

    def fetch_detail(
        self, template_id: int, conn: Optional[sqlite3.Connection] = None
    ) -> dict:
        rows = self._rows(
            conn,
            f"SELECT {TEMPLATE_COLUMNS} FROM templates WHERE id = ?;",
            (template_id,),
        )
        if not rows:
            raise ValueError("template not found")
        return self._attach(conn, [_template_from_row(rows[0])])[0]

    def update(
        self,
        template_id: int,
        name: str | None = None,
        description: str | None = None,
        exercises: Iterable[dict] | None = None,
    ) -> None:
        """Update a template; a given exercise list replaces the stored one."""
        with self._transaction() as conn:
            self.fetch_detail(template_id, conn)
            if name is not None:
                conn.execute(
                    "UPDATE templates SET name = ? WHERE id = ?;",
                    (name.strip(), template_id),
                )
            if description is not None:
                conn.execute(
                    "UPDATE templates SET description = ? WHERE id = ?;",
                    (description or None, template_id),
                )
            if exercises is not None:
                conn.execute(
                    "DELETE FROM template_exercises WHERE template_id = ?;",
                    (template_id,),
                )
                self._write_exercises(conn, template_id, exercises)
            conn.execute(
                "UPDATE templates SET updated_at = ? WHERE id = ?;",
                (_now(), template_id),
            )

    def delete(self, template_id: int) -> None:
        self.fetch_detail(template_id)
        self.execute("DELETE FROM templates WHERE id = ?;", (template_id,))

    def update_last_used(
        self,
        template_id: int,
        timestamp: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        self._run(
            conn,
            "UPDATE templates SET last_used = ? WHERE id = ?;",
            (timestamp, template_id),
        )


class WorkoutSessionRepository(BaseRepository):
    """Repository for logged workouts, active or finished."""

    def create(
        self,
        name: str,
        started_at: str,
        template_id: int | None = None,
        program_id: int | None = None,
        day_index: int | None = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        if not name or not name.strip():
            raise ValueError("name required")
        return self._run(
            conn,
            "INSERT INTO workout_sessions (name, template_id, program_id, day_index, started_at) "
            "VALUES (?, ?, ?, ?, ?);",
            (name.strip(), template_id, program_id, day_index, to_iso(started_at)),
        )

    def fetch_session(
        self, session_id: int, conn: Optional[sqlite3.Connection] = None
    ) -> dict:
        rows = self._rows(
            conn,
            f"SELECT {SESSION_COLUMNS} FROM workout_sessions WHERE id = ?;",
            (session_id,),
        )
        if not rows:
            raise ValueError("workout not found")
        return _session_from_row(rows[0])

    def fetch_detail(
        self, session_id: int, conn: Optional[sqlite3.Connection] = None
    ) -> dict:
        """Return the session with its ordered exercises and their sets."""
        session = self.fetch_session(session_id, conn)
        exercise_rows = self._rows(
            conn,
            f"SELECT {SESSION_EXERCISE_COLUMNS} FROM session_exercises "
            "WHERE session_id = ? ORDER BY position, id;",
            (session_id,),
        )
        exercises = [_session_exercise_from_row(r) for r in exercise_rows]
        by_id = {ex["id"]: ex for ex in exercises}
        set_rows = self._rows(
            conn,
            "SELECT s.id, s.session_exercise_id, s.set_number, s.reps, s.weight, s.rpe, "
            "s.completed, s.completed_at FROM session_sets s "
            "JOIN session_exercises e ON e.id = s.session_exercise_id "
            "WHERE e.session_id = ? ORDER BY s.set_number, s.id;",
            (session_id,),
        )
        for row in set_rows:
            by_id[row[1]]["sets"].append(_set_from_row(row))
        session["exercises"] = exercises
        return session

    def fetch_active(self) -> dict | None:
        rows = self.fetch_all(
            f"SELECT {SESSION_COLUMNS} FROM workout_sessions WHERE finished_at IS NULL "
            "ORDER BY started_at DESC, id DESC LIMIT 1;"
        )
        return _session_from_row(rows[0]) if rows else None

    def fetch_completed(self, limit: int | None = None) -> list[dict]:
        query = (
            f"SELECT {SESSION_COLUMNS} FROM workout_sessions WHERE finished_at IS NOT NULL "
            "ORDER BY started_at DESC, id DESC"
        )
        params: tuple = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (limit,)
        return [_session_from_row(r) for r in self.fetch_all(query + ";", params)]

    def finish(
        self,
        session_id: int,
        finished_at: str,
        duration_seconds: int,
        program_history_id: int | None = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        self._run(
            conn,
            "UPDATE workout_sessions SET finished_at = ?, duration_seconds = ?, "
            "program_history_id = ? WHERE id = ?;",
            (finished_at, duration_seconds, program_history_id, session_id),
        )

    def set_notes(self, session_id: int, notes: str | None) -> None:
        self.fetch_session(session_id)
        self.execute(
            "UPDATE workout_sessions SET notes = ? WHERE id = ?;",
            (notes or None, session_id),
        )

    def delete(self, session_id: int) -> None:
        self.fetch_session(session_id)
        self.execute("DELETE FROM workout_sessions WHERE id = ?;", (session_id,))

    def exercise_history(self, exercise_name: str) -> list[dict]:
        """Per-workout totals for one exercise over finished workouts, newest first.

        Volume, top weight and rep totals only count completed sets.
        """
        rows = self.fetch_all(
            "SELECT w.id, w.name, w.started_at, e.id, COUNT(s.id), "
            "SUM(CASE WHEN s.completed = 1 THEN 1 ELSE 0 END), "
            "SUM(CASE WHEN s.completed = 1 THEN s.reps * s.weight ELSE 0 END), "
            "MAX(CASE WHEN s.completed = 1 THEN s.weight ELSE 0 END), "
            "SUM(CASE WHEN s.completed = 1 THEN s.reps ELSE 0 END) "
            "FROM workout_sessions w "
            "JOIN session_exercises e ON e.session_id = w.id "
            "JOIN session_sets s ON s.session_exercise_id = e.id "
            "WHERE e.exercise_name = ? COLLATE NOCASE AND w.finished_at IS NOT NULL "
            "GROUP BY w.id, e.id ORDER BY w.started_at DESC, w.id DESC;",
            (exercise_name.strip(),),
        )
        return [
            {
                "session_id": r[0],
                "workout_name": r[1],
                "started_at": r[2],
                "session_exercise_id": r[3],
                "total_sets": int(r[4]),
                "completed_sets": int(r[5]),
                "total_volume": float(r[6]),
                "max_weight": float(r[7]),
                "total_reps": int(r[8]),
            }
            for r in rows
        ]


class SessionExerciseRepository(BaseRepository):
    """Repository for the exercises logged inside a workout."""

    def add(
        self,
        session_id: int,
        exercise_name: str,
        notes: str | None = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> int:
        if not exercise_name or not exercise_name.strip():
            raise ValueError("exercise_name required")
        if conn is None:
            with self._transaction() as tx:
                return self.add(session_id, exercise_name, notes, tx)
        if conn.execute(
            "SELECT 1 FROM workout_sessions WHERE id = ?;", (session_id,)
        ).fetchone() is None:
            raise ValueError("workout not found")
        position = conn.execute(
            "SELECT COUNT(*) FROM session_exercises WHERE session_id = ?;",
            (session_id,),
        ).fetchone()[0]
        cur = conn.execute(
            "INSERT INTO session_exercises (session_id, exercise_name, position, notes) "
            "VALUES (?, ?, ?, ?);",
            (session_id, exercise_name.strip(), position, notes),
        )
        return cur.lastrowid

    def fetch_detail(self, exercise_id: int) -> dict:
        rows = self.fetch_all(
            f"SELECT {SESSION_EXERCISE_COLUMNS} FROM session_exercises WHERE id = ?;",
            (exercise_id,),
        )
        if not rows:
            raise ValueError("exercise not found")
        return _session_exercise_from_row(rows[0])

    def remove(self, exercise_id: int) -> None:
        """Delete an exercise with its sets and close the position gap."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT session_id, position FROM session_exercises WHERE id = ?;",
                (exercise_id,),
            ).fetchone()
            if row is None:
                raise ValueError("exercise not found")
            session_id, position = row
            conn.execute("DELETE FROM session_exercises WHERE id = ?;", (exercise_id,))
            conn.execute(
                "UPDATE session_exercises SET position = position - 1 "
                "WHERE session_id = ? AND position > ?;",
                (session_id, position),
            )


class SessionSetRepository(BaseRepository):
    """Repository for the sets logged against a workout exercise."""

    @staticmethod
    def _validate(reps: int | None, weight: float | None, rpe: float | None) -> None:
        if reps is not None and reps <= 0:
            raise ValueError("reps must be positive")
        if weight is not None and weight < 0:
            raise ValueError("weight must be non-negative")
        if rpe is not None and not 1 <= rpe <= 10:
            raise ValueError("rpe must be between 1 and 10")

    def add(
        self,
        session_exercise_id: int,
        reps: int,
        weight: float,
        rpe: float | None = None,
        completed: bool = False,
        completed_at: str | None = None,
    ) -> int:
        self._validate(reps, weight, rpe)
        with self._transaction() as conn:
            if conn.execute(
                "SELECT 1 FROM session_exercises WHERE id = ?;", (session_exercise_id,)
            ).fetchone() is None:
                raise ValueError("exercise not found")
            set_number = conn.execute(
                "SELECT COALESCE(MAX(set_number), 0) + 1 FROM session_sets "
                "WHERE session_exercise_id = ?;",
                (session_exercise_id,),
            ).fetchone()[0]
            cur = conn.execute(
                "INSERT INTO session_sets (session_exercise_id, set_number, reps, weight, rpe, "
                "completed, completed_at) VALUES (?, ?, ?, ?, ?, ?, ?);",
                (
                    session_exercise_id,
                    set_number,
                    reps,
                    weight,
                    rpe,
                    int(completed),
                    completed_at if completed else None,
                ),
            )
            return cur.lastrowid

    def fetch_detail(self, set_id: int) -> dict:
        rows = self.fetch_all(
            f"SELECT {SET_COLUMNS} FROM session_sets WHERE id = ?;", (set_id,)
        )
        if not rows:
            raise ValueError("set not found")
        return _set_from_row(rows[0])

    def fetch_for_exercise(self, session_exercise_id: int) -> list[dict]:
        rows = self.fetch_all(
            f"SELECT {SET_COLUMNS} FROM session_sets WHERE session_exercise_id = ? "
            "ORDER BY set_number, id;",
            (session_exercise_id,),
        )
        return [_set_from_row(r) for r in rows]

    def update(
        self,
        set_id: int,
        reps: int | None = None,
        weight: float | None = None,
        rpe: float | None = None,
    ) -> None:
        self.fetch_detail(set_id)
        self._validate(reps, weight, rpe)
        fields = {"reps": reps, "weight": weight, "rpe": rpe}
        updates = {k: v for k, v in fields.items() if v is not None}
        if not updates:
            return
        assignments = ", ".join(f"{k} = ?" for k in updates)
        self.execute(
            f"UPDATE session_sets SET {assignments} WHERE id = ?;",
            (*updates.values(), set_id),
        )

    def set_completed(
        self, set_id: int, completed: bool, timestamp: str | None = None
    ) -> None:
        self.fetch_detail(set_id)
        self.execute(
            "UPDATE session_sets SET completed = ?, completed_at = ? WHERE id = ?;",
            (int(completed), timestamp if completed else None, set_id),
        )

    def remove(self, set_id: int) -> None:
        """Delete a set and renumber the ones after it."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT session_exercise_id, set_number FROM session_sets WHERE id = ?;",
                (set_id,),
            ).fetchone()
            if row is None:
                raise ValueError("set not found")
            exercise_id, number = row
            conn.execute("DELETE FROM session_sets WHERE id = ?;", (set_id,))
            conn.execute(
                "UPDATE session_sets SET set_number = set_number - 1 "
                "WHERE session_exercise_id = ? AND set_number > ?;",
                (exercise_id, number),
            )


class SettingsRepository(BaseRepository):
    """Repository for general application settings synchronized with YAML."""

    def __init__(
        self, db_path: str | None = None, yaml_path: str = "settings.yaml"
    ) -> None:
        super().__init__(db_path)
        self._yaml = YamlConfig(yaml_path)
        self._sync_from_yaml()
        self._sync_to_yaml()

    def _raw_all_settings(self) -> dict:
        rows = self.fetch_all("SELECT key, value FROM settings ORDER BY key;")
        result: dict[str, bool | str] = {}
        for k, v in rows:
            if k in BOOL_SETTINGS:
                result[k] = v in {"1", "1.0", "true", "True"}
            else:
                result[k] = v
        return result

    def _sync_from_yaml(self) -> None:
        data = self._yaml.load()
        if not data:
            return
        validate_settings(data)
        with self._connection() as conn:
            for key, value in data.items():
                val = str(value)
                if key in BOOL_SETTINGS:
                    val = "1" if val in {"1", "1.0", "true", "True"} else "0"
                conn.execute(
                    "INSERT INTO settings (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
                    (key, val),
                )

    def _sync_to_yaml(self) -> None:
        self._yaml.save(self._raw_all_settings())

    def get_text(self, key: str, default: str) -> str:
        self._sync_from_yaml()
        rows = self.fetch_all("SELECT value FROM settings WHERE key = ?;", (key,))
        return rows[0][0] if rows else default

    def set_text(self, key: str, value: str) -> None:
        data = self._raw_all_settings()
        data[key] = value
        validate_settings(data)
        self.execute(
            "INSERT INTO settings (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
            (key, value),
        )
        self._sync_to_yaml()

    def get_int(self, key: str, default: int) -> int:
        try:
            return int(float(self.get_text(key, str(default))))
        except ValueError:
            return default

    def set_int(self, key: str, value: int) -> None:
        self.set_text(key, str(value))

    def get_bool(self, key: str, default: bool) -> bool:
        return self.get_text(key, "1" if default else "0") in {
            "1",
            "true",
            "True",
            "1.0",
        }

    def set_bool(self, key: str, value: bool) -> None:
        self.set_text(key, "1" if value else "0")

    def all_settings(self) -> dict:
        self._sync_from_yaml()
        data = self._raw_all_settings()
        for k in BOOL_SETTINGS:
            data[k] = bool(data.get(k, False))
        return data


class AsyncProgramRepository(AsyncBaseRepository):
    """Async repository for programs and their days."""

    async def get_program(
        self, program_id: int, conn: Optional[aiosqlite.Connection] = None
    ) -> dict:
        rows = await self._rows(
            conn,
            f"SELECT {PROGRAM_COLUMNS} FROM programs WHERE id = ?;",
            (program_id,),
        )
        if not rows:
            raise ProgramNotFound(program_id)
        return _program_from_row(rows[0])

    async def fetch_active(self) -> dict | None:
        rows = await self.fetch_all(
            f"SELECT {PROGRAM_COLUMNS} FROM programs WHERE is_active = 1 "
            "ORDER BY updated_at DESC, id DESC;"
        )
        return _program_from_row(rows[0]) if rows else None

    async def list_days(
        self,
        program_id: int,
        conn: Optional[aiosqlite.Connection] = None,
        with_exercises: bool = True,
    ) -> list[dict]:
        rows = await self._rows(
            conn,
            f"SELECT {DAY_COLUMNS} FROM program_days WHERE program_id = ? ORDER BY day_index;",
            (program_id,),
        )
        days = [_day_from_row(r) for r in rows]
        if not with_exercises or not days:
            return days
        exercise_rows = await self._rows(
            conn,
            f"SELECT {EXERCISE_COLUMNS} FROM program_day_exercises "
            "WHERE program_day_id IN (SELECT id FROM program_days WHERE program_id = ?) "
            "ORDER BY position, id;",
            (program_id,),
        )
        return _attach_exercises(days, exercise_rows)

    async def update_current_day_index(
        self,
        program_id: int,
        index: int,
        conn: Optional[aiosqlite.Connection] = None,
    ) -> None:
        if index < 0:
            raise ValueError("index must be non-negative")
        await self._run(
            conn,
            "UPDATE programs SET current_day_index = ?, updated_at = ? WHERE id = ?;",
            (index, _now(), program_id),
        )


class AsyncProgramHistoryRepository(AsyncBaseRepository):
    """Async access to the program history log."""

    async def append(
        self,
        program_id: int,
        program_day_id: int,
        day_index: int,
        day_name: str,
        performed_at: str,
        duration_seconds: int | None,
        conn: Optional[aiosqlite.Connection] = None,
    ) -> int:
        return await self._run(
            conn,
            "INSERT INTO program_history (program_id, program_day_id, day_index, day_name, "
            "performed_at, duration_seconds, created_at) VALUES (?, ?, ?, ?, ?, ?, ?);",
            (
                program_id,
                program_day_id,
                day_index,
                day_name,
                performed_at,
                duration_seconds,
                _now(),
            ),
        )

    async def query_history(
        self,
        program_id: int | None = None,
        start: str | None = None,
        end: str | None = None,
    ) -> list[dict]:
        query, params = _history_query(program_id, start, end)
        rows = await self.fetch_all(query, params)
        return [_history_from_row(r) for r in rows]

    async def count(self, program_id: int | None = None) -> int:
        if program_id is None:
            rows = await self.fetch_all("SELECT COUNT(*) FROM program_history;")
        else:
            rows = await self.fetch_all(
                "SELECT COUNT(*) FROM program_history WHERE program_id = ?;",
                (program_id,),
            )
        return int(rows[0][0])
