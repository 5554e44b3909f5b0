import sqlite3
import asyncio
import aiosqlite
import datetime
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from config import DATABASE_NAME, load_settings

logger = logging.getLogger(__name__)

FITNESS_LEVELS = ("beginner", "intermediate", "advanced")
EXERCISE_TYPES = ("cardio", "strength")
BODY_PARTS = (
    "Abs",
    "Back",
    "Biceps",
    "Calves",
    "Chest",
    "Core",
    "Glutes",
    "Hamstrings",
    "Legs",
    "Shoulders",
    "Triceps",
    "Quads",
)


def _sql_values(values: Iterable[str]) -> str:
    return ", ".join(f"'{v}'" for v in values)


def _quote(identifier: str) -> str:
    return f'"{identifier}"'


class ValidationError(ValueError):
    """Input rejected before any statement reached the database."""


class MissingParametersError(ValidationError):
    def __init__(self, missing: Sequence[str]) -> None:
        self.missing = list(missing)
        super().__init__(f"Missing required parameters: {', '.join(self.missing)}")


class InvalidIdError(ValidationError):
    pass


class NoValidFieldsError(ValueError):
    def __init__(self) -> None:
        super().__init__("No valid fields provided to update.")


class UnknownIdentifierError(ValueError):
    """A generic helper was given a table or column outside the schema."""


class AsyncDatabase:
    """Owns the shared aiosqlite connection and the workout app schema.

    One instance is created at start-up and handed to every repository.
    The connection is opened lazily and runs in autocommit mode; statements
    and whole transactions are serialized through ``_lock`` so a
    transaction never interleaves with other work on the same handle.
    """

    # Parents are listed before the tables referencing them.
    _TABLE_DEFINITIONS = {
        "Users": (
            f"""CREATE TABLE IF NOT EXISTS Users (
                    UserId INTEGER PRIMARY KEY AUTOINCREMENT,
                    Name TEXT NOT NULL,
                    Email TEXT UNIQUE,
                    PasswordHash TEXT,
                    CreatedAt TEXT NOT NULL,
                    FitnessLevel TEXT CHECK(FitnessLevel IN ({_sql_values(FITNESS_LEVELS)})),
                    Goals TEXT
                );""",
            [
                "UserId",
                "Name",
                "Email",
                "PasswordHash",
                "CreatedAt",
                "FitnessLevel",
                "Goals",
            ],
        ),
        "Exercises": (
            f"""CREATE TABLE IF NOT EXISTS Exercises (
                    ExerciseId INTEGER PRIMARY KEY AUTOINCREMENT,
                    Name TEXT NOT NULL,
                    Type TEXT CHECK(Type IN ({_sql_values(EXERCISE_TYPES)})),
                    TargetedBodyParts TEXT CHECK(TargetedBodyParts IN ({_sql_values(BODY_PARTS)})),
                    Instructions TEXT,
                    VideoUrl TEXT,
                    GifUrl TEXT
                );""",
            [
                "ExerciseId",
                "Name",
                "Type",
                "TargetedBodyParts",
                "Instructions",
                "VideoUrl",
                "GifUrl",
            ],
        ),
        "SetDetails": (
            """CREATE TABLE IF NOT EXISTS SetDetails (
                    SetDetailId INTEGER PRIMARY KEY AUTOINCREMENT,
                    MinReps INTEGER,
                    MaxReps INTEGER,
                    Weight INTEGER,
                    AMRAP BOOLEAN,
                    Paused BOOLEAN,
                    Fast BOOLEAN,
                    Forced BOOLEAN,
                    Dropset BOOLEAN
                );""",
            [
                "SetDetailId",
                "MinReps",
                "MaxReps",
                "Weight",
                "AMRAP",
                "Paused",
                "Fast",
                "Forced",
                "Dropset",
            ],
        ),
        "ExerciseDetails": (
            """CREATE TABLE IF NOT EXISTS ExerciseDetails (
                    ExerciseDetailId INTEGER PRIMARY KEY AUTOINCREMENT,
                    ExerciseId INTEGER,
                    "Order" INTEGER,
                    SetDetails INTEGER,
                    FOREIGN KEY (ExerciseId) REFERENCES Exercises (ExerciseId) ON DELETE CASCADE,
                    FOREIGN KEY (SetDetails) REFERENCES SetDetails (SetDetailId) ON DELETE CASCADE
                );""",
            ["ExerciseDetailId", "ExerciseId", "Order", "SetDetails"],
        ),
        "Workouts": (
            """CREATE TABLE IF NOT EXISTS Workouts (
                    WorkoutId INTEGER PRIMARY KEY AUTOINCREMENT,
                    UserId INTEGER,
                    Name TEXT NOT NULL,
                    FOREIGN KEY (UserId) REFERENCES Users (UserId) ON DELETE CASCADE
                );""",
            ["WorkoutId", "UserId", "Name"],
        ),
        "WorkoutPlans": (
            """CREATE TABLE IF NOT EXISTS WorkoutPlans (
                    WorkoutPlanId INTEGER PRIMARY KEY AUTOINCREMENT,
                    UserId INTEGER,
                    Name TEXT NOT NULL,
                    Description TEXT,
                    FOREIGN KEY (UserId) REFERENCES Users (UserId) ON DELETE CASCADE
                );""",
            ["WorkoutPlanId", "UserId", "Name", "Description"],
        ),
        "CompletedExercises": (
            """CREATE TABLE IF NOT EXISTS CompletedExercises (
                    CompletedExerciseId INTEGER PRIMARY KEY AUTOINCREMENT,
                    ExerciseId INTEGER,
                    "Order" INTEGER,
                    FOREIGN KEY (ExerciseId) REFERENCES Exercises (ExerciseId) ON DELETE CASCADE
                );""",
            ["CompletedExerciseId", "ExerciseId", "Order"],
        ),
        # No ON DELETE action: parents referenced by a session cannot be deleted.
        "WorkoutSessions": (
            """CREATE TABLE IF NOT EXISTS WorkoutSessions (
                    WorkoutSessionId INTEGER PRIMARY KEY AUTOINCREMENT,
                    UserId INTEGER,
                    WorkoutPlanId INTEGER,
                    WorkoutId INTEGER,
                    FOREIGN KEY (UserId) REFERENCES Users (UserId),
                    FOREIGN KEY (WorkoutPlanId) REFERENCES WorkoutPlans (WorkoutPlanId),
                    FOREIGN KEY (WorkoutId) REFERENCES Workouts (WorkoutId)
                );""",
            ["WorkoutSessionId", "UserId", "WorkoutPlanId", "WorkoutId"],
        ),
    }

    def __init__(self, db_path: str = DATABASE_NAME, timeout: float = 5.0) -> None:
        self._db_path = db_path
        self._timeout = timeout
        self._conn: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(cls, path: str = "settings.yaml") -> "AsyncDatabase":
        settings = load_settings(path)
        return cls(settings["database_name"], settings["timeout"])

    @property
    def path(self) -> str:
        return self._db_path

    @classmethod
    def tables(cls) -> List[str]:
        return list(cls._TABLE_DEFINITIONS)

    @classmethod
    def columns(cls, table: str) -> List[str]:
        cls._check_identifiers(table, ())
        return list(cls._TABLE_DEFINITIONS[table][1])

    async def connection(self) -> aiosqlite.Connection:
        """Return the shared handle, opening it on first use."""
        if self._conn is None:
            try:
                conn = await aiosqlite.connect(
                    self._db_path, timeout=self._timeout, isolation_level=None
                )
            except sqlite3.Error:
                logger.error("Database opening error: %s", self._db_path, exc_info=True)
                raise
            conn.row_factory = aiosqlite.Row
            self._conn = conn
            logger.info("Opened database %s", self._db_path)
        await self._conn.execute("PRAGMA foreign_keys = ON;")
        return self._conn

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    @asynccontextmanager
    async def _locked(self):
        async with self._lock:
            yield await self.connection()

    @asynccontextmanager
    async def transaction(self):
        """Run the body inside BEGIN/COMMIT, rolling back on any error."""
        async with self._locked() as conn:
            await conn.execute("BEGIN;")
            committed = False
            try:
                yield conn
                await conn.execute("COMMIT;")
                committed = True
            finally:
                # Also reached on cancellation. rollback() is a no-op once
                # SQLite has ended the transaction itself.
                if not committed:
                    await conn.rollback()
                    logger.error("Transaction failed, rolled back")

    async def create_tables(self) -> None:
        """Create every table that does not exist yet."""
        async with self._locked() as conn:
            for table, (sql, _columns) in self._TABLE_DEFINITIONS.items():
                try:
                    await conn.execute(sql)
                except sqlite3.Error:
                    logger.error("Error creating table %s", table, exc_info=True)
                    raise
        logger.info("Tables created successfully")

    async def execute(
        self, query: str, params: Sequence[Any] = (), operation: str = "execute"
    ) -> int:
        params = tuple(params)
        async with self._locked() as conn:
            try:
                cursor = await conn.execute(query, params)
            except sqlite3.Error:
                logger.error(
                    "%s failed: %s with params %r", operation, query, params, exc_info=True
                )
                raise
            rowid = cursor.lastrowid
            await cursor.close()
        logger.debug("%s: %s with params %r", operation, query, params)
        return rowid

    async def fetch_all(
        self, query: str, params: Sequence[Any] = (), operation: str = "fetch_all"
    ) -> List[Dict[str, Any]]:
        params = tuple(params)
        async with self._locked() as conn:
            try:
                cursor = await conn.execute(query, params)
                rows = await cursor.fetchall()
                await cursor.close()
            except sqlite3.Error:
                logger.error(
                    "%s failed: %s with params %r", operation, query, params, exc_info=True
                )
                raise
        return [dict(row) for row in rows]

    async def execute_transaction(
        self, statements: Iterable[Tuple[str, Sequence[Any]]]
    ) -> None:
        """Execute ``(query, params)`` pairs in order as one atomic unit."""
        statements = [(query, tuple(params)) for query, params in statements]
        async with self.transaction() as conn:
            for query, params in statements:
                try:
                    await conn.execute(query, params)
                except sqlite3.Error:
                    logger.error(
                        "SQL error executing query: %s, with params: %r",
                        query,
                        params,
                        exc_info=True,
                    )
                    raise
                logger.debug("Executed query: %s, with params: %r", query, params)
        logger.info("Transaction committed (%d statements)", len(statements))

    async def get_data_by_foreign_key(
        self, table: str, column: str, value: Any
    ) -> List[Dict[str, Any]]:
        """Return all rows of ``table`` whose ``column`` equals ``value``."""
        self._check_identifiers(table, [column])
        return await self.fetch_all(
            f"SELECT * FROM {table} WHERE {_quote(column)} = ?;",
            (value,),
            operation="get_data_by_foreign_key",
        )

    async def bulk_insert(
        self, table: str, columns: Sequence[str], rows: Iterable[Sequence[Any]]
    ) -> int:
        """Insert ``rows`` into ``table`` in a single transaction.

        Every row must supply one value per column. Either all rows are
        stored, in the given order, or none are.
        """
        columns = list(columns)
        if not columns:
            raise ValueError("columns must not be empty")
        self._check_identifiers(table, columns)
        placeholders = ", ".join("?" for _ in columns)
        query = (
            f"INSERT INTO {table} ({', '.join(_quote(c) for c in columns)}) "
            f"VALUES ({placeholders});"
        )
        values = [tuple(row) for row in rows]
        async with self.transaction() as conn:
            for row in values:
                try:
                    await conn.execute(query, row)
                except sqlite3.Error:
                    logger.error(
                        "SQL error inserting row into %s: %r", table, row, exc_info=True
                    )
                    raise
        logger.info("Bulk insert into %s completed (%d rows)", table, len(values))
        return len(values)

    @classmethod
    def _check_identifiers(cls, table: str, columns: Iterable[str]) -> None:
        definition = cls._TABLE_DEFINITIONS.get(table)
        if definition is None:
            raise UnknownIdentifierError(f"unknown table: {table!r}")
        known = definition[1]
        for column in columns:
            if column not in known:
                raise UnknownIdentifierError(f"unknown column for {table}: {column!r}")


class AsyncBaseRepository:
    """Base repository providing helper methods over a shared AsyncDatabase."""

    def __init__(self, db: AsyncDatabase) -> None:
        self._db = db

    async def execute(
        self, query: str, params: Sequence[Any] = (), operation: str = "execute"
    ) -> int:
        return await self._db.execute(query, params, operation=operation)

    async def fetch_all(
        self, query: str, params: Sequence[Any] = (), operation: str = "fetch_all"
    ) -> List[Dict[str, Any]]:
        return await self._db.fetch_all(query, params, operation=operation)


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


class AsyncTableRepository(AsyncBaseRepository):
    """CRUD over one table described by class attributes.

    ``fields`` maps logical field names to column names and doubles as the
    allow-list for ``update``. ``required`` lists the fields that must be
    present on ``create``; ``defaults`` fills optional fields left out.
    """

    table = ""
    id_column = ""
    label = ""
    fields: Dict[str, str] = {}
    required: Tuple[str, ...] = ()
    defaults: Dict[str, Any] = {}
    boolean_columns: Tuple[str, ...] = ()

    def _row(self, row: Dict[str, Any]) -> Dict[str, Any]:
        for column in self.boolean_columns:
            if row.get(column) is not None:
                row[column] = bool(row[column])
        return row

    def _check_id(self, row_id: Any) -> None:
        if isinstance(row_id, bool) or not isinstance(row_id, int) or row_id <= 0:
            logger.error("Invalid %s id: %r", self.label, row_id)
            raise InvalidIdError(
                f"Invalid {self.label} id: {row_id!r}. It should be a positive integer."
            )

    async def _insert(self, payload: Dict[str, Any], extra: Dict[str, Any]) -> int:
        missing = [f for f in self.required if _is_blank(payload.get(f))]
        if missing:
            error = MissingParametersError(missing)
            logger.error("Error creating %s: %s", self.label, error)
            raise error
        values: Dict[str, Any] = {}
        for field, column in self.fields.items():
            value = payload.get(field)
            values[column] = self.defaults.get(field) if _is_blank(value) else value
        values.update(extra)
        columns = ", ".join(_quote(c) for c in values)
        placeholders = ", ".join("?" for _ in values)
        row_id = await self.execute(
            f"INSERT INTO {self.table} ({columns}) VALUES ({placeholders});",
            tuple(values.values()),
            operation=f"create {self.label}",
        )
        logger.info("%s %s created", self.label.capitalize(), row_id)
        return row_id

    async def create(self, payload: Dict[str, Any]) -> int:
        return await self._insert(payload, {})

    async def fetch_all(self) -> List[Dict[str, Any]]:
        rows = await super().fetch_all(
            f"SELECT * FROM {self.table} ORDER BY {self.id_column};",
            operation=f"fetch all {self.label}s",
        )
        return [self._row(r) for r in rows]

    async def fetch_by_id(self, row_id: int) -> Optional[Dict[str, Any]]:
        rows = await super().fetch_all(
            f"SELECT * FROM {self.table} WHERE {self.id_column} = ?;",
            (row_id,),
            operation=f"fetch {self.label}",
        )
        return self._row(rows[0]) if rows else None

    async def fetch_by(self, field: str, value: Any) -> List[Dict[str, Any]]:
        """Rows whose logical ``field`` equals ``value``."""
        if field not in self.fields:
            raise UnknownIdentifierError(f"unknown {self.label} field: {field!r}")
        rows = await self._db.get_data_by_foreign_key(
            self.table, self.fields[field], value
        )
        return [self._row(r) for r in rows]

    async def update(self, row_id: int, changes: Dict[str, Any]) -> None:
        self._check_id(row_id)
        fields = [
            k for k, v in changes.items() if k in self.fields and v is not None
        ]
        if not fields:
            logger.error("Error updating %s %s: no valid fields", self.label, row_id)
            raise NoValidFieldsError()
        assignments = ", ".join(f"{_quote(self.fields[f])} = ?" for f in fields)
        params = [changes[f] for f in fields]
        params.append(row_id)
        await self.execute(
            f"UPDATE {self.table} SET {assignments} WHERE {self.id_column} = ?;",
            params,
            operation=f"update {self.label}",
        )
        logger.info("%s %s updated", self.label.capitalize(), row_id)

    async def delete(self, row_id: int) -> None:
        await self.execute(
            f"DELETE FROM {self.table} WHERE {self.id_column} = ?;",
            (row_id,),
            operation=f"delete {self.label}",
        )
        logger.info("%s %s deleted", self.label.capitalize(), row_id)


class UserRepository(AsyncTableRepository):
    """Repository for Users table operations."""

    table = "Users"
    id_column = "UserId"
    label = "user"
    fields = {
        "name": "Name",
        "email": "Email",
        "password_hash": "PasswordHash",
        "fitness_level": "FitnessLevel",
        "goals": "Goals",
    }
    required = ("name",)

    async def create(self, payload: Dict[str, Any]) -> int:
        return await self._insert(
            payload, {"CreatedAt": datetime.datetime.now().isoformat()}
        )


class ExerciseRepository(AsyncTableRepository):
    """Repository for Exercises table operations."""

    table = "Exercises"
    id_column = "ExerciseId"
    label = "exercise"
    fields = {
        "name": "Name",
        "type": "Type",
        "targeted_body_parts": "TargetedBodyParts",
        "instructions": "Instructions",
        "video_url": "VideoUrl",
        "gif_url": "GifUrl",
    }
    required = ("name", "type")


class SetDetailRepository(AsyncTableRepository):
    """Repository for SetDetails table operations."""

    table = "SetDetails"
    id_column = "SetDetailId"
    label = "set detail"
    fields = {
        "min_reps": "MinReps",
        "max_reps": "MaxReps",
        "weight": "Weight",
        "amrap": "AMRAP",
        "paused": "Paused",
        "fast": "Fast",
        "forced": "Forced",
        "dropset": "Dropset",
    }
    required = ("min_reps", "max_reps", "weight")
    defaults = {
        "amrap": False,
        "paused": False,
        "fast": False,
        "forced": False,
        "dropset": False,
    }
    boolean_columns = ("AMRAP", "Paused", "Fast", "Forced", "Dropset")


class ExerciseDetailRepository(AsyncTableRepository):
    """Repository for ExerciseDetails table operations."""

    table = "ExerciseDetails"
    id_column = "ExerciseDetailId"
    label = "exercise detail"
    fields = {
        "exercise_id": "ExerciseId",
        "order": "Order",
        "set_detail_id": "SetDetails",
    }
    required = ("exercise_id", "order", "set_detail_id")

    async def fetch_for_exercise(self, exercise_id: int) -> List[Dict[str, Any]]:
        rows = await self.fetch_by("exercise_id", exercise_id)
        return sorted(rows, key=lambda r: r["Order"])


class WorkoutRepository(AsyncTableRepository):
    """Repository for Workouts table operations."""

    table = "Workouts"
    id_column = "WorkoutId"
    label = "workout"
    fields = {"user_id": "UserId", "name": "Name"}
    required = ("user_id", "name")

    async def fetch_for_user(self, user_id: int) -> List[Dict[str, Any]]:
        return await self.fetch_by("user_id", user_id)


class WorkoutPlanRepository(AsyncTableRepository):
    """Repository for WorkoutPlans table operations."""

    table = "WorkoutPlans"
    id_column = "WorkoutPlanId"
    label = "workout plan"
    fields = {"user_id": "UserId", "name": "Name", "description": "Description"}
    required = ("user_id", "name")
    defaults = {"description": ""}

    async def fetch_for_user(self, user_id: int) -> List[Dict[str, Any]]:
        return await self.fetch_by("user_id", user_id)


class CompletedExerciseRepository(AsyncTableRepository):
    """Repository for CompletedExercises table operations."""

    table = "CompletedExercises"
    id_column = "CompletedExerciseId"
    label = "completed exercise"
    fields = {"exercise_id": "ExerciseId", "order": "Order"}
    required = ("exercise_id", "order")

    async def fetch_for_exercise(self, exercise_id: int) -> List[Dict[str, Any]]:
        rows = await self.fetch_by("exercise_id", exercise_id)
        return sorted(rows, key=lambda r: r["Order"])


class WorkoutSessionRepository(AsyncTableRepository):
    """Repository for WorkoutSessions table operations."""

    table = "WorkoutSessions"
    id_column = "WorkoutSessionId"
    label = "workout session"
    fields = {
        "user_id": "UserId",
        "workout_plan_id": "WorkoutPlanId",
        "workout_id": "WorkoutId",
    }
    required = ("user_id", "workout_plan_id", "workout_id")

    async def fetch_for_user(self, user_id: int) -> List[Dict[str, Any]]:
        return await self.fetch_by("user_id", user_id)
