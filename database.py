"""
SQLite storage behind the record service.

Tables mirror the on-device store (userRoles -> user_roles,
classStudents -> class_students). Student descriptors are kept as JSON text.
"""

import json
import logging
import sqlite3
import threading
from pathlib import Path

from core.storage.errors import InvalidFilterError, InvalidRecordError, RecordConflictError, StoreError
from core.storage.filters import Table, coerce_filter

logger = logging.getLogger(__name__)

SCHEMA = '''
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        email TEXT UNIQUE,
        password TEXT,
        created_at TEXT
    );

    CREATE TABLE IF NOT EXISTS user_roles (
        id TEXT PRIMARY KEY,
        user_id TEXT,
        role TEXT,
        created_at TEXT
    );

    CREATE TABLE IF NOT EXISTS students (
        id TEXT PRIMARY KEY,
        user_id TEXT,
        name TEXT,
        usn TEXT,
        email TEXT,
        phone TEXT,
        branch TEXT,
        semester INTEGER,
        photo_url TEXT,
        descriptor TEXT,
        descriptor_computed_at TEXT,
        created_at TEXT
    );

    CREATE TABLE IF NOT EXISTS classes (
        id TEXT PRIMARY KEY,
        branch_name TEXT,
        section_name TEXT,
        academic_year TEXT,
        description TEXT,
        created_at TEXT,
        created_by TEXT
    );

    CREATE TABLE IF NOT EXISTS sessions (
        id TEXT PRIMARY KEY,
        title TEXT,
        class_id TEXT,
        start_at TEXT,
        duration_minutes INTEGER,
        status TEXT,
        notes TEXT,
        created_at TEXT,
        created_by TEXT,
        ended_at TEXT
    );

    CREATE TABLE IF NOT EXISTS attendance (
        id TEXT PRIMARY KEY,
        session_id TEXT,
        student_id TEXT,
        timestamp TEXT,
        method TEXT,
        confidence REAL,
        device_id TEXT,
        marked_by TEXT,
        marks INTEGER,
        created_at TEXT
    );

    CREATE TABLE IF NOT EXISTS class_students (
        id TEXT PRIMARY KEY,
        class_id TEXT,
        student_id TEXT,
        created_at TEXT,
        UNIQUE(class_id, student_id)
    );

    CREATE INDEX IF NOT EXISTS idx_users_email ON users(email);
    CREATE INDEX IF NOT EXISTS idx_students_usn ON students(usn);
    CREATE INDEX IF NOT EXISTS idx_students_email ON students(email);
    CREATE INDEX IF NOT EXISTS idx_attendance_session ON attendance(session_id);
    CREATE INDEX IF NOT EXISTS idx_attendance_student ON attendance(student_id);
    CREATE INDEX IF NOT EXISTS idx_sessions_status ON sessions(status);
    CREATE INDEX IF NOT EXISTS idx_class_students_class ON class_students(class_id);
    CREATE INDEX IF NOT EXISTS idx_class_students_student ON class_students(student_id);
'''

JSON_COLUMNS = {
    'students': ('descriptor',),
}


class RecordDatabase:
    def __init__(self, db_path='facexam.db'):
        self.db_path = str(db_path)
        self._lock = threading.RLock()
        self._columns = {}
        if self.db_path != ':memory:':
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        # One shared connection; access is serialized by self._lock
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self.init_database()

    def init_database(self):
        """Create tables and indexes, then apply upgrades to older databases."""
        with self._lock, self._conn:
            cursor = self._conn.cursor()
            cursor.executescript(SCHEMA)

            # Older databases predate these columns
            self._ensure_column(cursor, 'students', 'descriptor_computed_at', 'TEXT')
            self._ensure_column(cursor, 'sessions', 'ended_at', 'TEXT')
            self._ensure_column(cursor, 'attendance', 'marks', 'INTEGER')

            self._ensure_attendance_unique(cursor)

            for table in Table:
                cursor.execute(f"PRAGMA table_info({table.sql_name})")
                self._columns[table] = tuple(row[1] for row in cursor.fetchall())

        logger.info("Record database ready at %s", self.db_path)

    def _ensure_column(self, cursor, table_name, column_name, column_def):
        cursor.execute(f"PRAGMA table_info({table_name})")
        columns = [row[1] for row in cursor.fetchall()]
        if column_name in columns:
            return
        try:
            cursor.execute(f"ALTER TABLE {table_name} ADD COLUMN {column_name} {column_def}")
            logger.info("Added column %s.%s", table_name, column_name)
        except sqlite3.OperationalError as exc:
            logger.warning("Cannot add column %s.%s (%s): %s", table_name, column_name, column_def, exc)

    def _ensure_attendance_unique(self, cursor):
        """One attendance row per (session, student); older duplicates keep the earliest row."""
        cursor.execute('''
            DELETE FROM attendance
            WHERE session_id IS NOT NULL AND student_id IS NOT NULL
              AND rowid NOT IN (
                SELECT MIN(rowid) FROM attendance
                WHERE session_id IS NOT NULL AND student_id IS NOT NULL
                GROUP BY session_id, student_id
              )
        ''')
        if cursor.rowcount and cursor.rowcount > 0:
            logger.warning("Removed %d duplicate attendance rows", cursor.rowcount)
        cursor.execute('''
            CREATE UNIQUE INDEX IF NOT EXISTS idx_attendance_session_student
            ON attendance(session_id, student_id)
        ''')

    def close(self):
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------
    # Record operations
    # ------------------------------------------------------------------
    def select(self, table, filters=None):
        table = Table.parse(table)
        query = coerce_filter(filters)
        where, params = self._where(table, query.eq)
        sql = f"SELECT * FROM {table.sql_name}{where}"
        if query.order_by is not None:
            column = self._column(table, query.order_by.column, InvalidFilterError)
            sql += f" ORDER BY {column} {'ASC' if query.order_by.ascending else 'DESC'}"
        if query.limit is not None:
            sql += " LIMIT ?"
            params.append(query.limit)
        rows = self._execute(sql, params)
        return [self._decode(table, row) for row in rows]

    def select_single(self, table, filters=None):
        rows = self.select(table, coerce_filter(filters).limited(1))
        return rows[0] if rows else None

    def insert(self, table, data):
        """Upsert by id; a replaced row takes exactly the new record's values."""
        table = Table.parse(table)
        records = [data] if isinstance(data, dict) else list(data or [])
        if not records:
            return 0

        columns = self._columns[table]
        statements = []
        for record in records:
            if not isinstance(record, dict):
                raise InvalidRecordError(f"{table.value}: record must be an object")
            if not isinstance(record.get('id'), str) or not record['id']:
                raise InvalidRecordError(f"{table.value}: record is missing an 'id'")
            for key in record:
                self._column(table, key, InvalidRecordError)
            encoded = self._encode(table, record)
            statements.append([encoded.get(column) for column in columns])

        placeholders = ', '.join('?' for _ in columns)
        assignments = ', '.join(f"{column} = excluded.{column}" for column in columns if column != 'id')
        sql = (
            f"INSERT INTO {table.sql_name} ({', '.join(columns)}) VALUES ({placeholders}) "
            f"ON CONFLICT(id) DO UPDATE SET {assignments}"
        )
        with self._lock:
            try:
                with self._conn:
                    self._conn.executemany(sql, statements)
            except sqlite3.IntegrityError as exc:
                raise RecordConflictError(table.value, message=f"{table.value}: {exc}") from exc
            except sqlite3.Error as exc:
                raise StoreError(f"insert into {table.value} failed: {exc}") from exc
        return len(statements)

    def update(self, table, filters, fields):
        table = Table.parse(table)
        query = coerce_filter(filters).equality_only()
        if not isinstance(fields, dict):
            raise InvalidRecordError(f"{table.value}: updates must be an object")
        fields = dict(fields)
        if 'id' in fields:
            if query.eq.get('id') != fields['id']:
                raise InvalidRecordError(f"{table.value}: 'id' cannot be updated")
            fields.pop('id')
        if not fields:
            return 0
        for key in fields:
            self._column(table, key, InvalidRecordError)

        encoded = self._encode(table, fields)
        assignments = ', '.join(f"{key} = ?" for key in encoded)
        where, params = self._where(table, query.eq)
        sql = f"UPDATE {table.sql_name} SET {assignments}{where}"
        return self._execute(sql, list(encoded.values()) + params, write=True)

    def delete(self, table, filters):
        table = Table.parse(table)
        where, params = self._where(table, coerce_filter(filters).eq)
        return self._execute(f"DELETE FROM {table.sql_name}{where}", params, write=True)

    def count(self, table, filters=None):
        table = Table.parse(table)
        where, params = self._where(table, coerce_filter(filters).eq)
        row = self._execute(f"SELECT COUNT(*) FROM {table.sql_name}{where}", params)[0]
        return int(row[0])

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _execute(self, sql, params, write=False):
        """Run one statement; reads return all rows, writes return the changed row count."""
        with self._lock:
            try:
                if write:
                    with self._conn:
                        return self._conn.execute(sql, params).rowcount
                return self._conn.execute(sql, params).fetchall()
            except sqlite3.IntegrityError as exc:
                raise RecordConflictError('', message=str(exc)) from exc
            except sqlite3.Error as exc:
                raise StoreError(f"Database error: {exc}") from exc

    def _column(self, table, name, error_cls):
        if name not in self._columns[table]:
            raise error_cls(f"Unknown column {name!r} for table {table.value}")
        return name

    def _where(self, table, eq):
        if not eq:
            return '', []
        clauses = []
        params = []
        encoded = self._encode(table, eq)
        for key, value in encoded.items():
            self._column(table, key, InvalidFilterError)
            # IS also matches NULL
            clauses.append(f"{key} IS ?")
            params.append(value)
        return ' WHERE ' + ' AND '.join(clauses), params

    def _encode(self, table, record):
        json_columns = JSON_COLUMNS.get(table.sql_name, ())
        encoded = {}
        for key, value in record.items():
            if key in json_columns and value is not None:
                value = json.dumps(value)
            elif isinstance(value, bool):
                value = int(value)
            elif isinstance(value, (dict, list)):
                raise InvalidRecordError(f"{table.value}.{key}: nested values are not supported")
            encoded[key] = value
        return encoded

    def _decode(self, table, row):
        record = dict(row)
        for column in JSON_COLUMNS.get(table.sql_name, ()):
            raw = record.get(column)
            if isinstance(raw, str):
                try:
                    record[column] = json.loads(raw)
                except ValueError:
                    logger.warning("Unreadable %s.%s for %s", table.value, column, record.get('id'))
                    record[column] = None
        return record
