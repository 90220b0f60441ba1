# logging_config.py

import logging
import sqlite3
from contextlib import closing, contextmanager
from datetime import datetime, timezone

MAX_LOG_ENTRIES = 10000  # Maximum number of log entries to keep
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class SQLiteHandler(logging.Handler):
    """
    Keeps the most recent log records in a SQLite table so deployment history
    survives restarts. Each record opens its own short-lived connection, so the
    handler is safe to share between the event loop and executor threads.
    """

    SCHEMA = (
        "CREATE TABLE IF NOT EXISTS logs ("
        " id INTEGER PRIMARY KEY AUTOINCREMENT,"
        " created TEXT NOT NULL,"
        " logger TEXT NOT NULL,"
        " level TEXT NOT NULL,"
        " message TEXT NOT NULL,"
        " exception TEXT)"
    )
    INSERT = "INSERT INTO logs (created, logger, level, message, exception) VALUES (?, ?, ?, ?, ?)"
    # AUTOINCREMENT ids only grow, so everything at or below MAX(id) - cap is older than the cap.
    PRUNE = "DELETE FROM logs WHERE id <= (SELECT MAX(id) FROM logs) - ?"

    def __init__(self, db_path: str, max_entries: int = MAX_LOG_ENTRIES):
        super().__init__()
        self.db_path = db_path
        self.max_entries = max_entries
        with self._transaction() as conn:
            conn.execute(self.SCHEMA)

    @contextmanager
    def _transaction(self):
        with closing(sqlite3.connect(self.db_path)) as conn:
            with conn:
                yield conn

    def _row(self, record: logging.LogRecord):
        exception = None
        if record.exc_info:
            exception = logging.Formatter().formatException(record.exc_info)
        created = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        return created, record.name, record.levelname, record.getMessage(), exception

    def emit(self, record):
        try:
            with self._transaction() as conn:
                conn.execute(self.INSERT, self._row(record))
                conn.execute(self.PRUNE, (self.max_entries,))
        except Exception:
            self.handleError(record)


def setup_logging(debug: bool = False, db_path: str = ""):
    """
    Configure the root logger with a console handler and, when db_path is set,
    a bounded SQLite handler. Calling it again does not add duplicate handlers.
    """
    logger = logging.getLogger()
    level = logging.DEBUG if debug else logging.INFO
    logger.setLevel(level)

    if getattr(logger, "_relay_configured", False):
        return logger

    # Console handler for real-time logs
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(console_handler)

    # SQLite handler for persistent logs
    if db_path:
        sqlite_handler = SQLiteHandler(db_path=db_path, max_entries=MAX_LOG_ENTRIES)
        sqlite_handler.setLevel(level)
        sqlite_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(sqlite_handler)

    logger._relay_configured = True
    return logger
