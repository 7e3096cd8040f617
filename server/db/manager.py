# Database connection and transaction management

import sqlite3
import logging
import os
import threading
from datetime import datetime
from typing import List, Dict, Any, Callable
from contextlib import contextmanager

from ordering.errors import OrderStateError

logger = logging.getLogger(__name__)

# per-order mutual exclusion for charges, refunds and ledger writes inside this process;
# a fixed set of striped locks, so unrelated orders may occasionally share one
ORDER_LOCK_STRIPES = 64
ORDER_LOCK_TIMEOUT_SECONDS = 30
_order_locks = [threading.Lock() for _ in range(ORDER_LOCK_STRIPES)]


@contextmanager
def order_lock(order_id: int, timeout: float = ORDER_LOCK_TIMEOUT_SECONDS):
    """
    Hold the lock for an order

    Raises:
        OrderStateError: another request kept the order busy longer than timeout
    """
    lock = _order_locks[order_id % ORDER_LOCK_STRIPES]
    if not lock.acquire(timeout=timeout):
        logger.warning(f"Timed out waiting for the lock on order {order_id}")
        raise OrderStateError("Order is being updated, please try again")
    try:
        yield
    finally:
        lock.release()


class DatabaseManager:
    """
    SQLite connection manager

    One manager per request; the sqlite write lock (BEGIN IMMEDIATE) serializes
    writers across managers and processes.
    """

    def __init__(self, db_path: str, auto_connect: bool = False, timeout: float = 10.0):
        """
        Args:
            db_path: database file path
            auto_connect: connect immediately
            timeout: seconds to wait for the sqlite write lock
        """
        self.db_path = db_path
        self.timeout = timeout
        self.conn = None
        self._is_connected = False
        self._in_managed_transaction = False
        self.logger = logging.getLogger(self.__class__.__name__)

        if auto_connect:
            self.connect()

    def connect(self) -> sqlite3.Connection:
        """
        Open the connection

        Raises:
            ConnectionError: the database cannot be opened
        """
        if self.conn is not None:
            self.close()

        db_dir = os.path.dirname(self.db_path)
        if db_dir and not os.path.exists(db_dir):
            os.makedirs(db_dir, exist_ok=True)
            self.logger.info(f"Created database directory: {db_dir}")

        try:
            self.conn = sqlite3.connect(self.db_path, timeout=self.timeout, check_same_thread=False)
        except sqlite3.Error as e:
            self.logger.error(f"Failed to connect to database: {str(e)}")
            raise ConnectionError(f"Cannot connect to database {self.db_path}: {str(e)}")

        self.conn.row_factory = sqlite3.Row
        self._is_connected = True
        self._configure_database()
        self.logger.debug(f"Connected to database: {self.db_path}")
        return self.conn

    def close(self):
        if self.conn is not None:
            try:
                self.conn.close()
            except sqlite3.Error as e:
                self.logger.error(f"Error while closing database connection: {str(e)}")
            finally:
                self.conn = None
                self._is_connected = False

    def _configure_database(self):
        pragmas = [
            "PRAGMA foreign_keys = ON",
            "PRAGMA journal_mode = WAL",
            "PRAGMA synchronous = NORMAL",
            f"PRAGMA busy_timeout = {int(self.timeout * 1000)}",
        ]
        for pragma in pragmas:
            self.conn.execute(pragma)

    def is_connected(self) -> bool:
        return self._is_connected and self.conn is not None

    def ensure_connected(self):
        if not self.is_connected():
            raise ConnectionError("Database is not connected, call connect() first")

    def execute_transaction(self, operations: List[Callable], immediate: bool = False) -> List[Any]:
        """
        Run operations in order inside one transaction

        Args:
            operations: callables, each returning its result
            immediate: take the sqlite write lock up front (BEGIN IMMEDIATE)

        Returns:
            list of operation results

        Raises:
            the original exception after rolling back
        """
        self.ensure_connected()

        if not operations:
            return []

        results = []
        transaction_id = datetime.now().strftime("%Y%m%d%H%M%S%f")

        with self.transaction(immediate=immediate):
            self.logger.debug(f"Transaction {transaction_id}: {len(operations)} operation(s)")
            for operation in operations:
                results.append(operation())

        self.logger.debug(f"Transaction {transaction_id} committed")
        return results

    def execute_single(self, query: str, params: List = None) -> sqlite3.Cursor:
        """
        Run one statement; DML/DDL outside a transaction is committed immediately
        """
        self.ensure_connected()

        try:
            result = self.conn.execute(query, params or [])
        except sqlite3.Error as e:
            self.logger.error(f"Query failed: {query[:100]}..., error: {str(e)}")
            raise

        if self.conn.in_transaction and not self._in_managed_transaction:
            self.conn.commit()
        return result

    def fetch_one(self, query: str, params: List = None) -> Dict[str, Any]:
        row = self.execute_single(query, params).fetchone()
        return dict(row) if row else None

    def fetch_all(self, query: str, params: List = None) -> List[Dict[str, Any]]:
        return [dict(row) for row in self.execute_single(query, params).fetchall()]

    @contextmanager
    def transaction(self, immediate: bool = False):
        """
        Transaction context manager

        Usage:
            with db_manager.transaction(immediate=True):
                db_manager.conn.execute("INSERT ...")
        """
        self.ensure_connected()

        if self._in_managed_transaction:
            # nested use joins the outer transaction
            yield self.conn
            return

        if self.conn.in_transaction:
            self.conn.commit()
        self.conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
        self._in_managed_transaction = True
        try:
            yield self.conn
        except BaseException as e:
            self.logger.debug(f"Rolling back transaction: {str(e)}")
            try:
                self.conn.rollback()
            except sqlite3.Error as rollback_error:
                self.logger.error(f"Rollback failed: {str(rollback_error)}")
            raise
        else:
            self.conn.commit()
        finally:
            self._in_managed_transaction = False

    def get_table_info(self, table_name: str) -> Dict[str, Any]:
        """
        Column list and row count of a table

        Raises:
            ValueError: the table does not exist
        """
        self.ensure_connected()

        columns_result = self.conn.execute(f"PRAGMA table_info('{table_name}')").fetchall()
        if not columns_result:
            raise ValueError(f"Table {table_name} does not exist")

        columns = [
            {
                'name': col[1],
                'type': col[2],
                'not_null': bool(col[3]),
                'default_value': col[4],
                'primary_key': bool(col[5])
            }
            for col in columns_result
        ]
        record_count = self.conn.execute(f"SELECT COUNT(*) FROM {table_name}").fetchone()[0]

        return {
            'table_name': table_name,
            'columns': columns,
            'record_count': record_count
        }

    def __enter__(self):
        if not self.is_connected():
            self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
