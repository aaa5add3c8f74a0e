# File: topgun/deploy/datastore.py
"""
Connection to the deployed system's backing database.

Opened eagerly once the deployment is up so scenarios can inspect tables
directly (schema ownership, client registrations, stored credentials).
"""

import logging
from typing import Any, Callable, List, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine

logger = logging.getLogger(__name__)


class DataStore:
    def __init__(self, url: str, engine_factory: Callable[..., Engine] = create_engine):
        self.url = url
        self.engine: Engine = engine_factory(url, pool_pre_ping=True)
        self._connection: Optional[Connection] = None

    @classmethod
    def open(cls, url: str) -> "DataStore":
        store = cls(url)
        store.connect()
        return store

    @property
    def connection(self) -> Connection:
        if self._connection is None or self._connection.closed:
            self.connect()
        return self._connection

    def connect(self) -> Connection:
        self._connection = self.engine.connect()
        logger.info(f"Connected to data store {self.engine.url!r}")
        return self._connection

    def scalar(self, sql: str, **params: Any) -> Any:
        return self.connection.execute(text(sql), params).scalar()

    def rows(self, sql: str, **params: Any) -> List[Any]:
        return list(self.connection.execute(text(sql), params))

    def close(self):
        if self._connection is not None:
            self._connection.close()
            self._connection = None
        self.engine.dispose()
