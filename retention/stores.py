"""
Resolves store aliases used in the job catalog to connectors.

The local store is the engine the catalog lives in. A remote alias FOO is
resolved from the environment variable RETENTION_STORE_FOO_URL; job rows
never carry hostnames or credentials.
"""
import logging
import os
from typing import Dict, Iterable, Mapping, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import ArgumentError

from core.connectors import LocalConnector, RemoteConnector, StoreConnector
from core.errors import IdentifierError, StoreResolutionError
from core.identifiers import validate_identifier
from retention.database import engine as default_engine, make_engine

logger = logging.getLogger(__name__)

STORE_URL_ENV = "RETENTION_STORE_{alias}_URL"


class StoreRegistry:
    def __init__(self, local_engine: Optional[Engine] = None,
                 environ: Optional[Mapping[str, str]] = None,
                 engine_factory=make_engine):
        self.local = LocalConnector("local", local_engine or default_engine)
        self.environ = os.environ if environ is None else environ
        self.engine_factory = engine_factory
        self._remotes: Dict[str, RemoteConnector] = {}

    def resolve(self, alias: Optional[str]) -> StoreConnector:
        """Connector for `alias`; None means the local store."""
        if alias is None:
            return self.local
        try:
            validate_identifier(alias, "store alias")
        except IdentifierError as e:
            raise StoreResolutionError(str(e)) from e

        key = alias.upper()
        if key in self._remotes:
            return self._remotes[key]

        env_name = STORE_URL_ENV.format(alias=key)
        url = self.environ.get(env_name)
        if not url:
            raise StoreResolutionError(f"Store alias '{alias}' is not configured (set {env_name})")
        try:
            connector = RemoteConnector(alias, self.engine_factory(url))
        except (ArgumentError, ImportError) as e:
            raise StoreResolutionError(f"Store alias '{alias}' has an invalid URL: {e}") from e

        self._remotes[key] = connector
        logger.info(f"[STORES] Resolved remote store '{alias}' ({connector.engine.dialect.name})")
        return connector

    def resolve_all(self, aliases: Iterable[Optional[str]]):
        """Resolve every alias up front so a bad one fails the run before any job starts."""
        for alias in aliases:
            self.resolve(alias)

    def dispose(self):
        for connector in self._remotes.values():
            connector.dispose()
        self._remotes.clear()
