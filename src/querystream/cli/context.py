"""CLI context management for database connections and shared state."""

import logging
import os
import sys
from dataclasses import dataclass, field

from querystream.core.connection import DatabaseConnection

DEFAULT_DATABASE_URL = "sqlite:///./querystream.db"


def get_database_url(url: str | None) -> str:
    """Resolve database URL from CLI arg, environment variable, or default.

    Priority:
    1. Explicit URL argument
    2. QUERYSTREAM_URL environment variable
    3. Default: sqlite:///./querystream.db
    """
    if url:
        return url
    if env_url := os.getenv("QUERYSTREAM_URL"):
        return env_url
    return DEFAULT_DATABASE_URL


def configure_logging(verbose: bool) -> None:
    """Send library logs to stderr so stdout stays parseable."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@dataclass
class CLIContext:
    """Shared context for CLI commands.

    Manages the database connection lifecycle and output preferences.
    """

    database_url: str
    echo: bool
    json_output: bool
    _connection: DatabaseConnection | None = field(default=None, init=False, repr=False)

    def get_connection(self) -> DatabaseConnection:
        """Get or create the database connection (lazy initialization)."""
        if self._connection is None:
            self._connection = DatabaseConnection(self.database_url, echo=self.echo)
        return self._connection

    def close(self) -> None:
        """Close database connection if open."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None
