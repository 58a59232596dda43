"""SQLAlchemy + SQLite persistence for the versioned AppState blob.

The whole AppState is stored as one JSON document under a fixed key, so a
save is a single upsert and a load is a single primary-key lookup.
"""

import os
from datetime import datetime, timezone
from pathlib import Path

import structlog
from pydantic import ValidationError
from sqlalchemy import Column, DateTime, Integer, String, Text, create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from frontend.core.errors import PersistenceError
from frontend.core.models import STATE_VERSION, AppState

logger = structlog.get_logger(__name__)

Base = declarative_base()

STATE_KEY = "minichat-app-state"
DEFAULT_MAX_BYTES = int(os.environ.get("STATE_MAX_BYTES", str(5 * 1024 * 1024)))


class StateRow(Base):
    """The persisted blob: one row per state key."""
    __tablename__ = "app_state"

    key = Column(String, primary_key=True)
    version = Column(Integer, nullable=False)
    payload = Column(Text, nullable=False)  # AppState JSON
    updated_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))


class StateStorage:
    """Loads and saves AppState for the conversation store."""

    def __init__(self, database_url: str | None = None, max_bytes: int | None = None):
        """Create the engine and tables.

        Args:
            database_url: SQLAlchemy connection string. Defaults to DATABASE_URL env var.
            max_bytes: Largest payload accepted by save(); bigger states are refused
                as if the store were out of quota.
        """
        url = database_url or os.environ.get("DATABASE_URL", "sqlite:///data/minichat.sqlite")
        _ensure_sqlite_dir(url)

        self.max_bytes = DEFAULT_MAX_BYTES if max_bytes is None else max_bytes
        self._engine = create_engine(url, echo=False)
        self._session_factory = sessionmaker(bind=self._engine)

        Base.metadata.create_all(self._engine)
        logger.info("storage.initialized", url=url.split("///")[0] + "///***")

    def load(self) -> AppState | None:
        """Read the persisted state.

        Returns:
            The stored AppState, or None if nothing usable is stored. A blob
            that fails to parse is deleted and treated as absent.
        """
        try:
            with self._session_factory() as session:
                row = session.get(StateRow, STATE_KEY)
                payload = row.payload if row is not None else None
        except SQLAlchemyError as e:
            logger.error("storage.load_failed", error=str(e))
            return None

        if payload is None:
            return None

        try:
            state = AppState.model_validate_json(payload)
        except ValidationError as e:
            logger.error("storage.corrupt_state_discarded", error=str(e))
            try:
                self.clear()
            except PersistenceError:
                # Already logged by clear(); the next save overwrites the blob anyway
                logger.warning("storage.corrupt_state_kept")
            return None

        if state.version != STATE_VERSION:
            # No migrations yet: accept the blob as-is
            logger.warning("storage.version_mismatch", expected=STATE_VERSION, found=state.version)

        logger.debug("storage.loaded", conversations=len(state.conversations))
        return state

    def save(self, state: AppState) -> None:
        """Replace the persisted state.

        Raises:
            PersistenceError: If the payload exceeds max_bytes or the write fails.
        """
        payload = state.model_dump_json()
        size = len(payload.encode("utf-8"))
        if size > self.max_bytes:
            logger.error("storage.quota_exceeded", size=size, max_bytes=self.max_bytes)
            raise PersistenceError("Storage quota exceeded. Please delete old conversations.")

        try:
            with self._session_factory() as session:
                session.merge(StateRow(
                    key=STATE_KEY,
                    version=state.version,
                    payload=payload,
                    updated_at=datetime.now(timezone.utc),
                ))
                session.commit()
        except SQLAlchemyError as e:
            logger.error("storage.save_failed", error=str(e))
            raise PersistenceError(f"Failed to save conversations: {e}") from e

        logger.debug("storage.saved", conversations=len(state.conversations), size=size)

    def clear(self) -> None:
        """Delete the persisted state."""
        try:
            with self._session_factory() as session:
                session.query(StateRow).filter(StateRow.key == STATE_KEY).delete()
                session.commit()
        except SQLAlchemyError as e:
            logger.error("storage.clear_failed", error=str(e))
            raise PersistenceError(f"Failed to clear conversations: {e}") from e
        logger.info("storage.cleared")


def _ensure_sqlite_dir(url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return
    database = parsed.database
    if database and database != ":memory:" and not database.startswith("file:"):
        Path(database).parent.mkdir(parents=True, exist_ok=True)
