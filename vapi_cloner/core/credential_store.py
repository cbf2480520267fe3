"""
Encrypted credential storage.

One row per user holds the encrypted platform API key, an optional encrypted
web token, and the ids of the last cloned assistant and tool.
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional

from sqlalchemy import DateTime, String, Text, create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config.settings import get_settings
from . import crypto
from .exceptions.vapi_exceptions import CredentialStoreError
from .logging import get_logger
from .models import CredentialRecord

logger = get_logger(__name__)


class Base(DeclarativeBase):
    pass


class UserVapiKey(Base):
    __tablename__ = "user_vapi_keys"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    encrypted_api_key: Mapped[str] = mapped_column(Text, nullable=False)
    web_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    assistant_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    tool_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def to_record(self) -> CredentialRecord:
        return CredentialRecord(
            user_id=self.user_id,
            encrypted_api_key=self.encrypted_api_key,
            web_token=self.web_token,
            assistant_id=self.assistant_id,
            tool_id=self.tool_id,
            created_at=self.created_at,
            updated_at=self.updated_at
        )


def _build_engine(url: str) -> Engine:
    if url.startswith("postgres://"):
        url = "postgresql+psycopg://" + url[len("postgres://"):]

    kwargs = {"future": True, "pool_pre_ping": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection so every session sees the same in-memory database
            kwargs["poolclass"] = StaticPool
    return create_engine(url, **kwargs)


class CredentialStore:
    """SQLAlchemy-backed store for per-user platform credentials.

    Must be opened before use; ``with CredentialStore(...) as store:`` opens
    and closes it.
    """

    def __init__(self, database_url: Optional[str] = None, master_key: Optional[str] = None):
        settings = get_settings()
        self.database_url = database_url or settings.database_url
        self._master_key = master_key
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    def open(self) -> "CredentialStore":
        if self._engine is None:
            self._engine = _build_engine(self.database_url)
            Base.metadata.create_all(self._engine)
            self._session_factory = sessionmaker(
                bind=self._engine, autocommit=False, autoflush=False, expire_on_commit=False
            )
            logger.debug("Credential store opened")
        return self

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.debug("Credential store closed")

    def __enter__(self) -> "CredentialStore":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        if self._session_factory is None:
            raise CredentialStoreError("Credential store is not open")

        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Database error: %s", e)
            raise CredentialStoreError(f"Database error: {e}") from e
        finally:
            session.close()

    def _get_row(self, session: Session, user_id: str) -> Optional[UserVapiKey]:
        return session.execute(
            select(UserVapiKey).where(UserVapiKey.user_id == user_id)
        ).scalar_one_or_none()

    def _require_row(self, session: Session, user_id: str) -> UserVapiKey:
        row = self._get_row(session, user_id)
        if row is None:
            raise CredentialStoreError(f"No credentials linked for user: {user_id}")
        return row

    def save_api_key(self, user_id: str, api_key: str) -> None:
        """Encrypt and upsert the user's platform API key."""
        encrypted = crypto.encrypt(api_key, self._master_key)
        with self._session() as session:
            row = self._get_row(session, user_id)
            if row is None:
                session.add(UserVapiKey(user_id=user_id, encrypted_api_key=encrypted))
            else:
                row.encrypted_api_key = encrypted
        logger.info("API key saved for user: %s", user_id)

    def get_api_key(self, user_id: str) -> Optional[str]:
        """Return the decrypted API key, or None if the user has not linked one."""
        with self._session() as session:
            row = self._get_row(session, user_id)
            encrypted = row.encrypted_api_key if row is not None else None

        if not encrypted:
            logger.debug("No API key found for user: %s", user_id)
            return None
        return crypto.decrypt(encrypted, self._master_key)

    def save_web_token(self, user_id: str, web_token: str) -> None:
        encrypted = crypto.encrypt(web_token, self._master_key)
        with self._session() as session:
            self._require_row(session, user_id).web_token = encrypted
        logger.info("Web token saved for user: %s", user_id)

    def get_web_token(self, user_id: str) -> Optional[str]:
        with self._session() as session:
            row = self._get_row(session, user_id)
            encrypted = row.web_token if row is not None else None

        if not encrypted:
            return None
        return crypto.decrypt(encrypted, self._master_key)

    def save_cloned_resources(self, user_id: str, assistant_id: str, tool_id: str) -> None:
        with self._session() as session:
            row = self._require_row(session, user_id)
            row.assistant_id = assistant_id
            row.tool_id = tool_id
        logger.info("Cloned resources saved for user %s: assistant=%s, tool=%s", user_id, assistant_id, tool_id)

    def save_all(self, user_id: str, web_token: str, assistant_id: str, tool_id: str) -> None:
        """Store the web token and cloned ids in a single update."""
        encrypted = crypto.encrypt(web_token, self._master_key)
        with self._session() as session:
            row = self._require_row(session, user_id)
            row.web_token = encrypted
            row.assistant_id = assistant_id
            row.tool_id = tool_id
        logger.info("All credentials saved for user: %s", user_id)

    def get_record(self, user_id: str) -> Optional[CredentialRecord]:
        with self._session() as session:
            row = self._get_row(session, user_id)
            return row.to_record() if row is not None else None

    def delete(self, user_id: str) -> bool:
        """Remove the user's credentials; returns whether a row existed."""
        with self._session() as session:
            row = self._get_row(session, user_id)
            if row is None:
                return False
            session.delete(row)
        logger.info("Credentials deleted for user: %s", user_id)
        return True
