import logging
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import List, Optional, Union

from .models import Conversation, Message, Sender, normalize_timestamp, utcnow_iso

logger = logging.getLogger(__name__)

DEFAULT_DB_FILENAME = "chatbot.db"

PathLike = Union[str, Path]


class DatabaseError(Exception):
    """Base class for storage errors."""


class DatabaseInitError(DatabaseError):
    """Storage could not be set up; the process must not serve requests."""

    def __init__(self, path: Path, cause: Exception):
        self.path = path
        self.cause = cause
        super().__init__(f"Database initialization failed: {cause} (path: {path})")


class ConstraintViolationError(DatabaseError):
    """A write was rejected by a foreign key, check or uniqueness constraint."""


def default_database_path() -> Path:
    # chatbot/database/db.py -> project root, whatever the working directory is
    return Path(__file__).resolve().parents[2] / DEFAULT_DB_FILENAME


def resolve_database_path(configured: Optional[PathLike] = None) -> Path:
    if configured:
        return Path(configured)
    return default_database_path()


def ensure_parent_directory(path: Path) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise DatabaseInitError(path, e) from e


class Database:
    """Storage handle owning a single SQLite connection for its lifetime.

    Construct it once at startup and pass it to whatever needs storage.
    Opening enables WAL journaling and foreign key enforcement, then
    bootstraps the schema if it is missing.

    The connection may be used from several threads; writes are serialized
    so one thread's rollback never discards another's pending statements.
    """

    def __init__(self, db_path: Optional[PathLike] = None):
        self.db_path = resolve_database_path(db_path)
        self._lock = threading.RLock()
        ensure_parent_directory(self.db_path)
        self.connection = self._connect()
        try:
            self.init_schema()
        except sqlite3.Error as e:
            self.connection.close()
            raise DatabaseInitError(self.db_path, e) from e

    def _connect(self) -> sqlite3.Connection:
        logger.info(f"Opening database at {self.db_path}")
        conn = None
        try:
            conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode = WAL")
            # Off by default in SQLite, and scoped to the connection
            conn.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error as e:
            if conn is not None:
                conn.close()
            raise DatabaseInitError(self.db_path, e) from e
        return conn

    def init_schema(self):
        """Create tables and indexes if absent. Existing rows are untouched."""
        with self._lock:
            self._create_schema()

    def _create_schema(self):
        self.connection.executescript('''
            CREATE TABLE IF NOT EXISTS conversations (
                id TEXT PRIMARY KEY,
                createdAt TEXT NOT NULL,
                updatedAt TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS messages (
                id TEXT PRIMARY KEY,
                conversationId TEXT NOT NULL,
                sender TEXT NOT NULL CHECK(sender IN ('user', 'ai')),
                text TEXT NOT NULL,
                timestamp TEXT NOT NULL,
                FOREIGN KEY (conversationId) REFERENCES conversations(id) ON DELETE CASCADE
            );

            CREATE INDEX IF NOT EXISTS idx_messages_conversationId ON messages(conversationId);
            CREATE INDEX IF NOT EXISTS idx_messages_timestamp ON messages(timestamp);
        ''')

    @contextmanager
    def transaction(self):
        """Yield a cursor; commit on success, roll back on any error."""
        with self._lock:
            try:
                with self.connection:
                    yield self.connection.cursor()
            except sqlite3.IntegrityError as e:
                raise ConstraintViolationError(str(e)) from e

    def close(self):
        self.connection.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def create_conversation(
        self, conversation_id: Optional[str] = None, created_at: Optional[str] = None
    ) -> Conversation:
        now = normalize_timestamp(created_at) if created_at else utcnow_iso()
        conversation = Conversation(
            id=conversation_id or str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
        )
        with self.transaction() as c:
            c.execute('''
                INSERT INTO conversations (id, createdAt, updatedAt)
                VALUES (?, ?, ?)
            ''', (conversation.id, conversation.created_at, conversation.updated_at))
        return conversation

    def get_conversation(
        self, conversation_id: str, with_messages: bool = False
    ) -> Optional[Conversation]:
        with self._lock:
            row = self.connection.execute(
                'SELECT id, createdAt, updatedAt FROM conversations WHERE id = ?',
                (conversation_id,),
            ).fetchone()
        if not row:
            return None

        conversation = Conversation(
            id=row["id"], created_at=row["createdAt"], updated_at=row["updatedAt"]
        )
        if with_messages:
            conversation.messages = self.list_messages(conversation_id)
        return conversation

    def list_conversations(self) -> List[Conversation]:
        with self._lock:
            rows = self.connection.execute('''
                SELECT id, createdAt, updatedAt FROM conversations
                ORDER BY updatedAt DESC, rowid DESC
            ''').fetchall()
        return [
            Conversation(id=row["id"], created_at=row["createdAt"], updated_at=row["updatedAt"])
            for row in rows
        ]

    def add_message(
        self,
        conversation_id: str,
        sender: Union[Sender, str],
        text: str,
        message_id: Optional[str] = None,
        timestamp: Optional[str] = None,
    ) -> Message:
        """Insert a message and bump the conversation's updatedAt.

        Raises ValueError for an unknown sender or a timestamp that is not
        ISO-8601, and ConstraintViolationError when the conversation does
        not exist.
        """
        message = Message(
            id=message_id or str(uuid.uuid4()),
            conversation_id=conversation_id,
            sender=Sender(sender),
            text=text,
            timestamp=normalize_timestamp(timestamp) if timestamp else utcnow_iso(),
        )
        with self.transaction() as c:
            c.execute('''
                INSERT INTO messages (id, conversationId, sender, text, timestamp)
                VALUES (?, ?, ?, ?, ?)
            ''', (
                message.id,
                message.conversation_id,
                message.sender.value,
                message.text,
                message.timestamp,
            ))
            c.execute(
                'UPDATE conversations SET updatedAt = MAX(updatedAt, ?) WHERE id = ?',
                (message.timestamp, conversation_id),
            )
        return message

    def list_messages(
        self,
        conversation_id: str,
        limit: Optional[int] = None,
        before: Optional[str] = None,
    ) -> List[Message]:
        """Messages oldest first.

        `before` keeps only messages with an earlier timestamp; `limit` keeps
        the most recent `limit` of what remains.
        """
        if limit is not None and limit < 0:
            raise ValueError(f"limit must be non-negative, got {limit}")

        query = '''
            SELECT id, conversationId, sender, text, timestamp
            FROM messages
            WHERE conversationId = ?
        '''
        params: list = [conversation_id]
        if before is not None:
            query += ' AND timestamp < ?'
            params.append(normalize_timestamp(before))
        # LIMIT -1 is unbounded in SQLite
        query += ' ORDER BY timestamp DESC, rowid DESC LIMIT ?'
        params.append(-1 if limit is None else limit)

        with self._lock:
            rows = self.connection.execute(query, params).fetchall()
        return [
            Message(
                id=row["id"],
                conversation_id=row["conversationId"],
                sender=Sender(row["sender"]),
                text=row["text"],
                timestamp=row["timestamp"],
            )
            for row in reversed(rows)
        ]

    def delete_conversation(self, conversation_id: str) -> bool:
        """Delete a conversation and, through the cascade, all its messages."""
        with self.transaction() as c:
            c.execute('DELETE FROM conversations WHERE id = ?', (conversation_id,))
            deleted = c.rowcount > 0
        if deleted:
            logger.info(f"Deleted conversation {conversation_id}")
        return deleted
