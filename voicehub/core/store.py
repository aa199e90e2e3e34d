"""
Chat persistence layer.

Stores conversations, messages, provider credentials, user preferences,
usage rows and voice profiles in SQLite. Every public method is a
coroutine that runs its blocking sqlite work in the default executor
under a single lock.
"""

import asyncio
import os
import sqlite3
import threading
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from cryptography.fernet import Fernet, InvalidToken

from ..errors import ConfigurationError
from ..logging_config import get_logger
from .models import (
    Conversation,
    Message,
    ProviderCredential,
    UsageRecord,
    UserPreferences,
    VoiceProfile,
    parse_timestamp,
    utcnow,
)

logger = get_logger(__name__)


def _ts(value: Optional[datetime]) -> Optional[str]:
    # Fixed-width UTC form so lexical ORDER BY matches chronological order.
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


class CredentialCipher:
    """Fernet encryption for provider API keys at rest."""

    def __init__(self, key: Optional[str]):
        self._fernet = Fernet(key.encode()) if key else None
        if self._fernet is None:
            logger.warning("Credential encryption key not set; provider API keys will be stored in plain text")

    @property
    def enabled(self) -> bool:
        return self._fernet is not None

    def encrypt(self, api_key: str) -> str:
        if self._fernet:
            return self._fernet.encrypt(api_key.encode()).decode()
        return api_key

    def decrypt(self, stored: str) -> str:
        if not self._fernet:
            return stored
        try:
            return self._fernet.decrypt(stored.encode()).decode()
        except InvalidToken as exc:
            raise ConfigurationError("Stored provider credential cannot be decrypted with the configured key") from exc


class ChatStore:
    """SQLite-backed store for all persisted chat entities."""

    _CREATE_TABLES_SQL = [
        """
        CREATE TABLE IF NOT EXISTS conversations (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            title TEXT NOT NULL,
            system_prompt TEXT,
            llm_provider TEXT,
            llm_model TEXT,
            temperature INTEGER NOT NULL DEFAULT 70,
            is_archived INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            last_message_at TEXT
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS messages (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            conversation_id INTEGER NOT NULL,
            role TEXT NOT NULL,
            content TEXT NOT NULL,
            audio_url TEXT,
            token_count INTEGER,
            provider TEXT,
            model TEXT,
            created_at TEXT NOT NULL
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS provider_credentials (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            provider TEXT NOT NULL,
            api_key TEXT NOT NULL,
            is_active INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS user_preferences (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL UNIQUE,
            default_text_provider TEXT,
            default_text_model TEXT,
            default_stt_provider TEXT,
            default_stt_model TEXT,
            default_tts_provider TEXT,
            default_tts_voice TEXT,
            default_tts_model TEXT,
            vad_sensitivity INTEGER,
            silence_threshold_ms INTEGER,
            tts_speed INTEGER,
            auto_play_responses INTEGER,
            theme TEXT,
            language TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS usage_stats (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            date TEXT NOT NULL,
            provider TEXT NOT NULL,
            request_type TEXT NOT NULL,
            token_count INTEGER,
            audio_seconds INTEGER,
            request_count INTEGER NOT NULL DEFAULT 1
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS voice_profiles (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            name TEXT NOT NULL,
            provider TEXT NOT NULL,
            voice_id TEXT NOT NULL,
            sample_url TEXT,
            is_default INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL
        )
        """,
    ]

    _CREATE_INDEXES_SQL = [
        "CREATE INDEX IF NOT EXISTS idx_conversations_user ON conversations(user_id, is_archived, updated_at)",
        "CREATE INDEX IF NOT EXISTS idx_messages_conversation ON messages(conversation_id, created_at, id)",
        "CREATE INDEX IF NOT EXISTS idx_credentials_user_provider ON provider_credentials(user_id, provider, is_active)",
        "CREATE INDEX IF NOT EXISTS idx_usage_user_date ON usage_stats(user_id, date)",
        "CREATE INDEX IF NOT EXISTS idx_voice_profiles_user ON voice_profiles(user_id)",
    ]

    _PREFERENCE_FIELDS = (
        "default_text_provider",
        "default_text_model",
        "default_stt_provider",
        "default_stt_model",
        "default_tts_provider",
        "default_tts_voice",
        "default_tts_model",
        "vad_sensitivity",
        "silence_threshold_ms",
        "tts_speed",
        "auto_play_responses",
        "theme",
        "language",
    )

    _CONVERSATION_FIELDS = ("title", "system_prompt", "llm_provider", "llm_model", "temperature", "is_archived")

    def __init__(self, db_path: Optional[str] = None, *, encryption_key: Optional[str] = None):
        """
        Args:
            db_path: Path to the SQLite database file. Defaults to data/voicehub.db
            encryption_key: Fernet key for provider credentials at rest
        """
        self._db_path = db_path or os.getenv("VOICEHUB_DB_PATH", "data/voicehub.db")
        self._lock = threading.Lock()
        self._cipher = CredentialCipher(encryption_key)
        self._init_db()

    def _init_db(self) -> None:
        db_dir = os.path.dirname(self._db_path)
        if db_dir:
            Path(db_dir).mkdir(parents=True, exist_ok=True)
        with self._lock:
            conn = sqlite3.connect(self._db_path)
            try:
                cursor = conn.cursor()
                for table_sql in self._CREATE_TABLES_SQL:
                    cursor.execute(table_sql)
                for idx_sql in self._CREATE_INDEXES_SQL:
                    cursor.execute(idx_sql)
                conn.commit()
            finally:
                conn.close()
        logger.info("Chat database initialized", db_path=self._db_path)

    def _get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    async def _run(self, fn):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn)

    # Conversations -------------------------------------------------------------

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        def _create_sync():
            with self._lock:
                conn = self._get_connection()
                try:
                    cursor = conn.execute(
                        """
                        INSERT INTO conversations (
                            user_id, title, system_prompt, llm_provider, llm_model,
                            temperature, is_archived, created_at, updated_at, last_message_at
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            conversation.user_id,
                            conversation.title,
                            conversation.system_prompt,
                            conversation.llm_provider,
                            conversation.llm_model,
                            conversation.temperature,
                            1 if conversation.is_archived else 0,
                            _ts(conversation.created_at),
                            _ts(conversation.updated_at),
                            _ts(conversation.last_message_at),
                        ),
                    )
                    conn.commit()
                    return replace(conversation, id=cursor.lastrowid)
                finally:
                    conn.close()

        return await self._run(_create_sync)

    async def get_conversation(self, conversation_id: int) -> Optional[Conversation]:
        def _get_sync():
            with self._lock:
                conn = self._get_connection()
                try:
                    row = conn.execute("SELECT * FROM conversations WHERE id = ?", (conversation_id,)).fetchone()
                    return Conversation.from_dict(dict(row)) if row else None
                finally:
                    conn.close()

        return await self._run(_get_sync)

    async def list_conversations(self, user_id: str, *, include_archived: bool = False) -> List[Conversation]:
        """List a user's conversations, most recently updated first."""
        def _list_sync():
            with self._lock:
                conn = self._get_connection()
                try:
                    query = "SELECT * FROM conversations WHERE user_id = ?"
                    if not include_archived:
                        query += " AND is_archived = 0"
                    query += " ORDER BY updated_at DESC, id DESC"
                    rows = conn.execute(query, (user_id,)).fetchall()
                    return [Conversation.from_dict(dict(r)) for r in rows]
                finally:
                    conn.close()

        return await self._run(_list_sync)

    async def update_conversation(self, conversation_id: int, **fields: Any) -> Optional[Conversation]:
        updates = {k: v for k, v in fields.items() if k in self._CONVERSATION_FIELDS}
        if "is_archived" in updates:
            updates["is_archived"] = 1 if updates["is_archived"] else 0

        def _update_sync():
            with self._lock:
                conn = self._get_connection()
                try:
                    assignments = [f"{name} = ?" for name in updates]
                    assignments.append("updated_at = ?")
                    params = list(updates.values()) + [_ts(utcnow()), conversation_id]
                    conn.execute(f"UPDATE conversations SET {', '.join(assignments)} WHERE id = ?", params)
                    conn.commit()
                    row = conn.execute("SELECT * FROM conversations WHERE id = ?", (conversation_id,)).fetchone()
                    return Conversation.from_dict(dict(row)) if row else None
                finally:
                    conn.close()

        return await self._run(_update_sync)

    # Messages ------------------------------------------------------------------

    async def create_message(self, message: Message) -> Message:
        """Insert a message and bump the conversation's updated/last-message timestamps."""
        def _create_sync():
            with self._lock:
                conn = self._get_connection()
                try:
                    created = _ts(message.created_at)
                    cursor = conn.execute(
                        """
                        INSERT INTO messages (
                            conversation_id, role, content, audio_url, token_count, provider, model, created_at
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            message.conversation_id,
                            message.role,
                            message.content,
                            message.audio_url,
                            message.token_count,
                            message.provider,
                            message.model,
                            created,
                        ),
                    )
                    conn.execute(
                        "UPDATE conversations SET last_message_at = ?, updated_at = ? WHERE id = ?",
                        (created, created, message.conversation_id),
                    )
                    conn.commit()
                    return replace(message, id=cursor.lastrowid)
                finally:
                    conn.close()

        return await self._run(_create_sync)

    async def get_message(self, message_id: int) -> Optional[Message]:
        def _get_sync():
            with self._lock:
                conn = self._get_connection()
                try:
                    row = conn.execute("SELECT * FROM messages WHERE id = ?", (message_id,)).fetchone()
                    return Message.from_dict(dict(row)) if row else None
                finally:
                    conn.close()

        return await self._run(_get_sync)

    async def list_messages(self, conversation_id: int) -> List[Message]:
        """Messages in creation order; the row id breaks timestamp ties."""
        def _list_sync():
            with self._lock:
                conn = self._get_connection()
                try:
                    rows = conn.execute(
                        "SELECT * FROM messages WHERE conversation_id = ? ORDER BY created_at ASC, id ASC",
                        (conversation_id,),
                    ).fetchall()
                    return [Message.from_dict(dict(r)) for r in rows]
                finally:
                    conn.close()

        return await self._run(_list_sync)

    async def delete_message(self, message_id: int) -> bool:
        def _delete_sync():
            with self._lock:
                conn = self._get_connection()
                try:
                    cursor = conn.execute("DELETE FROM messages WHERE id = ?", (message_id,))
                    conn.commit()
                    return cursor.rowcount > 0
                finally:
                    conn.close()

        return await self._run(_delete_sync)

    # Provider credentials ------------------------------------------------------

    def _credential_from_row(self, row: sqlite3.Row) -> ProviderCredential:
        return ProviderCredential(
            id=row["id"],
            user_id=row["user_id"],
            provider=row["provider"],
            api_key=self._cipher.decrypt(row["api_key"]),
            is_active=bool(row["is_active"]),
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
        )

    async def create_credential(self, credential: ProviderCredential) -> ProviderCredential:
        encrypted = self._cipher.encrypt(credential.api_key)

        def _create_sync():
            with self._lock:
                conn = self._get_connection()
                try:
                    cursor = conn.execute(
                        """
                        INSERT INTO provider_credentials (user_id, provider, api_key, is_active, created_at, updated_at)
                        VALUES (?, ?, ?, ?, ?, ?)
                        """,
                        (
                            credential.user_id,
                            credential.provider,
                            encrypted,
                            1 if credential.is_active else 0,
                            _ts(credential.created_at),
                            _ts(credential.updated_at),
                        ),
                    )
                    conn.commit()
                    return replace(credential, id=cursor.lastrowid)
                finally:
                    conn.close()

        credential = await self._run(_create_sync)
        logger.info("Provider credential stored", user_id=credential.user_id, provider=credential.provider)
        return credential

    async def get_credential(self, credential_id: int) -> Optional[ProviderCredential]:
        def _get_sync():
            with self._lock:
                conn = self._get_connection()
                try:
                    row = conn.execute("SELECT * FROM provider_credentials WHERE id = ?", (credential_id,)).fetchone()
                    return self._credential_from_row(row) if row else None
                finally:
                    conn.close()

        return await self._run(_get_sync)

    async def update_credential(
        self, credential_id: int, *, api_key: Optional[str] = None, is_active: Optional[bool] = None
    ) -> Optional[ProviderCredential]:
        assignments: List[str] = []
        params: List[Any] = []
        if api_key is not None:
            assignments.append("api_key = ?")
            params.append(self._cipher.encrypt(api_key))
        if is_active is not None:
            assignments.append("is_active = ?")
            params.append(1 if is_active else 0)
        assignments.append("updated_at = ?")
        params.extend([_ts(utcnow()), credential_id])

        def _update_sync():
            with self._lock:
                conn = self._get_connection()
                try:
                    conn.execute(f"UPDATE provider_credentials SET {', '.join(assignments)} WHERE id = ?", params)
                    conn.commit()
                    row = conn.execute("SELECT * FROM provider_credentials WHERE id = ?", (credential_id,)).fetchone()
                    return self._credential_from_row(row) if row else None
                finally:
                    conn.close()

        return await self._run(_update_sync)

    async def delete_credential(self, credential_id: int) -> bool:
        def _delete_sync():
            with self._lock:
                conn = self._get_connection()
                try:
                    cursor = conn.execute("DELETE FROM provider_credentials WHERE id = ?", (credential_id,))
                    conn.commit()
                    return cursor.rowcount > 0
                finally:
                    conn.close()

        return await self._run(_delete_sync)

    async def list_credentials(self, user_id: str) -> List[ProviderCredential]:
        def _list_sync():
            with self._lock:
                conn = self._get_connection()
                try:
                    rows = conn.execute(
                        "SELECT * FROM provider_credentials WHERE user_id = ? ORDER BY provider ASC, updated_at DESC",
                        (user_id,),
                    ).fetchall()
                    return [self._credential_from_row(r) for r in rows]
                finally:
                    conn.close()

        return await self._run(_list_sync)

    async def get_active_credential(self, user_id: str, provider: str) -> Optional[ProviderCredential]:
        """Return the most recently updated active credential for (user, provider)."""
        def _get_sync():
            with self._lock:
                conn = self._get_connection()
                try:
                    row = conn.execute(
                        """
                        SELECT * FROM provider_credentials
                        WHERE user_id = ? AND provider = ? AND is_active = 1
                        ORDER BY updated_at DESC, id DESC LIMIT 1
                        """,
                        (user_id, provider),
                    ).fetchone()
                    return self._credential_from_row(row) if row else None
                finally:
                    conn.close()

        return await self._run(_get_sync)

    # User preferences ----------------------------------------------------------

    async def get_preferences(self, user_id: str) -> Optional[UserPreferences]:
        def _get_sync():
            with self._lock:
                conn = self._get_connection()
                try:
                    row = conn.execute("SELECT * FROM user_preferences WHERE user_id = ?", (user_id,)).fetchone()
                    return UserPreferences.from_dict(dict(row)) if row else None
                finally:
                    conn.close()

        return await self._run(_get_sync)

    async def get_or_create_preferences(self, user_id: str) -> UserPreferences:
        """Return the user's preferences, inserting the defaults on first access."""
        defaults = UserPreferences(user_id=user_id)

        def _get_or_create_sync():
            with self._lock:
                conn = self._get_connection()
                try:
                    columns = ("user_id",) + self._PREFERENCE_FIELDS + ("created_at", "updated_at")
                    values = [user_id] + [self._preference_value(defaults, f) for f in self._PREFERENCE_FIELDS]
                    values += [_ts(defaults.created_at), _ts(defaults.updated_at)]
                    conn.execute(
                        f"INSERT OR IGNORE INTO user_preferences ({', '.join(columns)}) "
                        f"VALUES ({', '.join('?' for _ in columns)})",
                        values,
                    )
                    conn.commit()
                    row = conn.execute("SELECT * FROM user_preferences WHERE user_id = ?", (user_id,)).fetchone()
                    return UserPreferences.from_dict(dict(row))
                finally:
                    conn.close()

        return await self._run(_get_or_create_sync)

    @staticmethod
    def _preference_value(prefs: UserPreferences, name: str) -> Any:
        value = getattr(prefs, name)
        if isinstance(value, bool):
            return 1 if value else 0
        return value

    async def update_preferences(self, user_id: str, **fields: Any) -> UserPreferences:
        await self.get_or_create_preferences(user_id)
        updates = {k: v for k, v in fields.items() if k in self._PREFERENCE_FIELDS and v is not None}
        for key, value in list(updates.items()):
            if isinstance(value, bool):
                updates[key] = 1 if value else 0

        def _update_sync():
            with self._lock:
                conn = self._get_connection()
                try:
                    assignments = [f"{name} = ?" for name in updates] + ["updated_at = ?"]
                    params = list(updates.values()) + [_ts(utcnow()), user_id]
                    conn.execute(f"UPDATE user_preferences SET {', '.join(assignments)} WHERE user_id = ?", params)
                    conn.commit()
                    row = conn.execute("SELECT * FROM user_preferences WHERE user_id = ?", (user_id,)).fetchone()
                    return UserPreferences.from_dict(dict(row))
                finally:
                    conn.close()

        return await self._run(_update_sync)

    # Usage ---------------------------------------------------------------------

    async def record_usage(self, record: UsageRecord) -> UsageRecord:
        def _record_sync():
            with self._lock:
                conn = self._get_connection()
                try:
                    cursor = conn.execute(
                        """
                        INSERT INTO usage_stats (user_id, date, provider, request_type, token_count, audio_seconds, request_count)
                        VALUES (?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            record.user_id,
                            _ts(record.date),
                            record.provider,
                            record.request_type,
                            record.token_count,
                            record.audio_seconds,
                            record.request_count,
                        ),
                    )
                    conn.commit()
                    return replace(record, id=cursor.lastrowid)
                finally:
                    conn.close()

        return await self._run(_record_sync)

    async def list_usage(
        self, user_id: str, *, since: Optional[datetime] = None, until: Optional[datetime] = None
    ) -> List[UsageRecord]:
        def _list_sync():
            with self._lock:
                conn = self._get_connection()
                try:
                    query = "SELECT * FROM usage_stats WHERE user_id = ?"
                    params: List[Any] = [user_id]
                    if since is not None:
                        query += " AND date >= ?"
                        params.append(_ts(since))
                    if until is not None:
                        query += " AND date <= ?"
                        params.append(_ts(until))
                    query += " ORDER BY date ASC, id ASC"
                    rows = conn.execute(query, params).fetchall()
                    return [
                        UsageRecord(
                            id=r["id"],
                            user_id=r["user_id"],
                            date=parse_timestamp(r["date"]),
                            provider=r["provider"],
                            request_type=r["request_type"],
                            token_count=r["token_count"],
                            audio_seconds=r["audio_seconds"],
                            request_count=r["request_count"],
                        )
                        for r in rows
                    ]
                finally:
                    conn.close()

        return await self._run(_list_sync)

    # Voice profiles ------------------------------------------------------------

    async def create_voice_profile(self, profile: VoiceProfile) -> VoiceProfile:
        """Insert a profile; a new default clears the user's other defaults."""
        def _create_sync():
            with self._lock:
                conn = self._get_connection()
                try:
                    if profile.is_default:
                        conn.execute("UPDATE voice_profiles SET is_default = 0 WHERE user_id = ?", (profile.user_id,))
                    cursor = conn.execute(
                        """
                        INSERT INTO voice_profiles (user_id, name, provider, voice_id, sample_url, is_default, created_at)
                        VALUES (?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            profile.user_id,
                            profile.name,
                            profile.provider,
                            profile.voice_id,
                            profile.sample_url,
                            1 if profile.is_default else 0,
                            _ts(profile.created_at),
                        ),
                    )
                    conn.commit()
                    return replace(profile, id=cursor.lastrowid)
                finally:
                    conn.close()

        return await self._run(_create_sync)

    async def list_voice_profiles(self, user_id: str) -> List[VoiceProfile]:
        def _list_sync():
            with self._lock:
                conn = self._get_connection()
                try:
                    rows = conn.execute(
                        "SELECT * FROM voice_profiles WHERE user_id = ? ORDER BY is_default DESC, created_at ASC, id ASC",
                        (user_id,),
                    ).fetchall()
                    return [
                        VoiceProfile(
                            id=r["id"],
                            user_id=r["user_id"],
                            name=r["name"],
                            provider=r["provider"],
                            voice_id=r["voice_id"],
                            sample_url=r["sample_url"],
                            is_default=bool(r["is_default"]),
                            created_at=parse_timestamp(r["created_at"]),
                        )
                        for r in rows
                    ]
                finally:
                    conn.close()

        return await self._run(_list_sync)

    async def delete_voice_profile(self, profile_id: int, user_id: str) -> bool:
        def _delete_sync():
            with self._lock:
                conn = self._get_connection()
                try:
                    cursor = conn.execute(
                        "DELETE FROM voice_profiles WHERE id = ? AND user_id = ?", (profile_id, user_id)
                    )
                    conn.commit()
                    return cursor.rowcount > 0
                finally:
                    conn.close()

        return await self._run(_delete_sync)

