"""SQLite storage implementation."""

import asyncio
import json
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

import aiosqlite

from ..config import resolve_db_path
from ..models import (
    Bot,
    BotCommand,
    BotStatus,
    BotType,
    DeliveryOutcome,
    DeliveryRecord,
    Direction,
    KnowledgeEntry,
    Media,
    Update,
    User,
    WebhookConfig,
)

# Tables removed together with a bot, children first.
BOT_CASCADE_TABLES = [
    "bot_commands",
    "bot_messages",
    "bot_users",
    "bot_keyboards",
    "bot_callbacks",
    "bot_webhook_log",
    "bot_rate_limits",
]

BOT_EDITABLE_FIELDS = {
    "display_name",
    "description",
    "about",
    "category",
    "is_public",
    "can_join_groups",
    "status",
}

_UPDATE_COLUMNS = """
    id, bot_id, chat_id, chat_type, direction, text, media_type, media_url,
    reply_markup, command_name, command_args, callback_data, processed,
    created_at, processed_at
"""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class IStorage(Protocol):
    """Persistent storage for all bot relay data (SQLite)."""

    async def init(self) -> None:
        """Initialize database and create tables."""
        ...

    async def close(self) -> None:
        """Close database connection."""
        ...

    # Users / sessions
    async def save_user(self, user: User) -> None:
        """Save a platform user."""
        ...

    async def get_user(self, user_id: int) -> User | None:
        """Get a user by ID."""
        ...

    async def save_session(self, session_id: str, user_id: int) -> None:
        """Register an access token for a user."""
        ...

    async def get_session_user(self, session_id: str) -> int | None:
        """Resolve an access token to a user ID."""
        ...

    # Bots
    async def create_bot(self, bot: Bot) -> None:
        """Insert a new bot."""
        ...

    async def get_bot(self, bot_id: str) -> Bot | None:
        """Get a bot by ID."""
        ...

    async def get_bot_by_token(self, token: str) -> Bot | None:
        """Get a bot by its secret token."""
        ...

    async def get_bot_by_username(self, username: str) -> Bot | None:
        """Get a bot by username."""
        ...

    async def list_bots_by_owner(
        self, owner_id: int, limit: int = 20, offset: int = 0
    ) -> list[Bot]:
        """List bots owned by a user, newest first."""
        ...

    async def count_bots_by_owner(self, owner_id: int) -> int:
        """Count bots owned by a user."""
        ...

    async def search_bots(self, query: str, limit: int = 20, offset: int = 0) -> list[Bot]:
        """Search public active bots by username, name or description."""
        ...

    async def update_bot(self, bot_id: str, **fields) -> bool:
        """Update whitelisted bot fields."""
        ...

    async def set_bot_token(self, bot_id: str, token: str) -> None:
        """Replace a bot's token."""
        ...

    async def increment_bot_counter(self, bot_id: str, column: str, amount: int = 1) -> None:
        """Bump a bot statistics counter."""
        ...

    async def list_webhook_bots(self) -> list[Bot]:
        """Active bots with webhook delivery enabled."""
        ...

    async def save_webhook(self, bot_id: str, config: WebhookConfig) -> None:
        """Persist a bot's webhook configuration."""
        ...

    async def delete_bot_cascade(self, bot_id: str) -> None:
        """Remove a bot and every row that belongs to it."""
        ...

    # Commands
    async def replace_commands(self, bot_id: str, commands: list[BotCommand]) -> None:
        """Replace a bot's command list."""
        ...

    async def ensure_commands(self, bot_id: str, commands: list[BotCommand]) -> None:
        """Insert commands that do not exist yet."""
        ...

    async def get_commands(self, bot_id: str, include_hidden: bool = True) -> list[BotCommand]:
        """Get a bot's commands in display order."""
        ...

    # Update log
    async def append_update(self, update: Update) -> int:
        """Append an update, returning its ID."""
        ...

    async def get_update(self, bot_id: str, update_id: int) -> Update | None:
        """Get one update of a bot."""
        ...

    async def claim_updates(
        self,
        bot_id: str,
        direction: Direction,
        limit: int,
        since_id: int = 0,
    ) -> list[Update]:
        """Atomically select and mark processed up to `limit` updates."""
        ...

    async def claim_update(self, bot_id: str, update_id: int) -> bool:
        """Atomically mark one update processed; False if already taken."""
        ...

    async def count_pending(self, bot_id: str, direction: Direction) -> int:
        """Count unprocessed updates."""
        ...

    async def edit_update(
        self,
        bot_id: str,
        update_id: int,
        text: str | None = None,
        reply_markup: dict | None = None,
    ) -> bool:
        """Edit an outbound update's text or markup."""
        ...

    async def delete_update(self, bot_id: str, update_id: int) -> bool:
        """Delete an update."""
        ...

    # Delivery records
    async def save_delivery_record(self, record: DeliveryRecord) -> int:
        """Append a webhook delivery record."""
        ...

    async def get_delivery_records(
        self, bot_id: str, limit: int = 100, outcome: DeliveryOutcome | None = None
    ) -> list[DeliveryRecord]:
        """Get delivery records (newest first)."""
        ...

    # Bot users
    async def touch_bot_user(self, bot_id: str, user_id: int) -> bool:
        """Record an interaction; True when the user is new to the bot."""
        ...

    async def save_bot_user_state(
        self, bot_id: str, user_id: int, state: str | None, data: dict | None
    ) -> None:
        """Persist conversation state for a bot user."""
        ...

    async def get_bot_user_state(
        self, bot_id: str, user_id: int
    ) -> tuple[str | None, dict | None] | None:
        """Load conversation state for a bot user."""
        ...

    # Keyboards / callbacks / rate limits
    async def save_keyboard(self, bot_id: str, message_id: int, markup: dict) -> None:
        """Store the reply markup sent with a message."""
        ...

    async def save_callback(
        self, bot_id: str, user_id: int, update_id: int, callback_data: str
    ) -> None:
        """Record a button press."""
        ...

    async def hit_rate_limit(self, bot_id: str, window_start: int) -> int:
        """Count one hit in a rate-limit window, returning the total."""
        ...

    # Knowledge base
    async def upsert_knowledge(
        self, bot_id: str, keyword: str, response: str, user_id: int | None
    ) -> None:
        """Teach a keyword -> response pair."""
        ...

    async def find_knowledge(self, bot_id: str, tokens: list[str]) -> list[KnowledgeEntry]:
        """Entries whose keyword contains any token."""
        ...

    async def list_knowledge(self, bot_id: str, limit: int = 20) -> list[KnowledgeEntry]:
        """Newest knowledge entries."""
        ...

    async def delete_knowledge(self, bot_id: str, keyword: str) -> bool:
        """Forget a keyword."""
        ...

    # Leases
    async def try_acquire_lease(self, name: str, holder: str, ttl: float) -> bool:
        """Acquire or renew a named lease."""
        ...

    async def release_lease(self, name: str, holder: str) -> None:
        """Release a lease held by `holder`."""
        ...

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        ...


class Storage:
    """SQLite storage implementation."""

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            self._db_path = resolve_db_path()
        else:
            self._db_path = resolve_db_path(db_path)
        self._conn: aiosqlite.Connection | None = None
        # One connection is shared; transactions on it must not interleave
        self._write_lock = asyncio.Lock()

    async def init(self) -> None:
        """Initialize database and create tables."""
        self._conn = await aiosqlite.connect(self._db_path)
        self._conn.row_factory = aiosqlite.Row

        schema_path = Path(__file__).parent / "schema.sql"
        with open(schema_path, "r", encoding="utf-8") as f:
            schema_sql = f.read()
        await self._conn.executescript(schema_sql)
        await self._conn.commit()

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    @property
    def conn(self) -> aiosqlite.Connection:
        if not self._conn:
            raise RuntimeError("Storage not initialized")
        return self._conn

    @asynccontextmanager
    async def _write(self):
        """Hold the write lock for one transaction; commit on success, roll back on error."""
        async with self._write_lock:
            try:
                yield self.conn
                await self.conn.commit()
            except BaseException:
                await self.conn.rollback()
                raise

    # Users / sessions
    async def save_user(self, user: User) -> None:
        """Save a platform user."""
        async with self._write() as conn:
            await conn.execute(
                """
                INSERT OR REPLACE INTO users (user_id, username, first_name, last_name, avatar)
                VALUES (?, ?, ?, ?, ?)
                """,
                (user.user_id, user.username, user.first_name, user.last_name, user.avatar),
            )

    async def get_user(self, user_id: int) -> User | None:
        """Get a user by ID."""
        cursor = await self.conn.execute(
            """
            SELECT user_id, username, first_name, last_name, avatar
            FROM users
            WHERE user_id = ?
            """,
            (user_id,),
        )
        row = await cursor.fetchone()
        if not row:
            return None
        return User(
            user_id=row["user_id"],
            username=row["username"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            avatar=row["avatar"],
        )

    async def save_session(self, session_id: str, user_id: int) -> None:
        """Register an access token for a user."""
        async with self._write() as conn:
            await conn.execute(
                """
                INSERT OR REPLACE INTO sessions (session_id, user_id, created_at)
                VALUES (?, ?, ?)
                """,
                (session_id, user_id, _ts(_now())),
            )

    async def get_session_user(self, session_id: str) -> int | None:
        """Resolve an access token to a user ID."""
        cursor = await self.conn.execute(
            "SELECT user_id FROM sessions WHERE session_id = ?",
            (session_id,),
        )
        row = await cursor.fetchone()
        return row["user_id"] if row else None

    # Bots
    def _row_to_bot(self, row: aiosqlite.Row) -> Bot:
        allowed = row["webhook_allowed_updates"]
        return Bot(
            bot_id=row["bot_id"],
            owner_id=row["owner_id"],
            bot_token=row["bot_token"],
            username=row["username"],
            display_name=row["display_name"],
            description=row["description"],
            about=row["about"],
            category=row["category"],
            bot_type=BotType(row["bot_type"]),
            status=BotStatus(row["status"]),
            is_public=bool(row["is_public"]),
            can_join_groups=bool(row["can_join_groups"]),
            messages_sent=row["messages_sent"],
            messages_received=row["messages_received"],
            total_users=row["total_users"],
            webhook=WebhookConfig(
                url=row["webhook_url"],
                secret=row["webhook_secret"],
                enabled=bool(row["webhook_enabled"]),
                allowed_updates=json.loads(allowed) if allowed else None,
                max_connections=row["webhook_max_connections"],
            ),
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    async def create_bot(self, bot: Bot) -> None:
        """Insert a new bot."""
        now = _now()
        bot.created_at = bot.created_at or now
        bot.updated_at = bot.updated_at or now
        async with self._write() as conn:
            await conn.execute(
                """
                INSERT INTO bots (
                    bot_id, owner_id, bot_token, username, display_name, description,
                    about, category, bot_type, status, is_public, can_join_groups,
                    webhook_max_connections, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    bot.bot_id,
                    bot.owner_id,
                    bot.bot_token,
                    bot.username,
                    bot.display_name,
                    bot.description,
                    bot.about,
                    bot.category,
                    bot.bot_type.value,
                    bot.status.value,
                    int(bot.is_public),
                    int(bot.can_join_groups),
                    bot.webhook.max_connections,
                    _ts(bot.created_at),
                    _ts(bot.updated_at),
                ),
            )

    async def get_bot(self, bot_id: str) -> Bot | None:
        """Get a bot by ID."""
        cursor = await self.conn.execute("SELECT * FROM bots WHERE bot_id = ?", (bot_id,))
        row = await cursor.fetchone()
        return self._row_to_bot(row) if row else None

    async def get_bot_by_token(self, token: str) -> Bot | None:
        """Get a bot by its secret token."""
        cursor = await self.conn.execute("SELECT * FROM bots WHERE bot_token = ?", (token,))
        row = await cursor.fetchone()
        return self._row_to_bot(row) if row else None

    async def get_bot_by_username(self, username: str) -> Bot | None:
        """Get a bot by username (case-insensitive)."""
        cursor = await self.conn.execute(
            "SELECT * FROM bots WHERE lower(username) = lower(?)", (username,)
        )
        row = await cursor.fetchone()
        return self._row_to_bot(row) if row else None

    async def list_bots_by_owner(
        self, owner_id: int, limit: int = 20, offset: int = 0
    ) -> list[Bot]:
        """List bots owned by a user, newest first."""
        cursor = await self.conn.execute(
            """
            SELECT * FROM bots
            WHERE owner_id = ?
            ORDER BY created_at DESC, bot_id
            LIMIT ? OFFSET ?
            """,
            (owner_id, limit, offset),
        )
        return [self._row_to_bot(row) for row in await cursor.fetchall()]

    async def count_bots_by_owner(self, owner_id: int) -> int:
        """Count bots owned by a user."""
        cursor = await self.conn.execute(
            "SELECT COUNT(*) AS n FROM bots WHERE owner_id = ?", (owner_id,)
        )
        row = await cursor.fetchone()
        return row["n"]

    async def search_bots(self, query: str, limit: int = 20, offset: int = 0) -> list[Bot]:
        """Search public active bots by username, name or description."""
        pattern = f"%{query}%"
        cursor = await self.conn.execute(
            """
            SELECT * FROM bots
            WHERE is_public = 1 AND status = 'active'
              AND (username LIKE ? OR display_name LIKE ? OR description LIKE ?)
            ORDER BY total_users DESC, username
            LIMIT ? OFFSET ?
            """,
            (pattern, pattern, pattern, limit, offset),
        )
        return [self._row_to_bot(row) for row in await cursor.fetchall()]

    async def update_bot(self, bot_id: str, **fields) -> bool:
        """Update whitelisted bot fields."""
        unknown = set(fields) - BOT_EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not editable: {sorted(unknown)}")
        if not fields:
            return False

        assignments = []
        params: list = []
        for name, value in fields.items():
            assignments.append(f"{name} = ?")
            if isinstance(value, bool):
                value = int(value)
            elif name == "status":
                value = BotStatus(value).value
            params.append(value)
        assignments.append("updated_at = ?")
        params.append(_ts(_now()))
        params.append(bot_id)

        async with self._write() as conn:
            cursor = await conn.execute(
                f"UPDATE bots SET {', '.join(assignments)} WHERE bot_id = ?",
                params,
            )
        return cursor.rowcount > 0

    async def set_bot_token(self, bot_id: str, token: str) -> None:
        """Replace a bot's token."""
        async with self._write() as conn:
            await conn.execute(
                "UPDATE bots SET bot_token = ?, updated_at = ? WHERE bot_id = ?",
                (token, _ts(_now()), bot_id),
            )

    async def increment_bot_counter(self, bot_id: str, column: str, amount: int = 1) -> None:
        """Bump a bot statistics counter."""
        if column not in ("messages_sent", "messages_received", "total_users"):
            raise ValueError(f"Unknown counter: {column}")
        async with self._write() as conn:
            await conn.execute(
                f"UPDATE bots SET {column} = {column} + ? WHERE bot_id = ?",
                (amount, bot_id),
            )

    async def list_webhook_bots(self) -> list[Bot]:
        """Active bots with webhook delivery enabled."""
        cursor = await self.conn.execute(
            """
            SELECT * FROM bots
            WHERE webhook_enabled = 1 AND status = 'active'
              AND webhook_url IS NOT NULL AND webhook_url != ''
            ORDER BY bot_id
            """
        )
        return [self._row_to_bot(row) for row in await cursor.fetchall()]

    async def save_webhook(self, bot_id: str, config: WebhookConfig) -> None:
        """Persist a bot's webhook configuration."""
        async with self._write() as conn:
            await conn.execute(
                """
                UPDATE bots
                SET webhook_url = ?, webhook_secret = ?, webhook_enabled = ?,
                    webhook_allowed_updates = ?, webhook_max_connections = ?,
                    updated_at = ?
                WHERE bot_id = ?
                """,
                (
                    config.url,
                    config.secret,
                    int(config.enabled),
                    json.dumps(config.allowed_updates) if config.allowed_updates else None,
                    config.max_connections,
                    _ts(_now()),
                    bot_id,
                ),
            )

    async def delete_bot_cascade(self, bot_id: str) -> None:
        """Remove a bot and every row that belongs to it."""
        async with self._write() as conn:
            for table in BOT_CASCADE_TABLES:
                await conn.execute(f"DELETE FROM {table} WHERE bot_id = ?", (bot_id,))
            await conn.execute("DELETE FROM bots WHERE bot_id = ?", (bot_id,))

    # Commands
    async def replace_commands(self, bot_id: str, commands: list[BotCommand]) -> None:
        """Replace a bot's command list."""
        async with self._write() as conn:
            await conn.execute("DELETE FROM bot_commands WHERE bot_id = ?", (bot_id,))
            await conn.executemany(
                """
                INSERT INTO bot_commands
                (bot_id, command, description, usage_hint, scope, is_hidden, sort_order)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        bot_id,
                        cmd.command,
                        cmd.description,
                        cmd.usage_hint,
                        cmd.scope,
                        int(cmd.is_hidden),
                        cmd.sort_order,
                    )
                    for cmd in commands
                ],
            )

    async def ensure_commands(self, bot_id: str, commands: list[BotCommand]) -> None:
        """Insert commands that do not exist yet."""
        async with self._write() as conn:
            await conn.executemany(
                """
                INSERT OR IGNORE INTO bot_commands
                (bot_id, command, description, usage_hint, scope, is_hidden, sort_order)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        bot_id,
                        cmd.command,
                        cmd.description,
                        cmd.usage_hint,
                        cmd.scope,
                        int(cmd.is_hidden),
                        cmd.sort_order,
                    )
                    for cmd in commands
                ],
            )

    async def get_commands(self, bot_id: str, include_hidden: bool = True) -> list[BotCommand]:
        """Get a bot's commands in display order."""
        query = """
            SELECT command, description, usage_hint, scope, is_hidden, sort_order
            FROM bot_commands
            WHERE bot_id = ?
        """
        if not include_hidden:
            query += " AND is_hidden = 0"
        query += " ORDER BY sort_order ASC, id ASC"

        cursor = await self.conn.execute(query, (bot_id,))
        return [
            BotCommand(
                command=row["command"],
                description=row["description"],
                usage_hint=row["usage_hint"],
                scope=row["scope"],
                is_hidden=bool(row["is_hidden"]),
                sort_order=row["sort_order"],
            )
            for row in await cursor.fetchall()
        ]

    # Update log
    def _row_to_update(self, row: aiosqlite.Row) -> Update:
        media = None
        if row["media_type"]:
            media = Media(type=row["media_type"], url=row["media_url"] or "")
        return Update(
            id=row["id"],
            bot_id=row["bot_id"],
            chat_id=row["chat_id"],
            chat_type=row["chat_type"],
            direction=Direction(row["direction"]),
            text=row["text"],
            media=media,
            reply_markup=json.loads(row["reply_markup"]) if row["reply_markup"] else None,
            command_name=row["command_name"],
            command_args=row["command_args"],
            callback_data=row["callback_data"],
            processed=bool(row["processed"]),
            created_at=_parse_ts(row["created_at"]),
            processed_at=_parse_ts(row["processed_at"]),
        )

    async def append_update(self, update: Update) -> int:
        """Append an update, returning its ID."""
        update.created_at = update.created_at or _now()
        if update.processed and update.processed_at is None:
            update.processed_at = update.created_at

        async with self._write() as conn:
            cursor = await conn.execute(
                """
                INSERT INTO bot_messages (
                    bot_id, chat_id, chat_type, direction, text, media_type, media_url,
                    reply_markup, command_name, command_args, callback_data, processed,
                    created_at, processed_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    update.bot_id,
                    str(update.chat_id),
                    update.chat_type,
                    update.direction.value,
                    update.text,
                    update.media.type if update.media else None,
                    update.media.url if update.media else None,
                    json.dumps(update.reply_markup) if update.reply_markup else None,
                    update.command_name,
                    update.command_args,
                    update.callback_data,
                    int(update.processed),
                    _ts(update.created_at),
                    _ts(update.processed_at),
                ),
            )
        update.id = cursor.lastrowid
        return update.id

    async def get_update(self, bot_id: str, update_id: int) -> Update | None:
        """Get one update of a bot."""
        cursor = await self.conn.execute(
            f"SELECT {_UPDATE_COLUMNS} FROM bot_messages WHERE id = ? AND bot_id = ?",
            (update_id, bot_id),
        )
        row = await cursor.fetchone()
        return self._row_to_update(row) if row else None

    async def claim_updates(
        self,
        bot_id: str,
        direction: Direction,
        limit: int,
        since_id: int = 0,
    ) -> list[Update]:
        """Atomically select and mark processed up to `limit` updates.

        Selection and the processed flag flip happen in one UPDATE statement,
        so two callers can never both receive the same row.
        """
        async with self._write() as conn:
            rows = await conn.execute_fetchall(
                f"""
                UPDATE bot_messages
                SET processed = 1, processed_at = ?
                WHERE id IN (
                    SELECT id FROM bot_messages
                    WHERE bot_id = ? AND direction = ? AND processed = 0 AND id > ?
                    ORDER BY id ASC
                    LIMIT ?
                )
                AND processed = 0
                RETURNING {_UPDATE_COLUMNS}
                """,
                (_ts(_now()), bot_id, direction.value, since_id, limit),
            )
        # RETURNING order is unspecified
        return sorted((self._row_to_update(row) for row in rows), key=lambda u: u.id)

    async def claim_update(self, bot_id: str, update_id: int) -> bool:
        """Atomically mark one update processed; False if already taken."""
        async with self._write() as conn:
            cursor = await conn.execute(
                """
                UPDATE bot_messages
                SET processed = 1, processed_at = ?
                WHERE id = ? AND bot_id = ? AND processed = 0
                """,
                (_ts(_now()), update_id, bot_id),
            )
        return cursor.rowcount == 1

    async def count_pending(self, bot_id: str, direction: Direction) -> int:
        """Count unprocessed updates."""
        cursor = await self.conn.execute(
            """
            SELECT COUNT(*) AS n FROM bot_messages
            WHERE bot_id = ? AND direction = ? AND processed = 0
            """,
            (bot_id, direction.value),
        )
        row = await cursor.fetchone()
        return row["n"]

    async def edit_update(
        self,
        bot_id: str,
        update_id: int,
        text: str | None = None,
        reply_markup: dict | None = None,
    ) -> bool:
        """Edit an outbound update's text or markup."""
        assignments = []
        params: list = []
        if text is not None:
            assignments.append("text = ?")
            params.append(text)
        if reply_markup is not None:
            assignments.append("reply_markup = ?")
            params.append(json.dumps(reply_markup))
        if not assignments:
            return False
        params.extend([update_id, bot_id, Direction.OUTBOUND.value])

        async with self._write() as conn:
            cursor = await conn.execute(
                f"""
                UPDATE bot_messages SET {', '.join(assignments)}
                WHERE id = ? AND bot_id = ? AND direction = ?
                """,
                params,
            )
        return cursor.rowcount > 0

    async def delete_update(self, bot_id: str, update_id: int) -> bool:
        """Delete an update."""
        async with self._write() as conn:
            cursor = await conn.execute(
                "DELETE FROM bot_messages WHERE id = ? AND bot_id = ?",
                (update_id, bot_id),
            )
        return cursor.rowcount > 0

    # Delivery records
    async def save_delivery_record(self, record: DeliveryRecord) -> int:
        """Append a webhook delivery record."""
        async with self._write() as conn:
            cursor = await conn.execute(
                """
                INSERT INTO bot_webhook_log (
                    bot_id, update_id, event_type, payload, webhook_url, response_code,
                    response_body, delivery_status, attempts, delivered_at, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.bot_id,
                    record.update_id,
                    record.event_type,
                    record.payload,
                    record.webhook_url,
                    record.response_code,
                    record.response_body,
                    record.outcome.value,
                    record.attempts,
                    _ts(record.delivered_at),
                    _ts(record.created_at),
                ),
            )
        record.id = cursor.lastrowid
        return record.id

    async def get_delivery_records(
        self, bot_id: str, limit: int = 100, outcome: DeliveryOutcome | None = None
    ) -> list[DeliveryRecord]:
        """Get delivery records (newest first)."""
        conditions = ["bot_id = ?"]
        params: list = [bot_id]
        if outcome:
            conditions.append("delivery_status = ?")
            params.append(outcome.value)
        params.append(limit)

        cursor = await self.conn.execute(
            f"""
            SELECT * FROM bot_webhook_log
            WHERE {' AND '.join(conditions)}
            ORDER BY id DESC
            LIMIT ?
            """,
            params,
        )
        return [
            DeliveryRecord(
                id=row["id"],
                bot_id=row["bot_id"],
                update_id=row["update_id"],
                event_type=row["event_type"],
                payload=row["payload"],
                webhook_url=row["webhook_url"],
                response_code=row["response_code"],
                response_body=row["response_body"],
                outcome=DeliveryOutcome(row["delivery_status"]),
                attempts=row["attempts"],
                delivered_at=_parse_ts(row["delivered_at"]),
                created_at=_parse_ts(row["created_at"]),
            )
            for row in await cursor.fetchall()
        ]

    # Bot users
    async def touch_bot_user(self, bot_id: str, user_id: int) -> bool:
        """Record an interaction; True when the user is new to the bot."""
        now = _ts(_now())
        async with self._write() as conn:
            cursor = await conn.execute(
                """
                INSERT OR IGNORE INTO bot_users
                (bot_id, user_id, first_interaction_at, last_interaction_at)
                VALUES (?, ?, ?, ?)
                """,
                (bot_id, user_id, now, now),
            )
            created = cursor.rowcount == 1
            if not created:
                await conn.execute(
                    "UPDATE bot_users SET last_interaction_at = ? WHERE bot_id = ? AND user_id = ?",
                    (now, bot_id, user_id),
                )
        return created

    async def save_bot_user_state(
        self, bot_id: str, user_id: int, state: str | None, data: dict | None
    ) -> None:
        """Persist conversation state for a bot user."""
        now = _ts(_now())
        async with self._write() as conn:
            await conn.execute(
                """
                INSERT INTO bot_users
                (bot_id, user_id, state, state_data, first_interaction_at, last_interaction_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT (bot_id, user_id) DO UPDATE SET
                    state = excluded.state,
                    state_data = excluded.state_data
                """,
                (bot_id, user_id, state, json.dumps(data) if data is not None else None, now, now),
            )

    async def get_bot_user_state(
        self, bot_id: str, user_id: int
    ) -> tuple[str | None, dict | None] | None:
        """Load conversation state for a bot user."""
        cursor = await self.conn.execute(
            "SELECT state, state_data FROM bot_users WHERE bot_id = ? AND user_id = ?",
            (bot_id, user_id),
        )
        row = await cursor.fetchone()
        if not row:
            return None
        data = json.loads(row["state_data"]) if row["state_data"] else None
        return row["state"], data

    # Keyboards / callbacks / rate limits
    async def save_keyboard(self, bot_id: str, message_id: int, markup: dict) -> None:
        """Store the reply markup sent with a message."""
        async with self._write() as conn:
            await conn.execute(
                """
                INSERT INTO bot_keyboards (bot_id, message_id, markup, created_at)
                VALUES (?, ?, ?, ?)
                """,
                (bot_id, message_id, json.dumps(markup), _ts(_now())),
            )

    async def save_callback(
        self, bot_id: str, user_id: int, update_id: int, callback_data: str
    ) -> None:
        """Record a button press."""
        async with self._write() as conn:
            await conn.execute(
                """
                INSERT INTO bot_callbacks (bot_id, user_id, update_id, callback_data, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (bot_id, user_id, update_id, callback_data, _ts(_now())),
            )

    async def hit_rate_limit(self, bot_id: str, window_start: int) -> int:
        """Count one hit in a rate-limit window, returning the total."""
        async with self._write() as conn:
            rows = await conn.execute_fetchall(
                """
                INSERT INTO bot_rate_limits (bot_id, window_start, hits)
                VALUES (?, ?, 1)
                ON CONFLICT (bot_id, window_start) DO UPDATE SET hits = hits + 1
                RETURNING hits
                """,
                (bot_id, window_start),
            )
            # Older windows are never read again
            await conn.execute(
                "DELETE FROM bot_rate_limits WHERE bot_id = ? AND window_start < ?",
                (bot_id, window_start),
            )
        return rows[0]["hits"]

    # Knowledge base
    def _row_to_knowledge(self, row: aiosqlite.Row) -> KnowledgeEntry:
        return KnowledgeEntry(
            id=row["id"],
            bot_id=row["bot_id"],
            keyword=row["keyword"],
            response=row["response"],
            user_id=row["user_id"],
            created_at=_parse_ts(row["created_at"]),
            updated_at=_parse_ts(row["updated_at"]),
        )

    async def upsert_knowledge(
        self, bot_id: str, keyword: str, response: str, user_id: int | None
    ) -> None:
        """Teach a keyword -> response pair."""
        now = _ts(_now())
        async with self._write() as conn:
            await conn.execute(
                """
                INSERT INTO knowledge_entries
                (bot_id, keyword, response, user_id, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT (bot_id, keyword) DO UPDATE SET
                    response = excluded.response,
                    user_id = excluded.user_id,
                    updated_at = excluded.updated_at
                """,
                (bot_id, keyword, response, user_id, now, now),
            )

    async def find_knowledge(self, bot_id: str, tokens: list[str]) -> list[KnowledgeEntry]:
        """Entries whose keyword contains any token."""
        if not tokens:
            return []
        conditions = " OR ".join("instr(keyword, ?) > 0" for _ in tokens)
        cursor = await self.conn.execute(
            f"""
            SELECT * FROM knowledge_entries
            WHERE bot_id = ? AND ({conditions})
            """,
            [bot_id, *tokens],
        )
        return [self._row_to_knowledge(row) for row in await cursor.fetchall()]

    async def list_knowledge(self, bot_id: str, limit: int = 20) -> list[KnowledgeEntry]:
        """Newest knowledge entries."""
        cursor = await self.conn.execute(
            """
            SELECT * FROM knowledge_entries
            WHERE bot_id = ?
            ORDER BY created_at DESC, id DESC
            LIMIT ?
            """,
            (bot_id, limit),
        )
        return [self._row_to_knowledge(row) for row in await cursor.fetchall()]

    async def delete_knowledge(self, bot_id: str, keyword: str) -> bool:
        """Forget a keyword."""
        async with self._write() as conn:
            cursor = await conn.execute(
                "DELETE FROM knowledge_entries WHERE bot_id = ? AND keyword = ?",
                (bot_id, keyword),
            )
        return cursor.rowcount > 0

    # Leases
    async def try_acquire_lease(self, name: str, holder: str, ttl: float) -> bool:
        """Acquire or renew a named lease.

        Succeeds when the lease is free, expired, or already held by `holder`.
        """
        now = time.time()
        async with self._write() as conn:
            cursor = await conn.execute(
                """
                INSERT INTO scan_leases (name, holder, expires_at)
                VALUES (?, ?, ?)
                ON CONFLICT (name) DO UPDATE SET
                    holder = excluded.holder,
                    expires_at = excluded.expires_at
                WHERE scan_leases.holder = excluded.holder
                   OR scan_leases.expires_at < ?
                """,
                (name, holder, now + ttl, now),
            )
        return cursor.rowcount == 1

    async def release_lease(self, name: str, holder: str) -> None:
        """Release a lease held by `holder`."""
        async with self._write() as conn:
            await conn.execute(
                "DELETE FROM scan_leases WHERE name = ? AND holder = ?",
                (name, holder),
            )

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        tables = [
            *BOT_CASCADE_TABLES,
            "bots",
            "knowledge_entries",
            "sessions",
            "users",
            "scan_leases",
        ]

        async with self._write() as conn:
            for table in tables:
                await conn.execute(f"DELETE FROM {table}")
