"""Bot management, bot operations and user -> bot ingress."""

import time
from dataclasses import asdict
from typing import Any, Awaitable, Callable

import httpx

from ..config import (
    BOT_SEND_RATE_LIMIT,
    MAX_BOTS_PER_OWNER,
    MAX_COMMANDS,
    WEBHOOK_MAX_CONNECTIONS,
    WEBHOOK_MAX_CONNECTIONS_CAP,
    env_int,
)
from ..errors import (
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    ValidationError,
)
from ..fanout import IFanoutBroadcaster
from ..logging_config import get_logger
from ..models import (
    Bot,
    BotCommand,
    BotStatus,
    BotType,
    DeliveryOutcome,
    Direction,
    Media,
    Update,
    WebhookConfig,
    parse_command,
)
from ..storage import IStorage
from ..updates import IUpdateLog
from .tokens import (
    generate_bot_id,
    generate_bot_token,
    generate_webhook_secret,
    is_valid_username,
    sanitize,
)

logger = get_logger(__name__)


InternalHandler = Callable[[Update], Awaitable[None]]

DEFAULT_COMMANDS = [
    BotCommand(command="start", description="Start working with the bot", sort_order=0),
    BotCommand(command="help", description="Commands and help", sort_order=1),
    BotCommand(command="cancel", description="Cancel the current action", sort_order=2),
]

# Fields owners may change through update_bot
UPDATABLE_FIELDS = (
    "display_name",
    "description",
    "about",
    "category",
    "is_public",
    "can_join_groups",
    "status",
)

RATE_LIMIT_WINDOW = 60


def _as_bool(field: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
    raise ValidationError(f"{field} must be a boolean", field=field)


def _as_user_id(value: Any, field: str = "user_id") -> int:
    if value is None or value == "":
        raise ValidationError(f"{field} required", field=field)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", field=field)


def _validate_webhook_url(url: str) -> str:
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL:
        raise ValidationError("Invalid URL", field="url")
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise ValidationError("Invalid URL", field="url")
    return url


class BotService:
    """Everything a bot owner or a bot token can do, on top of the update log."""

    def __init__(
        self,
        storage: IStorage,
        update_log: IUpdateLog,
        broadcaster: IFanoutBroadcaster,
        send_rate_limit: int | None = None,
    ):
        self._storage = storage
        self._update_log = update_log
        self._broadcaster = broadcaster
        if send_rate_limit is None:
            send_rate_limit = env_int("BOT_SEND_RATE_LIMIT", BOT_SEND_RATE_LIMIT)
        self._send_rate_limit = send_rate_limit
        self._internal_handlers: dict[str, InternalHandler] = {}

    # ------------------------------------------------------------------
    # Management (user token)
    # ------------------------------------------------------------------

    async def create_bot(
        self,
        owner_id: int,
        username: str | None,
        display_name: str | None,
        description: str = "",
        about: str = "",
        category: str = "general",
        is_public: Any = True,
        can_join_groups: Any = True,
    ) -> Bot:
        """Create a bot with a fresh token and the default commands."""
        if not username or not display_name:
            raise ValidationError("username and display_name are required")
        username = username.strip()
        if not is_valid_username(username):
            raise ValidationError(
                "Username must start with a letter, contain only letters, digits "
                "and underscores, and end with _bot",
                field="username",
            )
        if await self._storage.get_bot_by_username(username):
            raise ValidationError("Username is already taken", field="username")
        if await self._storage.count_bots_by_owner(owner_id) >= MAX_BOTS_PER_OWNER:
            raise ValidationError(f"At most {MAX_BOTS_PER_OWNER} bots per user")

        bot_id = generate_bot_id()
        bot = Bot(
            bot_id=bot_id,
            owner_id=owner_id,
            bot_token=generate_bot_token(bot_id),
            username=sanitize(username),
            display_name=sanitize(display_name.strip()),
            description=sanitize(description or ""),
            about=sanitize(about or ""),
            category=sanitize(category or "general"),
            is_public=_as_bool("is_public", is_public),
            can_join_groups=_as_bool("can_join_groups", can_join_groups),
        )
        await self._storage.create_bot(bot)
        await self._storage.ensure_commands(bot_id, DEFAULT_COMMANDS)

        logger.info(f"Created bot @{bot.username} ({bot_id}) for owner {owner_id}")
        return bot

    async def get_owned_bot(self, bot_id: str, owner_id: int) -> Bot:
        """The bot, if `owner_id` owns it."""
        bot = await self._storage.get_bot(bot_id)
        if bot is None:
            raise NotFoundError("Bot not found")
        if bot.owner_id != owner_id:
            raise PermissionDeniedError("Bot not found or access denied")
        return bot

    async def list_my_bots(self, owner_id: int, limit: int = 20, offset: int = 0) -> list[dict]:
        """Owner's bots with command counts."""
        limit = max(1, min(limit, 50))
        offset = max(0, offset)
        result = []
        for bot in await self._storage.list_bots_by_owner(owner_id, limit, offset):
            data = bot.to_public_dict()
            data["commands_count"] = len(await self._storage.get_commands(bot.bot_id))
            result.append(data)
        return result

    async def search_bots(self, query: str | None, limit: int = 20, offset: int = 0) -> list[dict]:
        """Public search by username, display name or description."""
        query = sanitize((query or "").strip())
        if not query:
            raise ValidationError("Query parameter q is required", field="q")
        limit = max(1, min(limit, 50))
        bots = await self._storage.search_bots(query, limit, max(0, offset))
        return [
            {
                "bot_id": bot.bot_id,
                "username": bot.username,
                "display_name": bot.display_name,
                "description": bot.description,
                "category": bot.category,
                "total_users": bot.total_users,
                "bot_type": bot.bot_type.value,
            }
            for bot in bots
        ]

    async def get_bot_info(self, bot_id: str, viewer_id: int | None = None) -> dict:
        """Public bot profile and visible commands; the owner also sees the token."""
        bot = await self._storage.get_bot(bot_id)
        if bot is None:
            raise NotFoundError("Bot not found")
        commands = await self._storage.get_commands(bot_id, include_hidden=False)
        return {
            "bot": bot.to_public_dict(include_token=viewer_id is not None and viewer_id == bot.owner_id),
            "commands": [asdict(cmd) for cmd in commands],
        }

    async def update_bot(self, bot_id: str, owner_id: int, fields: dict[str, Any]) -> Bot:
        """Change whitelisted profile fields."""
        await self.get_owned_bot(bot_id, owner_id)

        changes: dict[str, Any] = {}
        for name in UPDATABLE_FIELDS:
            if fields.get(name) is None:
                continue
            value = fields[name]
            if name in ("is_public", "can_join_groups"):
                changes[name] = _as_bool(name, value)
            elif name == "status":
                try:
                    changes[name] = BotStatus(str(value)).value
                except ValueError:
                    raise ValidationError("status must be active or disabled", field="status")
            else:
                changes[name] = sanitize(str(value))

        if changes:
            await self._storage.update_bot(bot_id, **changes)
        bot = await self._storage.get_bot(bot_id)
        return bot

    async def delete_bot(self, bot_id: str, owner_id: int) -> Bot:
        """Delete the bot and all of its rows."""
        bot = await self.get_owned_bot(bot_id, owner_id)
        if bot.bot_type == BotType.SYSTEM:
            raise PermissionDeniedError("System bots cannot be deleted")
        await self._storage.delete_bot_cascade(bot_id)
        logger.info(f"Deleted bot {bot_id} (@{bot.username}) by user {owner_id}")
        return bot

    async def regenerate_token(self, bot_id: str, owner_id: int) -> str:
        """Issue a new token; the old one stops working immediately."""
        await self.get_owned_bot(bot_id, owner_id)
        token = generate_bot_token(bot_id)
        await self._storage.set_bot_token(bot_id, token)
        logger.info(f"Regenerated token for bot {bot_id}")
        return token

    async def replace_commands(self, bot_id: str, commands: list[BotCommand]) -> None:
        await self._storage.replace_commands(bot_id, commands)

    # ------------------------------------------------------------------
    # Bot operations (bot token)
    # ------------------------------------------------------------------

    async def get_me(self, bot: Bot) -> dict:
        data = bot.to_public_dict()
        data.pop("owner_id", None)
        return data

    async def send_message(
        self,
        bot: Bot,
        chat_id: Any,
        text: str | None = None,
        media: dict | None = None,
        reply_markup: dict | None = None,
    ) -> Update:
        """Bot -> user message: persisted as a processed outbound update, then broadcast."""
        if chat_id is None or chat_id == "":
            raise ValidationError("chat_id required", field="chat_id")
        if not text and not media:
            raise ValidationError("text or media required", field="text")

        media_obj = None
        if media:
            if not isinstance(media, dict) or not media.get("type"):
                raise ValidationError("media must have a type", field="media")
            media_obj = Media(type=str(media["type"]), url=str(media.get("url") or ""))

        await self._check_rate_limit(bot)

        update = await self.post_outbound(
            bot.bot_id, str(chat_id), text, media=media_obj, reply_markup=reply_markup
        )
        if str(chat_id).isdigit():
            await self._touch_member(bot.bot_id, int(chat_id))
        return update

    async def post_outbound(
        self,
        bot_id: str,
        chat_id: str,
        text: str | None,
        media: Media | None = None,
        reply_markup: dict | None = None,
    ) -> Update:
        """Persist an outbound update, then fan it out."""
        update = Update(
            id=None,
            bot_id=bot_id,
            chat_id=str(chat_id),
            direction=Direction.OUTBOUND,
            text=text,
            media=media,
            reply_markup=reply_markup,
            processed=True,
        )
        await self._update_log.append(update)
        await self._storage.increment_bot_counter(bot_id, "messages_sent")
        if reply_markup:
            await self._storage.save_keyboard(bot_id, update.id, reply_markup)

        await self._broadcaster.message(update)
        return update

    async def edit_message(
        self,
        bot: Bot,
        chat_id: Any,
        message_id: Any,
        text: str | None = None,
        reply_markup: dict | None = None,
    ) -> None:
        if not chat_id or not message_id:
            raise ValidationError("chat_id and message_id required")
        message_id = _as_user_id(message_id, "message_id")
        if text is None and reply_markup is None:
            raise ValidationError("text or reply_markup required", field="text")
        if not await self._storage.edit_update(bot.bot_id, message_id, text, reply_markup):
            raise NotFoundError("Message not found")
        await self._broadcaster.message_edited(bot.bot_id, str(chat_id), message_id, text, reply_markup)

    async def delete_message(self, bot: Bot, chat_id: Any, message_id: Any) -> None:
        if not chat_id or not message_id:
            raise ValidationError("chat_id and message_id required")
        message_id = _as_user_id(message_id, "message_id")
        if not await self._storage.delete_update(bot.bot_id, message_id):
            raise NotFoundError("Message not found")
        await self._broadcaster.message_deleted(bot.bot_id, str(chat_id), message_id)

    async def answer_callback_query(
        self,
        bot: Bot,
        callback_query_id: Any,
        text: str = "",
        show_alert: bool = False,
        chat_id: Any = None,
    ) -> None:
        """Acknowledge a button press; the chat is looked up when not given."""
        if not callback_query_id:
            raise ValidationError("callback_query_id required", field="callback_query_id")

        target = str(chat_id) if chat_id else None
        if target is None and str(callback_query_id).isdigit():
            update = await self._storage.get_update(bot.bot_id, int(callback_query_id))
            target = update.chat_id if update else None

        if target:
            await self._broadcaster.callback_answered(
                bot.bot_id, target, str(callback_query_id), text or "", bool(show_alert)
            )

    async def set_commands(self, bot: Bot, commands: Any) -> int:
        """Replace the command list; entries without command or description are skipped."""
        if not isinstance(commands, list):
            raise ValidationError("commands must be a JSON array", field="commands")
        if len(commands) > MAX_COMMANDS:
            raise ValidationError(f"At most {MAX_COMMANDS} commands", field="commands")

        parsed = []
        for item in commands:
            if not isinstance(item, dict) or not item.get("command") or not item.get("description"):
                continue
            parsed.append(
                BotCommand(
                    command=sanitize(str(item["command"]).lstrip("/").lower()),
                    description=sanitize(str(item["description"])),
                    usage_hint=sanitize(str(item.get("usage_hint") or "")),
                    scope=sanitize(str(item.get("scope") or "all")),
                    is_hidden=bool(item.get("is_hidden")),
                    sort_order=len(parsed),
                )
            )

        await self._storage.replace_commands(bot.bot_id, parsed)
        return len(parsed)

    async def get_commands(self, bot: Bot) -> list[dict]:
        return [asdict(cmd) for cmd in await self._storage.get_commands(bot.bot_id)]

    async def set_webhook(
        self,
        bot: Bot,
        url: str | None,
        secret: str | None = None,
        max_connections: Any = None,
        allowed_updates: list[str] | None = None,
    ) -> WebhookConfig:
        """Enable push delivery; an empty URL removes the webhook."""
        if not url:
            config = WebhookConfig(max_connections=bot.webhook.max_connections)
            await self._storage.save_webhook(bot.bot_id, config)
            logger.info(f"Webhook removed for {bot.bot_id}")
            return config

        url = _validate_webhook_url(url)
        if allowed_updates is not None and not isinstance(allowed_updates, list):
            raise ValidationError("allowed_updates must be a list", field="allowed_updates")

        try:
            connections = int(max_connections) if max_connections else WEBHOOK_MAX_CONNECTIONS
        except (TypeError, ValueError):
            connections = WEBHOOK_MAX_CONNECTIONS

        config = WebhookConfig(
            url=url,
            secret=sanitize(secret) if secret else generate_webhook_secret(),
            enabled=True,
            allowed_updates=[str(t) for t in allowed_updates] if allowed_updates else None,
            max_connections=max(1, min(connections, WEBHOOK_MAX_CONNECTIONS_CAP)),
        )
        await self._storage.save_webhook(bot.bot_id, config)
        bot.webhook = config
        logger.info(f"Webhook set for {bot.bot_id}: {url}")
        return config

    async def delete_webhook(self, bot: Bot) -> None:
        """Disable push delivery; the secret is kept for a later re-enable."""
        config = WebhookConfig(
            secret=bot.webhook.secret,
            allowed_updates=bot.webhook.allowed_updates,
            max_connections=bot.webhook.max_connections,
        )
        await self._storage.save_webhook(bot.bot_id, config)
        bot.webhook = config

    async def get_webhook_info(self, bot: Bot) -> dict:
        return {
            "url": bot.webhook.url or "",
            "has_custom_certificate": False,
            "pending_update_count": await self._update_log.pending_count(bot.bot_id),
            "max_connections": bot.webhook.max_connections,
            "allowed_updates": bot.webhook.allowed_updates or [],
            "is_enabled": bot.webhook.enabled,
        }

    async def get_webhook_log(
        self, bot: Bot, limit: int = 100, outcome: str | None = None
    ) -> list[dict]:
        status = None
        if outcome:
            try:
                status = DeliveryOutcome(outcome)
            except ValueError:
                raise ValidationError("Unknown delivery status", field="status")
        records = await self._storage.get_delivery_records(
            bot.bot_id, limit=max(1, min(limit, 1000)), outcome=status
        )
        return [record.to_dict() for record in records]

    async def set_user_state(
        self, bot: Bot, user_id: Any, state: str | None, state_data: dict | None
    ) -> None:
        """Persist conversation state on behalf of an external bot."""
        user_id = _as_user_id(user_id)
        if state_data is not None and not isinstance(state_data, dict):
            raise ValidationError("state_data must be an object", field="state_data")
        await self._storage.save_bot_user_state(bot.bot_id, user_id, state or None, state_data)

    async def get_user_state(self, bot: Bot, user_id: Any) -> dict:
        user_id = _as_user_id(user_id)
        stored = await self._storage.get_bot_user_state(bot.bot_id, user_id)
        state, data = stored if stored else (None, None)
        return {"state": state, "state_data": data}

    # ------------------------------------------------------------------
    # Ingress (user -> bot)
    # ------------------------------------------------------------------

    def register_internal_handler(self, bot_id: str, handler: InternalHandler) -> None:
        """Route inbound updates of a built-in bot to an in-process handler."""
        self._internal_handlers[bot_id] = handler

    async def post_user_message(
        self,
        bot_id: str,
        user_id: int,
        text: str | None = None,
        callback_data: str | None = None,
        media: dict | None = None,
        chat_type: str = "private",
    ) -> Update:
        """Append an inbound update from a user and hand it to built-in handlers."""
        bot = await self._storage.get_bot(bot_id)
        if bot is None or not bot.is_active:
            raise NotFoundError("Bot not found")
        if not text and not callback_data and not media:
            raise ValidationError("text, callback_data or media required", field="text")

        media_obj = None
        if media:
            if not isinstance(media, dict) or not media.get("type"):
                raise ValidationError("media must have a type", field="media")
            media_obj = Media(type=str(media["type"]), url=str(media.get("url") or ""))

        command = None if callback_data else parse_command(text)
        update = Update(
            id=None,
            bot_id=bot_id,
            chat_id=str(user_id),
            chat_type=chat_type,
            direction=Direction.INBOUND,
            text=text,
            media=media_obj,
            command_name=command[0] if command else None,
            command_args=command[1] if command else None,
            callback_data=callback_data or None,
        )
        await self._update_log.append(update)

        if callback_data:
            await self._storage.save_callback(bot_id, user_id, update.id, callback_data)
        await self._storage.increment_bot_counter(bot_id, "messages_received")
        await self._touch_member(bot_id, user_id)

        handler = self._internal_handlers.get(bot_id)
        if handler is not None:
            try:
                await handler(update)
            except Exception as e:
                logger.error(f"Internal handler error for {bot_id}: {e}", exc_info=True)

        return update

    async def _touch_member(self, bot_id: str, user_id: int) -> None:
        if await self._storage.touch_bot_user(bot_id, user_id):
            await self._storage.increment_bot_counter(bot_id, "total_users")

    async def _check_rate_limit(self, bot: Bot) -> None:
        if self._send_rate_limit <= 0 or bot.bot_type == BotType.SYSTEM:
            return
        window_start = int(time.time()) // RATE_LIMIT_WINDOW * RATE_LIMIT_WINDOW
        hits = await self._storage.hit_rate_limit(bot.bot_id, window_start)
        if hits > self._send_rate_limit:
            logger.warning(f"Rate limit exceeded for {bot.bot_id}: {hits} in window")
            raise RateLimitError(
                f"Too many messages: at most {self._send_rate_limit} per minute"
            )
