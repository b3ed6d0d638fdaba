"""Conversation dispatcher for built-in bots."""

from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from ..bots import BotService
from ..fanout import IFanoutBroadcaster
from ..logging_config import get_logger
from ..models import ConversationState, Update, User, parse_command, state_tag
from ..storage import IStorage
from .state_store import IConversationStateStore

logger = get_logger(__name__)


@dataclass
class Reply:
    """The single outbound message of a terminal step."""

    text: str
    reply_markup: dict | None = None


@dataclass
class Context:
    """What a handler sees of one inbound update."""

    update: Update
    user_id: int
    user: User | None
    state: ConversationState
    command: str | None = None
    arg: str = ""  # command args, or callback data after the matched prefix

    @property
    def text(self) -> str:
        return (self.update.text or "").strip()

    @property
    def user_name(self) -> str:
        return self.user.display_name if self.user else "there"


Handler = Callable[[Context], Awaitable[Reply | None]]

# Passed as `commands` to on_state: every command except /cancel goes to the step
ANY_COMMAND = "*"
CANCEL_COMMAND = "cancel"


def _unknown_command(name: str) -> Reply:
    return Reply(f"Unknown command: /{name}\n\nSend /help for the list of commands.")


class ConversationEngine:
    """Routes inbound updates: callback, then command, then state step, then fallback.

    The state of a (bot, user) pair stays locked from load to the outbound
    reply, so rapid messages from one user are handled one at a time.
    """

    def __init__(
        self,
        bot_id: str,
        storage: IStorage,
        state_store: IConversationStateStore,
        bot_service: BotService,
        broadcaster: IFanoutBroadcaster,
    ):
        self.bot_id = bot_id
        self._storage = storage
        self._state_store = state_store
        self._bot_service = bot_service
        self._broadcaster = broadcaster

        self._commands: dict[str, Handler] = {}
        self._callbacks: dict[str, Handler] = {}
        self._callback_prefixes: list[tuple[str, Handler]] = []
        self._state_handlers: dict[str, Handler] = {}
        self._state_commands: dict[str, set[str]] = {}
        self._fallback: Handler | None = None

    # Registration
    def on_command(self, name: str, handler: Handler) -> None:
        self._commands[name.lower()] = handler

    def on_callback(self, data: str, handler: Handler) -> None:
        self._callbacks[data] = handler

    def on_callback_prefix(self, prefix: str, handler: Handler) -> None:
        self._callback_prefixes.append((prefix, handler))
        # Longest prefix wins
        self._callback_prefixes.sort(key=lambda item: len(item[0]), reverse=True)

    def on_state(
        self, state: str | Enum, handler: Handler, commands: tuple[str, ...] | str = ()
    ) -> None:
        """Step handler for a state; `commands` are passed to it instead of the command table.

        With ANY_COMMAND the step receives every command but /cancel, for
        steps whose input is itself a list of commands.
        """
        tag = state_tag(state)
        self._state_handlers[tag] = handler
        if isinstance(commands, str):
            commands = (commands,)
        if commands:
            self._state_commands[tag] = {name.lower() for name in commands}

    def on_fallback(self, handler: Handler) -> None:
        """Free text when no state step applies."""
        self._fallback = handler

    # Dispatch
    async def handle(self, update: Update) -> Update | None:
        """Process one claimed inbound update; returns the outbound reply, if any."""
        if not str(update.chat_id).isdigit():
            logger.warning(f"Ignoring update {update.id}: non-user chat {update.chat_id}")
            return None

        user_id = int(update.chat_id)
        user = await self._storage.get_user(user_id)

        async with self._state_store.transaction(self.bot_id, user_id) as state:
            ctx = Context(update=update, user_id=user_id, user=user, state=state)
            reply = await self._dispatch(ctx)
            if reply is None:
                return None
            return await self._bot_service.post_outbound(
                self.bot_id,
                update.chat_id,
                reply.text,
                reply_markup=reply.reply_markup,
            )

    async def _dispatch(self, ctx: Context) -> Reply | None:
        update = ctx.update

        if update.callback_data:
            return await self._dispatch_callback(ctx, update.callback_data)

        if update.command_name:
            command = (update.command_name, update.command_args or "")
        else:
            command = parse_command(update.text)

        if command is not None:
            name, args = command
            ctx.command, ctx.arg = name, args
            if self._step_takes_command(ctx.state.state, name):
                return await self._state_handlers[ctx.state.state](ctx)
            handler = self._commands.get(name)
            if handler is None:
                return _unknown_command(name)
            return await handler(ctx)

        if not ctx.text:
            return None

        if not ctx.state.is_idle:
            handler = self._state_handlers.get(ctx.state.state)
            if handler is not None:
                reply = await handler(ctx)
                if reply is not None:
                    return reply

        if self._fallback is not None:
            return await self._fallback(ctx)
        return None

    def _step_takes_command(self, state: str, name: str) -> bool:
        scoped = self._state_commands.get(state, ())
        if name in scoped:
            return True
        return ANY_COMMAND in scoped and name != CANCEL_COMMAND

    async def _dispatch_callback(self, ctx: Context, data: str) -> Reply | None:
        # Acknowledge first so the client clears its loading indicator
        await self._broadcaster.callback_answered(
            self.bot_id, ctx.update.chat_id, str(ctx.update.id), "", False
        )

        handler = self._callbacks.get(data)
        if handler is not None:
            return await handler(ctx)

        for prefix, prefix_handler in self._callback_prefixes:
            if data.startswith(prefix):
                ctx.arg = data[len(prefix):]
                return await prefix_handler(ctx)

        logger.debug(f"Unhandled callback {data!r} for {self.bot_id}")
        return None
