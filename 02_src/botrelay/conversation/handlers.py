"""ManagerBot: the built-in bot that creates and manages bots from chat."""

import re
from urllib.parse import quote, unquote

from ..bots import DEFAULT_COMMANDS, BotService, generate_bot_token, is_valid_username, sanitize
from ..config import MAX_BOTS_PER_OWNER
from ..errors import BotRelayError
from ..fanout import IFanoutBroadcaster
from ..logging_config import get_logger
from ..models import Bot, BotCommand, BotStatus, BotType, Update
from ..storage import IStorage
from ..updates import IUpdateLog
from .engine import ANY_COMMAND, Context, ConversationEngine, Reply
from .keyboard import button, inline_keyboard
from .knowledge import KnowledgeBase
from .state_store import IConversationStateStore
from .states import ManagerState

logger = get_logger(__name__)

MANAGER_BOT_ID = "managerbot"
MANAGER_USERNAME = "managerbot"
MANAGER_DISPLAY_NAME = "ManagerBot"
SYSTEM_OWNER_ID = 1

MANAGER_COMMANDS = [
    BotCommand(command="newbot", description="Create a new bot", sort_order=3),
    BotCommand(command="mybots", description="List my bots", sort_order=4),
    BotCommand(command="editbot", description="Edit a bot", sort_order=5),
    BotCommand(command="deletebot", description="Delete a bot", sort_order=6),
    BotCommand(command="token", description="Get a bot token", sort_order=7),
    BotCommand(command="setcommands", description="Set bot commands", sort_order=8),
    BotCommand(command="setdesc", description="Change bot description", sort_order=9),
    BotCommand(command="learn", description="Teach ManagerBot a new answer", sort_order=10),
    BotCommand(command="forget", description="Remove an answer from the knowledge base", sort_order=11),
    BotCommand(command="ask", description="Ask ManagerBot a question", sort_order=12),
]

EDITABLE_FIELDS = {
    "display_name": "display name",
    "description": "description",
    "about": "about text",
    "category": "category",
}

COMMAND_LINE = re.compile(r"^/?(\w+)\s*[-—]\s*(.+)$")

HELP_TEXT = (
    "*ManagerBot commands:*\n\n"
    "/newbot - create a new bot\n"
    "/mybots - list your bots\n"
    "/editbot - change bot settings\n"
    "/deletebot - delete a bot\n"
    "/token - get or regenerate a bot token\n"
    "/setcommands - set bot commands\n"
    "/setdesc - set bot description\n\n"
    "*Knowledge base:*\n"
    "/learn - teach me something new\n"
    "/forget - make me forget something\n"
    "/ask - ask a question\n\n"
    "Or just type a question and I will look it up in the knowledge base!"
)

BOT_NOT_FOUND = "Bot not found."


def parse_edit_field(arg: str) -> tuple[str, str] | None:
    """Split '<bot_id>_<field>' by matching a known field suffix.

    Both bot IDs and field names contain underscores.
    """
    for field_name in EDITABLE_FIELDS:
        suffix = "_" + field_name
        if arg.endswith(suffix) and len(arg) > len(suffix):
            return arg[: -len(suffix)], field_name
    return None


def parse_command_lines(text: str) -> list[tuple[str, str]]:
    """'/name - description' per line; unparseable lines are ignored."""
    commands = []
    for line in text.splitlines():
        match = COMMAND_LINE.match(line.strip())
        if match:
            commands.append((match.group(1).lower(), match.group(2).strip()))
    return commands


class ManagerBot:
    """Built-in bot wiring its commands, steps and buttons into a ConversationEngine."""

    def __init__(
        self,
        storage: IStorage,
        update_log: IUpdateLog,
        bot_service: BotService,
        broadcaster: IFanoutBroadcaster,
        state_store: IConversationStateStore,
        bot_id: str = MANAGER_BOT_ID,
    ):
        self.bot_id = bot_id
        self._storage = storage
        self._update_log = update_log
        self._bot_service = bot_service
        self.knowledge = KnowledgeBase(storage, bot_id)
        self.engine = ConversationEngine(bot_id, storage, state_store, bot_service, broadcaster)
        self._register_routes()

    async def ensure_registered(self) -> None:
        """Seed the bot record and commands once, then attach to ingress."""
        if await self._storage.get_bot(self.bot_id) is None:
            bot = Bot(
                bot_id=self.bot_id,
                owner_id=SYSTEM_OWNER_ID,
                bot_token=generate_bot_token(self.bot_id),
                username=MANAGER_USERNAME,
                display_name=MANAGER_DISPLAY_NAME,
                description="Official bot manager. Create your own bots right from the chat!",
                about="Creates and manages bots. Also learns: send /learn!",
                category="system",
                bot_type=BotType.SYSTEM,
                status=BotStatus.ACTIVE,
                is_public=True,
                can_join_groups=False,
            )
            await self._storage.create_bot(bot)
            logger.info(f"{MANAGER_DISPLAY_NAME} created ({self.bot_id})")

        await self._storage.ensure_commands(self.bot_id, DEFAULT_COMMANDS + MANAGER_COMMANDS)
        self._bot_service.register_internal_handler(self.bot_id, self.on_update)
        logger.info(f"{MANAGER_DISPLAY_NAME} ready")

    async def on_update(self, update: Update) -> None:
        """Claim the update so no other consumer sees it, then dispatch."""
        if not await self._update_log.claim_one(self.bot_id, update.id):
            return
        await self.engine.handle(update)

    def _register_routes(self) -> None:
        engine = self.engine

        commands = {
            "start": self.cmd_start,
            "help": self.cmd_help,
            "newbot": self.cmd_newbot,
            "mybots": self.cmd_mybots,
            "editbot": self.cmd_editbot,
            "deletebot": self.cmd_deletebot,
            "token": self.cmd_token,
            "setcommands": self.cmd_setcommands,
            "setcmd": self.cmd_setcommands,
            "setdesc": self.cmd_setdesc,
            "learn": self.cmd_learn,
            "forget": self.cmd_forget,
            "ask": self.cmd_ask,
            "cancel": self.cmd_cancel,
        }
        for name, handler in commands.items():
            engine.on_command(name, handler)

        callbacks = {
            "cmd_start": self.cmd_start,
            "cmd_newbot": self.cmd_newbot,
            "cmd_mybots": self.cmd_mybots,
            "cmd_help": self.cmd_help,
            "cmd_cancel": self.cmd_cancel,
            "cmd_learn": self.cmd_learn,
            "cmd_ask": self.cmd_ask,
            "cmd_forget": self.cmd_forget,
            "cmd_knowledge": self.cb_knowledge,
        }
        for data, handler in callbacks.items():
            engine.on_callback(data, handler)

        prefixes = {
            "bot_info_": self.cb_bot_info,
            "editselect_": self.cb_edit_select,
            "editfield_": self.cb_edit_field,
            "tokenshow_": self.cb_token_show,
            "tokenregen_": self.cb_token_regen,
            "setcmd_": self.cb_setcmd,
            "setdesc_": self.cb_setdesc,
            "deleteselect_": self.cb_delete_confirm,
            "deleteconfirm_": self.cb_delete_confirm,
            "deletedo_": self.cb_delete_do,
            "forget_": self.cb_forget,
            "kb_helpful_": self.cb_helpful,
        }
        for prefix, handler in prefixes.items():
            engine.on_callback_prefix(prefix, handler)

        engine.on_state(ManagerState.NEWBOT_NAME, self.step_newbot_name)
        engine.on_state(ManagerState.NEWBOT_USERNAME, self.step_newbot_username)
        engine.on_state(ManagerState.NEWBOT_DESC, self.step_newbot_desc, commands=("skip",))
        engine.on_state(ManagerState.SETCMD_INPUT, self.step_setcmd_input, commands=ANY_COMMAND)
        engine.on_state(ManagerState.SETDESC_INPUT, self.step_setdesc_input)
        engine.on_state(ManagerState.EDITBOT_VALUE, self.step_editbot_value)
        engine.on_state(ManagerState.LEARN_KEYWORD, self.step_learn_keyword)
        engine.on_state(ManagerState.LEARN_RESPONSE, self.step_learn_response)
        engine.on_fallback(self.answer_query)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _owned_bot(self, ctx: Context, bot_id: str) -> Bot | None:
        bot = await self._storage.get_bot(bot_id)
        if bot is None or bot.owner_id != ctx.user_id:
            return None
        return bot

    async def _user_bots(self, ctx: Context) -> list[Bot]:
        return await self._storage.list_bots_by_owner(ctx.user_id, limit=MAX_BOTS_PER_OWNER)

    async def _bot_selector(
        self,
        ctx: Context,
        state: ManagerState,
        prefix: str,
        prompt: str,
        empty: str,
    ) -> Reply:
        bots = await self._user_bots(ctx)
        if not bots:
            return Reply(empty)
        ctx.state.transition(state)
        buttons = [button(f"@{bot.username}", f"{prefix}{bot.bot_id}") for bot in bots]
        buttons.append(button("Cancel", "cmd_cancel"))
        return Reply(prompt, inline_keyboard(buttons))

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def cmd_start(self, ctx: Context) -> Reply:
        ctx.state.reset()
        return Reply(
            f"Hi, {ctx.user_name}! I am {MANAGER_DISPLAY_NAME}, your assistant for managing bots.\n\n"
            "What would you like to do?",
            inline_keyboard(
                [
                    button("Create a bot", "cmd_newbot"),
                    button("My bots", "cmd_mybots"),
                    button("Teach me", "cmd_learn"),
                    button("Ask me", "cmd_ask"),
                    button("Help", "cmd_help"),
                ]
            ),
        )

    async def cmd_help(self, ctx: Context) -> Reply:
        ctx.state.reset()
        return Reply(HELP_TEXT)

    async def cmd_newbot(self, ctx: Context) -> Reply:
        ctx.state.transition(ManagerState.NEWBOT_NAME)
        return Reply(
            "Let's create a new bot!\n\n"
            'Step 1/3: Send the display name of the bot (for example: "My Helper", "WeatherBot"):'
        )

    async def cmd_mybots(self, ctx: Context) -> Reply:
        ctx.state.reset()
        bots = await self._user_bots(ctx)
        if not bots:
            return Reply(
                "You have no bots yet.\nCreate your first one!",
                inline_keyboard([button("Create my first bot", "cmd_newbot")]),
            )

        lines = [f"*Your bots ({len(bots)}):*\n"]
        buttons = []
        for bot in bots:
            marker = "🟢" if bot.is_active else "🔴"
            lines.append(f"{marker} @{bot.username} - {bot.display_name}")
            lines.append(f"   Users: {bot.total_users}\n")
            buttons.append(button(f"@{bot.username}", f"bot_info_{bot.bot_id}"))
        buttons.append(button("Create another", "cmd_newbot"))
        return Reply("\n".join(lines), inline_keyboard(buttons))

    async def cmd_editbot(self, ctx: Context) -> Reply:
        return await self._bot_selector(
            ctx,
            ManagerState.EDITBOT_SELECT,
            "editselect_",
            "Choose a bot to edit:",
            "You have no bots to edit.",
        )

    async def cmd_deletebot(self, ctx: Context) -> Reply:
        return await self._bot_selector(
            ctx,
            ManagerState.DELETEBOT_CONFIRM,
            "deleteselect_",
            "Choose a bot to delete:",
            "You have no bots to delete.",
        )

    async def cmd_token(self, ctx: Context) -> Reply:
        return await self._bot_selector(
            ctx,
            ManagerState.TOKEN_SELECT,
            "tokenshow_",
            "Choose a bot to get its token:",
            "You have no bots.",
        )

    async def cmd_setcommands(self, ctx: Context) -> Reply:
        return await self._bot_selector(
            ctx,
            ManagerState.SETCMD_SELECT,
            "setcmd_",
            "Choose a bot to set commands for:",
            "You have no bots.",
        )

    async def cmd_setdesc(self, ctx: Context) -> Reply:
        return await self._bot_selector(
            ctx,
            ManagerState.SETDESC_SELECT,
            "setdesc_",
            "Choose a bot to change its description:",
            "You have no bots.",
        )

    async def cmd_learn(self, ctx: Context) -> Reply:
        ctx.state.transition(ManagerState.LEARN_KEYWORD)
        return Reply(
            "*Teaching ManagerBot*\n\n"
            "Step 1/2: Send the keyword or phrase people will ask about\n"
            '_(for example: "weather", "how to sign up", "support contact")_'
        )

    async def cmd_forget(self, ctx: Context) -> Reply:
        entries = await self.knowledge.entries(limit=15)
        if not entries:
            return Reply("The knowledge base is empty. Teach me something with /learn first")
        ctx.state.transition(ManagerState.FORGET_SELECT)
        buttons = [
            button(entry.keyword[:30], f"forget_{quote(entry.keyword, safe='')}")
            for entry in entries
        ]
        buttons.append(button("Cancel", "cmd_cancel"))
        return Reply("Choose an entry to delete:", inline_keyboard(buttons, columns=1))

    async def cmd_ask(self, ctx: Context) -> Reply:
        ctx.state.reset()
        return Reply("Ask me anything and I will look for an answer in the knowledge base!")

    async def cmd_cancel(self, ctx: Context) -> Reply:
        ctx.state.reset()
        return Reply(
            "Action cancelled. How can I help?",
            inline_keyboard(
                [
                    button("Create a bot", "cmd_newbot"),
                    button("My bots", "cmd_mybots"),
                    button("Help", "cmd_help"),
                ]
            ),
        )

    # ------------------------------------------------------------------
    # Wizard steps
    # ------------------------------------------------------------------

    async def step_newbot_name(self, ctx: Context) -> Reply:
        name = ctx.text
        if not name:
            return Reply("The name cannot be empty. Try again:")
        ctx.state.transition(ManagerState.NEWBOT_USERNAME, {"display_name": name})
        return Reply(
            f"Great! Name: *{name}*\n\n"
            "Step 2/3: Send the bot username (letters, digits and underscores, "
            "must end with _bot).\nFor example: my_helper_bot, weather_check_bot"
        )

    async def step_newbot_username(self, ctx: Context) -> Reply:
        username = ctx.text.lower()
        if not is_valid_username(username):
            return Reply(
                "Invalid format! The username must:\n"
                "- start with a letter\n"
                "- contain only letters, digits and _\n"
                "- end with _bot\n\n"
                "Try again:"
            )
        if await self._storage.get_bot_by_username(username):
            return Reply(f"Username @{username} is already taken! Pick another one:")

        ctx.state.transition(ManagerState.NEWBOT_DESC, {**ctx.state.data, "username": username})
        return Reply(
            f"Username: *@{username}*\n\n"
            "Step 3/3: Send a short description of the bot (or /skip to leave it empty):"
        )

    async def step_newbot_desc(self, ctx: Context) -> Reply:
        description = "" if ctx.command == "skip" else ctx.text
        data = ctx.state.data

        if await self._storage.count_bots_by_owner(ctx.user_id) >= MAX_BOTS_PER_OWNER:
            ctx.state.reset()
            return Reply(f"Limit reached: at most {MAX_BOTS_PER_OWNER} bots per account.")

        try:
            bot = await self._bot_service.create_bot(
                owner_id=ctx.user_id,
                username=data.get("username"),
                display_name=data.get("display_name"),
                description=description,
            )
        except BotRelayError as e:
            ctx.state.reset()
            return Reply(f"Could not create the bot: {e.message}")

        ctx.state.reset()
        logger.info(f"{MANAGER_DISPLAY_NAME} created @{bot.username} ({bot.bot_id}) for user {ctx.user_id}")
        return Reply(
            "*Bot created!*\n\n"
            f"Name: {data.get('display_name')}\n"
            f"Username: @{bot.username}\n"
            f"Bot ID: `{bot.bot_id}`\n\n"
            "*Token (SECRET, keep it safe!):*\n"
            f"`{bot.bot_token}`\n\n"
            "Use this token in your bot to authenticate.\n"
            "Documentation: /help",
            inline_keyboard(
                [
                    button("All my bots", "cmd_mybots"),
                    button("Create another", "cmd_newbot"),
                ]
            ),
        )

    async def step_setcmd_input(self, ctx: Context) -> Reply:
        commands = parse_command_lines(ctx.update.text or "")
        if not commands:
            return Reply(
                "Could not parse the commands. Use the format:\n"
                "`/command - Description`\n\n"
                "One per line. Try again:"
            )

        bot = await self._owned_bot(ctx, ctx.state.data.get("bot_id", ""))
        ctx.state.reset()
        if bot is None:
            return Reply(BOT_NOT_FOUND)

        await self._bot_service.replace_commands(
            bot.bot_id,
            [
                BotCommand(command=sanitize(name), description=sanitize(description), sort_order=i)
                for i, (name, description) in enumerate(commands)
            ],
        )
        listing = "\n".join(f"/{name} - {description}" for name, description in commands)
        return Reply(f"*Commands set!*\n\n{listing}")

    async def step_setdesc_input(self, ctx: Context) -> Reply:
        bot = await self._owned_bot(ctx, ctx.state.data.get("bot_id", ""))
        ctx.state.reset()
        if bot is None:
            return Reply(BOT_NOT_FOUND)
        await self._storage.update_bot(bot.bot_id, description=sanitize(ctx.text))
        return Reply("Description updated!")

    async def step_editbot_value(self, ctx: Context) -> Reply:
        field_name = ctx.state.data.get("field")
        bot = await self._owned_bot(ctx, ctx.state.data.get("bot_id", ""))
        ctx.state.reset()
        if field_name not in EDITABLE_FIELDS:
            return Reply("Unknown field. Action cancelled.")
        if bot is None:
            return Reply(BOT_NOT_FOUND)
        await self._storage.update_bot(bot.bot_id, **{field_name: sanitize(ctx.text)})
        return Reply(f"Field *{field_name}* updated!")

    async def step_learn_keyword(self, ctx: Context) -> Reply:
        keyword = ctx.text
        if not keyword:
            return Reply("The keyword cannot be empty. Try again:")
        ctx.state.transition(ManagerState.LEARN_RESPONSE, {"keyword": keyword})
        return Reply(
            f'Keyword: *"{keyword}"*\n\n'
            "Step 2/2: Send the answer I should give for it:"
        )

    async def step_learn_response(self, ctx: Context) -> Reply:
        response = ctx.text
        if not response:
            return Reply("The answer cannot be empty. Try again:")
        keyword = await self.knowledge.learn(ctx.state.data.get("keyword", ""), response, ctx.user_id)
        ctx.state.reset()
        return Reply(
            f'Got it!\nFrom now on I will answer questions about *"{keyword}"* with:\n\n_{response}_',
            inline_keyboard(
                [
                    button("Teach more", "cmd_learn"),
                    button("Show everything", "cmd_knowledge"),
                ]
            ),
        )

    # ------------------------------------------------------------------
    # Free text
    # ------------------------------------------------------------------

    async def answer_query(self, ctx: Context) -> Reply:
        entry = await self.knowledge.search(ctx.text)
        if entry is not None:
            return Reply(
                f"*{entry.keyword}*\n\n{entry.response}",
                inline_keyboard(
                    [
                        button("This helped!", "kb_helpful_yes"),
                        button("Not what I need", "kb_helpful_no"),
                    ]
                ),
            )
        return Reply(
            "I don't know the answer to that.\n\n"
            "Try:\n"
            "- /help - list of commands\n"
            "- /newbot - create a bot\n"
            "- /learn - teach me this",
            inline_keyboard(
                [
                    button("Main menu", "cmd_start"),
                    button("Help", "cmd_help"),
                ]
            ),
        )

    # ------------------------------------------------------------------
    # Buttons
    # ------------------------------------------------------------------

    async def cb_knowledge(self, ctx: Context) -> Reply:
        entries = await self.knowledge.entries(limit=10)
        if not entries:
            return Reply("The knowledge base is empty. Teach me with /learn!")
        items = "\n\n".join(f"- *{entry.keyword}*\n  {entry.response[:80]}" for entry in entries)
        return Reply(
            f"*ManagerBot knowledge base ({len(entries)} entries):*\n\n{items}",
            inline_keyboard(
                [
                    button("Forget an entry", "cmd_forget"),
                    button("Add", "cmd_learn"),
                ]
            ),
        )

    async def cb_bot_info(self, ctx: Context) -> Reply:
        bot = await self._owned_bot(ctx, ctx.arg)
        if bot is None:
            return Reply(BOT_NOT_FOUND)

        commands = await self._storage.get_commands(bot.bot_id)
        created = bot.created_at.strftime("%Y-%m-%d") if bot.created_at else "-"
        text = (
            f"*@{bot.username}*\n\n"
            f"Name: {bot.display_name}\n"
            f"Status: {bot.status.value}\n"
            f"Description: {bot.description or '_none_'}\n"
            f"Category: {bot.category}\n"
            f"Commands: {len(commands)}\n"
            f"Users: {bot.total_users}\n"
            f"Created: {created}"
        )
        return Reply(
            text,
            inline_keyboard(
                [
                    button("Edit", f"editselect_{bot.bot_id}"),
                    button("Token", f"tokenshow_{bot.bot_id}"),
                    button("Commands", f"setcmd_{bot.bot_id}"),
                    button("Delete", f"deleteconfirm_{bot.bot_id}"),
                    button("Back", "cmd_mybots"),
                ]
            ),
        )

    async def cb_edit_select(self, ctx: Context) -> Reply:
        bot = await self._owned_bot(ctx, ctx.arg)
        if bot is None:
            return Reply(BOT_NOT_FOUND)
        ctx.state.transition(ManagerState.EDITBOT_FIELD, {"bot_id": bot.bot_id})
        buttons = [
            button(f"Change {label}", f"editfield_{bot.bot_id}_{field_name}")
            for field_name, label in EDITABLE_FIELDS.items()
        ]
        buttons.append(button("Cancel", "cmd_cancel"))
        return Reply(f"What should change in @{bot.username}?", inline_keyboard(buttons, columns=1))

    async def cb_edit_field(self, ctx: Context) -> Reply:
        parsed = parse_edit_field(ctx.arg)
        if parsed is None:
            ctx.state.reset()
            return Reply("Unknown field. Action cancelled.")
        bot_id, field_name = parsed
        bot = await self._owned_bot(ctx, bot_id)
        if bot is None:
            return Reply(BOT_NOT_FOUND)
        ctx.state.transition(ManagerState.EDITBOT_VALUE, {"bot_id": bot_id, "field": field_name})
        return Reply(f"Send the new {EDITABLE_FIELDS[field_name]}:")

    async def cb_token_show(self, ctx: Context) -> Reply:
        bot = await self._owned_bot(ctx, ctx.arg)
        if bot is None:
            return Reply(BOT_NOT_FOUND)
        ctx.state.reset()
        return Reply(
            f"*Token of @{bot.username}:*\n\n`{bot.bot_token}`\n\n⚠️ Never share your token!",
            inline_keyboard(
                [
                    button("Regenerate token", f"tokenregen_{bot.bot_id}"),
                    button("Back", f"bot_info_{bot.bot_id}"),
                ]
            ),
        )

    async def cb_token_regen(self, ctx: Context) -> Reply:
        bot = await self._owned_bot(ctx, ctx.arg)
        if bot is None:
            return Reply(BOT_NOT_FOUND)
        token = await self._bot_service.regenerate_token(bot.bot_id, ctx.user_id)
        return Reply(
            f"Token regenerated!\n\nNew token of @{bot.username}:\n`{token}`\n\n"
            "The old token no longer works."
        )

    async def cb_setcmd(self, ctx: Context) -> Reply:
        bot = await self._owned_bot(ctx, ctx.arg)
        if bot is None:
            return Reply(BOT_NOT_FOUND)
        ctx.state.transition(ManagerState.SETCMD_INPUT, {"bot_id": bot.bot_id})
        return Reply(
            f"Setting commands for @{bot.username}\n\n"
            "Send the commands, one per line:\n"
            "`/start - Getting started`\n"
            "`/help - Help`\n"
            "`/info - Information`"
        )

    async def cb_setdesc(self, ctx: Context) -> Reply:
        bot = await self._owned_bot(ctx, ctx.arg)
        if bot is None:
            return Reply(BOT_NOT_FOUND)
        ctx.state.transition(ManagerState.SETDESC_INPUT, {"bot_id": bot.bot_id})
        return Reply(f"Send the new description for @{bot.username}:")

    async def cb_delete_confirm(self, ctx: Context) -> Reply:
        bot = await self._owned_bot(ctx, ctx.arg)
        if bot is None:
            return Reply(BOT_NOT_FOUND)
        ctx.state.transition(ManagerState.DELETEBOT_CONFIRM, {"bot_id": bot.bot_id})
        return Reply(
            f"Are you sure you want to delete *@{bot.username}*?\n\n"
            "This cannot be undone! All data (messages, users, commands) will be removed.",
            inline_keyboard(
                [
                    button(f"Yes, delete @{bot.username}", f"deletedo_{bot.bot_id}"),
                    button("No, cancel", "cmd_cancel"),
                ],
                columns=1,
            ),
        )

    async def cb_delete_do(self, ctx: Context) -> Reply:
        bot = await self._owned_bot(ctx, ctx.arg)
        if bot is None:
            return Reply(BOT_NOT_FOUND)
        try:
            await self._bot_service.delete_bot(bot.bot_id, ctx.user_id)
        except BotRelayError as e:
            ctx.state.reset()
            return Reply(e.message)
        ctx.state.reset()
        return Reply(
            f"Bot *@{bot.username}* deleted.",
            inline_keyboard(
                [
                    button("My bots", "cmd_mybots"),
                    button("Create a new one", "cmd_newbot"),
                ]
            ),
        )

    async def cb_forget(self, ctx: Context) -> Reply:
        keyword = unquote(ctx.arg)
        await self.knowledge.forget(keyword)
        ctx.state.reset()
        return Reply(f'Forgot everything about *"{keyword}"*.')

    async def cb_helpful(self, ctx: Context) -> Reply:
        if ctx.arg == "yes":
            return Reply("Glad it helped!")
        return Reply("Sorry about that. Teach me the right answer with /learn")
