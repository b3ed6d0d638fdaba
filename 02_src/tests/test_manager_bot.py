"""Scenario tests for the built-in ManagerBot."""

from urllib.parse import quote

import pytest

from botrelay.conversation import MANAGER_BOT_ID, parse_command_lines, parse_edit_field
from botrelay.fanout import EVENT_CALLBACK_ANSWER, EVENT_MESSAGE
from botrelay.models import BotType

from conftest import OTHER_USER_ID, OWNER_ID


@pytest.fixture
def chat(manager, bot_service, recorder):
    """Send as OWNER_ID to the manager bot; returns the single reply payload."""
    events = recorder(f"user_bot_{OWNER_ID}_{MANAGER_BOT_ID}")

    async def say(text: str | None = None, callback_data: str | None = None) -> dict:
        before = len(events)
        await bot_service.post_user_message(
            MANAGER_BOT_ID, OWNER_ID, text=text, callback_data=callback_data
        )
        replies = [payload for event, payload in events[before:] if event == EVENT_MESSAGE]
        assert len(replies) == 1, f"expected one reply, got {len(replies)}"
        return replies[0]

    return say


def callbacks_of(reply: dict) -> list[str]:
    markup = reply.get("reply_markup") or {"inline_keyboard": []}
    return [b["callback_data"] for row in markup["inline_keyboard"] for b in row]


async def create_via_chat(chat, username: str = "helper_test_bot") -> dict:
    await chat("/newbot")
    await chat("My Helper")
    await chat(username)
    return await chat("/skip")


class TestRegistration:
    """Tests for seeding the manager bot."""

    @pytest.mark.asyncio
    async def test_seeded_once(self, manager, storage):
        await manager.ensure_registered()

        bot = await storage.get_bot(MANAGER_BOT_ID)
        assert bot.bot_type == BotType.SYSTEM
        commands = [c.command for c in await storage.get_commands(MANAGER_BOT_ID)]
        assert commands[:3] == ["start", "help", "cancel"]
        assert "newbot" in commands and "learn" in commands
        assert len(commands) == len(set(commands))

    @pytest.mark.asyncio
    async def test_updates_consumed_by_manager(self, manager, bot_service, update_log):
        await bot_service.post_user_message(MANAGER_BOT_ID, OWNER_ID, text="/help")
        assert await update_log.pending_count(MANAGER_BOT_ID) == 0


class TestCommands:
    """Tests for simple commands."""

    @pytest.mark.asyncio
    async def test_start_greets_by_name(self, chat):
        reply = await chat("/start")
        assert "Alice" in reply["text"]
        assert "cmd_newbot" in callbacks_of(reply)

    @pytest.mark.asyncio
    async def test_help(self, chat):
        assert "/newbot" in (await chat("/help"))["text"]

    @pytest.mark.asyncio
    async def test_unknown_command_nudges_help(self, chat):
        assert "/help" in (await chat("/frobnicate"))["text"]

    @pytest.mark.asyncio
    async def test_mybots_empty(self, chat):
        reply = await chat("/mybots")
        assert "no bots" in reply["text"]

    @pytest.mark.asyncio
    async def test_callback_acknowledged(self, chat, recorder):
        user_events = recorder(str(OWNER_ID))
        reply = await chat(callback_data="cmd_help")
        assert "/newbot" in reply["text"]
        assert user_events[0][0] == EVENT_CALLBACK_ANSWER


class TestNewBotWizard:
    """Tests for the three-step bot creation."""

    @pytest.mark.asyncio
    async def test_create_bot(self, chat, storage, state_store):
        reply = await create_via_chat(chat)

        bot = await storage.get_bot_by_username("helper_test_bot")
        assert bot is not None
        assert bot.owner_id == OWNER_ID
        assert bot.display_name == "My Helper"
        assert bot.description == ""
        assert bot.bot_token in reply["text"]
        assert [c.command for c in await storage.get_commands(bot.bot_id)] == ["start", "help", "cancel"]
        assert (await state_store.get(MANAGER_BOT_ID, OWNER_ID)).is_idle

    @pytest.mark.asyncio
    async def test_description_kept(self, chat, storage):
        await chat("/newbot")
        await chat("Weather")
        await chat("Weather_Check_bot")
        await chat("Tells the weather")

        bot = await storage.get_bot_by_username("weather_check_bot")
        assert bot.username == "weather_check_bot"
        assert bot.description == "Tells the weather"

    @pytest.mark.asyncio
    async def test_invalid_username_retries_same_step(self, chat, state_store):
        await chat("/newbot")
        await chat("My Helper")

        reply = await chat("bad name")

        assert "Invalid format" in reply["text"]
        state = await state_store.get(MANAGER_BOT_ID, OWNER_ID)
        assert state.state == "newbot_username"
        assert state.data == {"display_name": "My Helper"}

    @pytest.mark.asyncio
    async def test_taken_username_retries(self, chat, bot):
        await chat("/newbot")
        await chat("Copy")
        reply = await chat("echo_test_bot")
        assert "already taken" in reply["text"]

    @pytest.mark.asyncio
    async def test_cancel_mid_wizard(self, chat, storage, state_store):
        await chat("/newbot")
        await chat("My Helper")

        await chat("/cancel")

        state = await state_store.get(MANAGER_BOT_ID, OWNER_ID)
        assert state.is_idle
        assert state.data == {}
        # Next free text is a knowledge query, not a username
        reply = await chat("helper_test_bot")
        assert "don't know" in reply["text"]
        assert await storage.get_bot_by_username("helper_test_bot") is None


class TestBotManagement:
    """Tests for managing existing bots through buttons."""

    @pytest.mark.asyncio
    async def test_mybots_lists_owned_bots(self, chat, bot):
        reply = await chat("/mybots")
        assert "@echo_test_bot" in reply["text"]
        assert f"bot_info_{bot.bot_id}" in callbacks_of(reply)

    @pytest.mark.asyncio
    async def test_bot_info_for_foreign_bot(self, chat, bot_service):
        foreign = await bot_service.create_bot(OTHER_USER_ID, "foreign_test_bot", "Foreign")
        reply = await chat(callback_data=f"bot_info_{foreign.bot_id}")
        assert reply["text"] == "Bot not found."

    @pytest.mark.asyncio
    async def test_edit_field(self, chat, storage, bot):
        reply = await chat(callback_data=f"editselect_{bot.bot_id}")
        assert f"editfield_{bot.bot_id}_display_name" in callbacks_of(reply)

        await chat(callback_data=f"editfield_{bot.bot_id}_display_name")
        reply = await chat("Renamed")

        assert "display_name" in reply["text"]
        assert (await storage.get_bot(bot.bot_id)).display_name == "Renamed"

    @pytest.mark.asyncio
    async def test_token_show_and_regenerate(self, chat, storage, bot):
        reply = await chat("/token")
        assert f"tokenshow_{bot.bot_id}" in callbacks_of(reply)

        reply = await chat(callback_data=f"tokenshow_{bot.bot_id}")
        assert bot.bot_token in reply["text"]

        await chat(callback_data=f"tokenregen_{bot.bot_id}")
        assert (await storage.get_bot(bot.bot_id)).bot_token != bot.bot_token

    @pytest.mark.asyncio
    async def test_set_commands(self, chat, storage, bot):
        await chat(callback_data=f"setcmd_{bot.bot_id}")
        reply = await chat("/weather - Forecast\nnot a command line\n/news — Headlines")

        assert "Commands set" in reply["text"]
        commands = await storage.get_commands(bot.bot_id)
        assert [(c.command, c.description) for c in commands] == [
            ("weather", "Forecast"),
            ("news", "Headlines"),
        ]

    @pytest.mark.asyncio
    async def test_cancel_during_set_commands(self, chat, storage, state_store, bot):
        await chat(callback_data=f"setcmd_{bot.bot_id}")

        reply = await chat("/cancel")

        assert "cancelled" in reply["text"]
        assert (await state_store.get(MANAGER_BOT_ID, OWNER_ID)).is_idle
        assert [c.command for c in await storage.get_commands(bot.bot_id)] == ["start", "help", "cancel"]

    @pytest.mark.asyncio
    async def test_set_commands_unparseable_retries(self, chat, state_store, bot):
        await chat(callback_data=f"setcmd_{bot.bot_id}")
        reply = await chat("nothing useful")
        assert "Could not parse" in reply["text"]
        assert (await state_store.get(MANAGER_BOT_ID, OWNER_ID)).state == "setcmd_input"

    @pytest.mark.asyncio
    async def test_set_description(self, chat, storage, bot):
        await chat("/setdesc")
        await chat(callback_data=f"setdesc_{bot.bot_id}")
        await chat("Fresh description")
        assert (await storage.get_bot(bot.bot_id)).description == "Fresh description"

    @pytest.mark.asyncio
    async def test_delete_flow(self, chat, storage, bot):
        reply = await chat(callback_data=f"deleteconfirm_{bot.bot_id}")
        assert f"deletedo_{bot.bot_id}" in callbacks_of(reply)

        reply = await chat(callback_data=f"deletedo_{bot.bot_id}")

        assert "deleted" in reply["text"]
        assert await storage.get_bot(bot.bot_id) is None

    @pytest.mark.asyncio
    async def test_created_bot_then_listed(self, chat):
        await create_via_chat(chat)
        assert "@helper_test_bot" in (await chat("/mybots"))["text"]


class TestKnowledge:
    """Tests for learn, ask and forget."""

    @pytest.mark.asyncio
    async def test_learn_then_answer(self, chat):
        await chat("/learn")
        await chat("Weather")
        reply = await chat("Sunny all week")
        assert "weather" in reply["text"]

        reply = await chat("tell me about weather")
        assert reply["text"] == "*weather*\n\nSunny all week"
        assert callbacks_of(reply) == ["kb_helpful_yes", "kb_helpful_no"]

    @pytest.mark.asyncio
    async def test_best_entry_wins(self, manager, chat):
        await manager.knowledge.learn("bot token", "Use /token", OWNER_ID)
        await manager.knowledge.learn("regenerate bot token", "Use the regenerate button", OWNER_ID)

        reply = await chat("how to regenerate token")
        assert reply["text"].endswith("Use the regenerate button")

    @pytest.mark.asyncio
    async def test_no_answer(self, chat):
        reply = await chat("completely unknown topic")
        assert "don't know" in reply["text"]
        assert callbacks_of(reply) == ["cmd_start", "cmd_help"]

    @pytest.mark.asyncio
    async def test_forget(self, manager, chat):
        await manager.knowledge.learn("office hours", "9 to 5", OWNER_ID)

        reply = await chat("/forget")
        data = f"forget_{quote('office hours', safe='')}"
        assert data in callbacks_of(reply)

        await chat(callback_data=data)
        assert await manager.knowledge.search("office hours") is None

    @pytest.mark.asyncio
    async def test_helpful_feedback(self, chat):
        assert "Glad" in (await chat(callback_data="kb_helpful_yes"))["text"]
        assert "/learn" in (await chat(callback_data="kb_helpful_no"))["text"]


class TestParsers:
    """Tests for callback and command-list parsing."""

    def test_parse_edit_field(self):
        assert parse_edit_field("bot_ab12_display_name") == ("bot_ab12", "display_name")
        assert parse_edit_field("bot_ab12_about") == ("bot_ab12", "about")
        assert parse_edit_field("bot_ab12_token") is None
        assert parse_edit_field("_about") is None

    def test_parse_command_lines(self):
        assert parse_command_lines("/Start - Begin\nhelp—Help me\njunk") == [
            ("start", "Begin"),
            ("help", "Help me"),
        ]
