"""Tests for ConversationEngine dispatch."""

import asyncio
from enum import Enum

import pytest

from botrelay.conversation import ANY_COMMAND, ConversationEngine, Reply
from botrelay.fanout import EVENT_CALLBACK_ANSWER, EVENT_MESSAGE

from conftest import OWNER_ID, inbound


class Step(str, Enum):
    ASK_NAME = "ask_name"
    ASK_AGE = "ask_age"


@pytest.fixture
def engine(storage, state_store, bot_service, broadcaster, bot):
    eng = ConversationEngine(bot.bot_id, storage, state_store, bot_service, broadcaster)

    async def start(ctx):
        ctx.state.transition(Step.ASK_NAME)
        return Reply("Name?")

    async def cancel(ctx):
        ctx.state.reset()
        return Reply("Cancelled")

    async def ask_name(ctx):
        ctx.state.transition(Step.ASK_AGE, {"name": ctx.text})
        return Reply(f"Age, {ctx.text}?")

    async def ask_age(ctx):
        if ctx.command == "skip":
            name = ctx.state.data.get("name", "?")
            ctx.state.reset()
            return Reply(f"Skipped age for {name}")
        if not ctx.text.isdigit():
            return None
        name = ctx.state.data["name"]
        ctx.state.reset()
        return Reply(f"{name} is {ctx.text}")

    async def fallback(ctx):
        return Reply(f"Fallback: {ctx.text}")

    async def exact(ctx):
        return Reply("exact")

    async def short_prefix(ctx):
        return Reply(f"short:{ctx.arg}")

    async def long_prefix(ctx):
        return Reply(f"long:{ctx.arg}")

    async def greet(ctx):
        return Reply(f"Hello {ctx.user_name} {ctx.arg}".strip())

    eng.on_command("start", start)
    eng.on_command("cancel", cancel)
    eng.on_command("greet", greet)
    eng.on_state(Step.ASK_NAME, ask_name)
    eng.on_state(Step.ASK_AGE, ask_age, commands=("skip",))
    eng.on_fallback(fallback)
    eng.on_callback("item_list", exact)
    eng.on_callback_prefix("item_", short_prefix)
    eng.on_callback_prefix("item_edit_", long_prefix)
    return eng


async def send(engine, update_log, **kwargs):
    update = inbound(engine.bot_id, **kwargs)
    await update_log.append(update)
    return await engine.handle(update)


class TestDispatchOrder:
    """Tests for callback, command, state and fallback routing."""

    @pytest.mark.asyncio
    async def test_wizard_flow(self, engine, update_log, state_store):
        assert (await send(engine, update_log, text="/start")).text == "Name?"
        assert (await send(engine, update_log, text="Ann")).text == "Age, Ann?"
        assert (await send(engine, update_log, text="30")).text == "Ann is 30"
        assert (await state_store.get(engine.bot_id, OWNER_ID)).is_idle

    @pytest.mark.asyncio
    async def test_state_handler_none_falls_through(self, engine, update_log, state_store):
        await send(engine, update_log, text="/start")
        await send(engine, update_log, text="Ann")

        reply = await send(engine, update_log, text="thirty")

        assert reply.text == "Fallback: thirty"
        state = await state_store.get(engine.bot_id, OWNER_ID)
        assert state.state == "ask_age"
        assert state.data == {"name": "Ann"}

    @pytest.mark.asyncio
    async def test_cancel_resets_from_any_state(self, engine, update_log, state_store):
        await send(engine, update_log, text="/start")
        await send(engine, update_log, text="Ann")

        assert (await send(engine, update_log, text="/cancel")).text == "Cancelled"

        state = await state_store.get(engine.bot_id, OWNER_ID)
        assert state.is_idle
        assert state.data == {}

    @pytest.mark.asyncio
    async def test_state_command_routed_to_step(self, engine, update_log):
        await send(engine, update_log, text="/start")
        await send(engine, update_log, text="Ann")
        assert (await send(engine, update_log, text="/skip")).text == "Skipped age for Ann"

    @pytest.mark.asyncio
    async def test_state_command_unknown_outside_state(self, engine, update_log):
        reply = await send(engine, update_log, text="/skip")
        assert reply.text.startswith("Unknown command: /skip")

    @pytest.mark.asyncio
    async def test_command_beats_state(self, engine, update_log):
        await send(engine, update_log, text="/start")
        assert (await send(engine, update_log, text="/greet all")).text == "Hello Alice all"

    @pytest.mark.asyncio
    async def test_catch_all_step_takes_any_command(self, engine, update_log, state_store):
        async def collect(ctx):
            return Reply(f"collected /{ctx.command}: {ctx.update.text}")

        async def begin(ctx):
            ctx.state.transition("collect")
            return Reply("Send commands")

        engine.on_command("collect", begin)
        engine.on_state("collect", collect, commands=ANY_COMMAND)

        await send(engine, update_log, text="/collect")
        reply = await send(engine, update_log, text="/greet - Say hi\n/news - Headlines")
        assert reply.text == "collected /greet: /greet - Say hi\n/news - Headlines"
        assert (await send(engine, update_log, text="/frobnicate")).text.startswith("collected")

        assert (await send(engine, update_log, text="/cancel")).text == "Cancelled"
        assert (await state_store.get(engine.bot_id, OWNER_ID)).is_idle

    @pytest.mark.asyncio
    async def test_callback_routing(self, engine, update_log):
        assert (await send(engine, update_log, text=None, callback_data="item_list")).text == "exact"
        assert (await send(engine, update_log, text=None, callback_data="item_7")).text == "short:7"
        assert (
            await send(engine, update_log, text=None, callback_data="item_edit_7")
        ).text == "long:7"
        assert await send(engine, update_log, text=None, callback_data="nothing") is None

    @pytest.mark.asyncio
    async def test_callback_acknowledged_before_reply(self, engine, update_log, recorder):
        events = recorder(str(OWNER_ID))
        update = inbound(engine.bot_id, text=None, callback_data="item_list")
        await update_log.append(update)

        await engine.handle(update)

        assert [event for event, _ in events] == [EVENT_CALLBACK_ANSWER, EVENT_MESSAGE]
        assert events[0][1]["callback_query_id"] == str(update.id)

    @pytest.mark.asyncio
    async def test_non_user_chat_ignored(self, engine, update_log):
        assert await send(engine, update_log, chat_id="group_1", text="/start") is None

    @pytest.mark.asyncio
    async def test_media_without_text_gets_no_reply(self, engine, update_log):
        from botrelay.models import Media

        assert await send(engine, update_log, text=None, media=Media("photo", "u")) is None


class TestReplies:
    """Every terminal step yields exactly one persisted, broadcast reply."""

    @pytest.mark.asyncio
    async def test_one_outbound_per_step(self, engine, update_log, storage, recorder, bot):
        events = recorder(f"user_bot_{OWNER_ID}_{bot.bot_id}")

        reply = await send(engine, update_log, text="/start")

        stored = await storage.get_update(bot.bot_id, reply.id)
        assert stored.text == "Name?"
        assert stored.processed
        assert len(events) == 1
        assert events[0][1]["message_id"] == reply.id

    @pytest.mark.asyncio
    async def test_same_user_replies_in_order(self, engine, update_log):
        async def slow_greet(ctx):
            if ctx.arg == "first":
                await asyncio.sleep(0.05)
            return Reply(ctx.arg)

        engine.on_command("greet", slow_greet)
        first = inbound(engine.bot_id, text="/greet first")
        second = inbound(engine.bot_id, text="/greet second")
        await update_log.append(first)
        await update_log.append(second)

        replies = await asyncio.gather(engine.handle(first), engine.handle(second))

        assert [r.text for r in replies] == ["first", "second"]
        assert replies[0].id < replies[1].id
