"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest
import pytest_asyncio

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

OWNER_ID = 42
OWNER_TOKEN = "owner-access-token"
OTHER_USER_ID = 7


@pytest_asyncio.fixture
async def storage():
    """Create in-memory storage for testing."""
    from botrelay.models import User
    from botrelay.storage import Storage

    st = Storage(":memory:")
    await st.init()
    await st.save_user(User(user_id=OWNER_ID, username="alice", first_name="Alice"))
    await st.save_session(OWNER_TOKEN, OWNER_ID)
    await st.save_user(User(user_id=OTHER_USER_ID, username="bob", first_name="Bob"))
    yield st
    await st.close()


@pytest.fixture
def update_log(storage):
    """Create UpdateLog over storage."""
    from botrelay.updates import UpdateLog

    return UpdateLog(storage)


@pytest.fixture
def transport():
    """Create in-memory real-time transport."""
    from botrelay.fanout import InMemoryTransport

    return InMemoryTransport()


@pytest.fixture
def broadcaster(transport):
    from botrelay.fanout import FanoutBroadcaster

    return FanoutBroadcaster(transport)


@pytest.fixture
def bot_service(storage, update_log, broadcaster):
    """Create BotService with the default rate limit."""
    from botrelay.bots import BotService

    return BotService(storage, update_log, broadcaster, send_rate_limit=60)


@pytest_asyncio.fixture
async def bot(bot_service):
    """A standard bot owned by OWNER_ID."""
    return await bot_service.create_bot(
        owner_id=OWNER_ID,
        username="echo_test_bot",
        display_name="Echo",
        description="Echoes things",
    )


@pytest.fixture
def state_store():
    from botrelay.conversation import ShardedStateStore

    return ShardedStateStore()


@pytest_asyncio.fixture
async def manager(storage, update_log, bot_service, broadcaster, state_store):
    """Registered ManagerBot attached to bot_service ingress."""
    from botrelay.conversation import ManagerBot

    mb = ManagerBot(
        storage=storage,
        update_log=update_log,
        bot_service=bot_service,
        broadcaster=broadcaster,
        state_store=state_store,
    )
    await mb.ensure_registered()
    return mb


@pytest.fixture
def recorder(transport):
    """Collect events emitted to a room: recorder(room) -> list of (event, payload)."""
    rooms: dict[str, list] = {}

    def subscribe(room: str) -> list:
        events = rooms.setdefault(room, [])

        async def handler(event: str, payload: dict) -> None:
            events.append((event, payload))

        transport.subscribe(room, handler)
        return events

    return subscribe


def inbound(bot_id: str, chat_id: int | str = OWNER_ID, text: str | None = "hello", **kwargs):
    """Unsaved inbound update."""
    from botrelay.models import Direction, Update, parse_command

    command = parse_command(text) if not kwargs.get("callback_data") else None
    fields = {
        "id": None,
        "command_name": command[0] if command else None,
        "command_args": command[1] if command else None,
    }
    fields.update(kwargs)
    return Update(
        bot_id=bot_id,
        chat_id=str(chat_id),
        direction=Direction.INBOUND,
        text=text,
        **fields,
    )
