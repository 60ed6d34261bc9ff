"""
Case Warden - Test Fixtures
===========================

Shared fixtures for all tests.
"""

import os
import sys
import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set up test environment before importing modules
os.environ["TESTING"] = "1"
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="warden-test-logs-"))

from src.core.database import CaseStore, JsonFileBackend, MemoryBackend  # noqa: E402
from src.core.moderation_config import ModerationConfig, ModerationConfigProvider  # noqa: E402
from src.services.moderation import (  # noqa: E402
    GuildRef,
    InboundMessage,
    MemberRef,
    ModerationEngine,
    ModerationPlatform,
)


GUILD_ID = "1000"
GUILD_NAME = "Syria"
USER_ID = "2000"
MODERATOR_ID = "3000"
LOG_CHANNEL_ID = "4000"
STAFF_ROLE_ID = "5000"


class ManualClock:
    """Clock the test advances by hand."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def memory_backend():
    return MemoryBackend()


@pytest.fixture
def json_backend(tmp_path):
    return JsonFileBackend(tmp_path / "moderation" / "cases.json")


@pytest.fixture
def store(json_backend, clock):
    """CaseStore on a temp JSON file."""
    return CaseStore(json_backend, clock=clock)


@pytest.fixture
def memory_store(memory_backend, clock):
    return CaseStore(memory_backend, clock=clock)


def make_platform() -> MagicMock:
    """AsyncMock-based platform where every guild and member resolves."""
    platform = MagicMock(spec=ModerationPlatform)
    platform.bot_user_id.return_value = "999"
    platform.resolve_guild = AsyncMock(
        side_effect=lambda guild_id: GuildRef(id=guild_id, name=GUILD_NAME)
    )
    platform.resolve_member = AsyncMock(
        side_effect=lambda guild_id, user_id: MemberRef(
            id=user_id, tag=f"member{user_id}", display_name=f"Member {user_id}"
        )
    )
    platform.member_guilds = AsyncMock(return_value=[GuildRef(id=GUILD_ID, name=GUILD_NAME)])
    platform.timeout_member = AsyncMock(return_value=None)
    platform.kick_member = AsyncMock(return_value=None)
    platform.ban_member = AsyncMock(return_value=None)
    platform.send_direct_message = AsyncMock(return_value=None)
    platform.delete_message = AsyncMock(return_value=None)
    platform.send_log_message = AsyncMock(return_value=None)
    return platform


@pytest.fixture
def platform():
    return make_platform()


@pytest.fixture
def config_provider():
    """Defaults with logging routed and escalation at warn=3."""
    return ModerationConfigProvider(ModerationConfig.from_dict({
        "escalation": {"warn_threshold": 3, "timeout_threshold": 3, "ban_threshold": 5},
        "alerts": {
            "log_channel_id": LOG_CHANNEL_ID,
            "staff_role_id": STAFF_ROLE_ID,
            "notify_on_auto_action": True,
        },
    }))


@pytest.fixture
def engine(store, platform, config_provider, clock):
    engine = ModerationEngine(store, platform, config_provider, clock=clock)
    yield engine
    engine.close()


@pytest.fixture
def make_message():
    """Factory for InboundMessage with sensible defaults."""
    counter = {"n": 0}

    def factory(content: str = "hello", **overrides) -> InboundMessage:
        counter["n"] += 1
        values = {
            "guild_id": GUILD_ID,
            "channel_id": "6000",
            "message_id": str(7000 + counter["n"]),
            "author_id": USER_ID,
            "author_tag": "member2000",
            "content": content,
            "guild_name": GUILD_NAME,
        }
        values.update(overrides)
        return InboundMessage(**values)

    return factory
