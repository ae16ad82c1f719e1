import asyncio

import httpx
import pytest

import service.cache as cache_mod
from config import CacheOptions, ServiceOptions
from service.cache import RequestMemoizer, TTLCache
from service.nexon_client import MapleClient
from service.user_history import UserHistoryStore


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock(monkeypatch):
    fake = FakeClock()
    monkeypatch.setattr(cache_mod.time, "time", fake)
    return fake


class DummyAuthor:
    def __init__(self, user_id: int = 42) -> None:
        self.id = user_id
        self.bot = False


class DummyChannel:
    id = 7


class DummyContext:
    """Minimal commands.Context stand-in that records sent messages."""

    def __init__(self, author=None) -> None:
        self.author = author if author is not None else DummyAuthor()
        self.channel = DummyChannel()
        self.guild = None
        self.sent = []

    async def send(self, content=None, **kwargs):
        self.sent.append({"content": content, **kwargs})

    @property
    def texts(self):
        return [m["content"] for m in self.sent if m["content"] is not None]

    @property
    def embeds(self):
        return [m["embed"] for m in self.sent if m.get("embed") is not None]


class DummyMessage:
    def __init__(self, author, channel, content: str) -> None:
        self.author = author
        self.channel = channel
        self.content = content


class DummyBot:
    """Answers wait_for("message") with a fixed reply, or times out."""

    def __init__(self, reply=None, author=None, channel=None) -> None:
        self.reply = reply
        self.reply_author = author
        self.reply_channel = channel

    async def wait_for(self, event, *, check=None, timeout=None):
        if self.reply is None:
            raise asyncio.TimeoutError()
        message = DummyMessage(self.reply_author, self.reply_channel, self.reply)
        assert check is None or check(message)
        return message


class FakeConnector:
    """In-memory replacement for AsyncDBConnector binding queries."""

    def __init__(self, fail: bool = False) -> None:
        self.rows = {}
        self.fail = fail

    async def get_binding(self, user_id, platform, region):
        if self.fail:
            raise OSError("connection refused")
        return self.rows.get((user_id, platform, region))

    async def upsert_binding(self, user_id, platform, region, character_name):
        if self.fail:
            raise OSError("connection refused")
        self.rows[(user_id, platform, region)] = {"character_name": character_name, "update_at": None}


@pytest.fixture
def ctx():
    return DummyContext()


def make_options(**overrides) -> ServiceOptions:
    values = dict(
        api_key="test-key",
        region="kms",
        base_url="https://open.api.test",
        timeout=5,
        rps_limit=100,
        experience_days=3,
        cache=CacheOptions(enabled=True, ttl=300, max_size=64),
    )
    values.update(overrides)
    return ServiceOptions(**values)


def make_client(handler, memoizer=None, **overrides) -> MapleClient:
    options = make_options(**overrides)
    http_client = httpx.AsyncClient(base_url=options.base_url, transport=httpx.MockTransport(handler))
    if memoizer is None:
        memoizer = RequestMemoizer(TTLCache(ttl=300, max_size=64))
    return MapleClient(options, memoizer, http_client=http_client)


def make_history(connector=None, allow_binding: bool = True) -> UserHistoryStore:
    return UserHistoryStore(connector, allow_binding)
