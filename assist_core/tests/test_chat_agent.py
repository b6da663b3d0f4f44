"""测试笔记助手一轮对话的完整流程。"""

import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path

import pytest

from assist_core.agents.chat_agent import NotesChatAgent
from assist_core.domain.conversation import CallerIdentity, Message
from assist_core.domain.exceptions import (
    ConfigurationError,
    ConversationNotFound,
    NoUserMessage,
    ProviderError,
    StoreConflictError,
    Unauthenticated,
)
from assist_core.domain.models import ScrapeResult
from assist_core.infrastructure.storage.json_store import JsonConversationStore

ME = CallerIdentity(subject="u1")


class SettingsStub:
    default_model = "claude"
    anthropic_api_key = "a" * 12
    anthropic_base_url = "https://api.anthropic.test/v1"
    groq_api_key = "g" * 12
    groq_base_url = "https://api.groq.test/openai/v1"
    http_timeout = 1.0
    system_prompt = None


class FakeScraper:
    def __init__(self):
        self.calls = []
        self._lock = threading.Lock()

    def scrape(self, url):
        with self._lock:
            self.calls.append(url)
        return ScrapeResult(url=url, title=f"T {url}", content=f"C {url}")


class Resp:
    def __init__(self, status_code, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        return self._payload


def _install_llm(monkeypatch, resp, posts):
    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, url, json=None, headers=None, params=None):
            posts.append((url, json))
            return resp

    monkeypatch.setattr("httpx.Client", Client)


@pytest.fixture
def store():
    with tempfile.TemporaryDirectory() as d:
        yield JsonConversationStore(root=Path(d) / ".storage")


def _add(store, session_id, role, content):
    count = len(store.get_session(session_id).messages)
    store.append_message(
        session_id,
        Message(role=role, content=content, timestamp=datetime.now(timezone.utc)),
        expected_count=count,
    )


def test_end_to_end_default_backend(monkeypatch, store):
    posts = []
    _install_llm(monkeypatch, Resp(200, {"content": [{"type": "text", "text": "Both pages are about testing."}]}), posts)
    scraper = FakeScraper()
    agent = NotesChatAgent(store=store, scraper=scraper, cfg=SettingsStub())
    session = agent.get_or_create_chat(ME, "2026-10-19")
    for i in range(30):
        _add(store, session.id, "user" if i % 2 == 0 else "assistant", f"old {i}")
    agent.send_message(ME, session.id, "check https://a.test and https://b.test")

    reply = agent.generate_response(ME, session.id)

    assert reply == "Both pages are about testing."
    assert sorted(scraper.calls) == ["https://a.test", "https://b.test"]
    assert len(posts) == 1
    url, payload = posts[0]
    assert url == "https://api.anthropic.test/v1/messages"
    # 20 条历史 + 本轮用户消息
    assert len(payload["messages"]) == 21
    final = payload["messages"][-1]["content"]
    assert final[-1]["type"] == "text"
    assert "C https://a.test" in final[-1]["text"]

    updated = store.get_session(session.id)
    assert len(updated.messages) == 32
    last = updated.messages[-1]
    assert last.role == "assistant"
    assert last.content == reply
    assert updated.last_message_at >= last.timestamp
    assert updated.search_text.endswith(" " + reply)


def test_grok_backend_selected_explicitly(monkeypatch, store):
    posts = []
    _install_llm(monkeypatch, Resp(200, {"choices": [{"message": {"content": "groq says hi"}}]}), posts)
    agent = NotesChatAgent(store=store, scraper=FakeScraper(), cfg=SettingsStub())
    session = agent.get_or_create_chat(ME, "2026-10-19")
    assert agent.generate_response(ME, session.id, user_message="hello", model="grok") == "groq says hi"
    assert posts[0][0] == "https://api.groq.test/openai/v1/chat/completions"


def test_no_user_message_before_any_network_call(monkeypatch, store):
    posts = []
    _install_llm(monkeypatch, Resp(200, {}), posts)
    scraper = FakeScraper()
    agent = NotesChatAgent(store=store, scraper=scraper, cfg=SettingsStub())
    session = agent.get_or_create_chat(ME, "2026-10-19")
    with pytest.raises(NoUserMessage):
        agent.generate_response(ME, session.id)
    assert posts == []
    assert scraper.calls == []


def test_unauthenticated(store):
    agent = NotesChatAgent(store=store, scraper=FakeScraper(), cfg=SettingsStub())
    with pytest.raises(Unauthenticated):
        agent.generate_response(None, "s-any", user_message="hi")


def test_missing_credential_fails_before_scraping(monkeypatch, store):
    class NoClaude(SettingsStub):
        anthropic_api_key = None

    posts = []
    _install_llm(monkeypatch, Resp(200, {}), posts)
    scraper = FakeScraper()
    agent = NotesChatAgent(store=store, scraper=scraper, cfg=NoClaude())
    session = agent.get_or_create_chat(ME, "2026-10-19")
    with pytest.raises(ConfigurationError):
        agent.generate_response(ME, session.id, user_message="see https://a.test")
    assert scraper.calls == []
    assert posts == []


def test_provider_error_leaves_no_assistant_message(monkeypatch, store):
    _install_llm(monkeypatch, Resp(500, None, text="overloaded"), [])
    agent = NotesChatAgent(store=store, scraper=FakeScraper(), cfg=SettingsStub())
    session = agent.get_or_create_chat(ME, "2026-10-19")
    agent.send_message(ME, session.id, "hello")
    with pytest.raises(ProviderError):
        agent.generate_response(ME, session.id)
    assert [m.role for m in store.get_session(session.id).messages] == ["user"]


def test_stale_session_surfaces_conflict(monkeypatch, store):
    agent = NotesChatAgent(store=store, scraper=FakeScraper(), cfg=SettingsStub())
    session = agent.get_or_create_chat(ME, "2026-10-19")

    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, url, json=None, headers=None, params=None):
            # 生成回复期间会话被另一个写入改变
            _add(store, session.id, "user", "concurrent")
            return Resp(200, {"content": [{"type": "text", "text": "late"}]})

    monkeypatch.setattr("httpx.Client", Client)
    with pytest.raises(StoreConflictError):
        agent.generate_response(ME, session.id, user_message="hi")
    assert [m.content for m in store.get_session(session.id).messages] == ["concurrent"]


def test_other_users_chat_is_not_found(store):
    agent = NotesChatAgent(store=store, scraper=FakeScraper(), cfg=SettingsStub())
    session = agent.get_or_create_chat(ME, "2026-10-19")
    other = CallerIdentity(subject="u2")
    with pytest.raises(ConversationNotFound):
        agent.generate_response(other, session.id, user_message="hi")
    assert agent.get_messages(other, session.id) == []


def test_chat_listing(store):
    agent = NotesChatAgent(store=store, scraper=FakeScraper(), cfg=SettingsStub())
    agent.get_or_create_chat(ME, "2026-10-18")
    agent.get_or_create_chat(ME, "2026-10-19")
    assert agent.get_chat_counts(ME) == {"2026-10-18": 1, "2026-10-19": 1}
    assert [s.date_key for s in agent.list_chats(ME)] == ["2026-10-19", "2026-10-18"]
    assert agent.list_chats(None) == []
    assert agent.get_chat_by_date(ME, "2026-10-17") is None
