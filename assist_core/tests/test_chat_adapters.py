import pytest

from assist_core.domain.exceptions import ConfigurationError
from assist_core.domain.models import ContextBundle, HistoryMessage, ScrapeResult
from assist_core.providers.anthropic_client import AnthropicClient
from assist_core.providers.base import NO_RESPONSE_PLACEHOLDER
from assist_core.providers.groq_client import GroqClient


class SettingsStub:
    anthropic_api_key = "a" * 12
    anthropic_base_url = "https://api.anthropic.test/v1"
    groq_api_key = "g" * 12
    groq_base_url = "https://api.groq.test/openai/v1"
    http_timeout = 1.0


class NoKeys:
    anthropic_api_key = None
    groq_api_key = None
    http_timeout = 1.0


def _context(**kw):
    base = dict(
        history=[HistoryMessage(role="user", content="earlier"), HistoryMessage(role="assistant", content="reply")],
        image_urls=[],
        scrapes=[],
        note_context="",
        user_message="what now?",
        system_prompt="SYS",
    )
    base.update(kw)
    return ContextBundle(**base)


def test_groq_flattens_everything_into_final_turn():
    gc = GroqClient(SettingsStub())
    ctx = _context(
        note_context="NOTES|",
        image_urls=["https://img.test/1", "https://img.test/2"],
        scrapes=[ScrapeResult(url="https://a.test", title="A", content="body a")],
    )
    req = gc.build_request(ctx, "llama-3.3-70b-versatile")
    assert req.url == "https://api.groq.test/openai/v1/chat/completions"
    assert req.headers["Authorization"] == "Bearer " + "g" * 12
    msgs = req.json["messages"]
    assert msgs[0] == {"role": "system", "content": "SYS"}
    assert [m["content"] for m in msgs[1:3]] == ["earlier", "reply"]
    final = msgs[-1]["content"]
    assert final.startswith("NOTES|what now?")
    assert "2 image(s) attached but vision processing not available" in final
    assert "**Referenced Content:**" in final
    assert "### A\n*Source: https://a.test*\n\nbody a" in final
    assert req.json["temperature"] == 0.7
    assert req.json["model"] == "llama-3.3-70b-versatile"


def test_groq_extract_text_and_placeholder():
    gc = GroqClient(SettingsStub())
    assert gc.extract_text({"choices": [{"message": {"role": "assistant", "content": "ok"}}]}) == "ok"
    assert gc.extract_text({"choices": [{"message": {"content": None}}]}) == NO_RESPONSE_PLACEHOLDER
    assert gc.extract_text({}) == NO_RESPONSE_PLACEHOLDER


def test_anthropic_plain_text_prepends_notes():
    ac = AnthropicClient(SettingsStub())
    req = ac.build_request(_context(note_context="NOTES|"), "claude-3-5-sonnet-20240620")
    assert req.url == "https://api.anthropic.test/v1/messages"
    assert req.headers["x-api-key"] == "a" * 12
    assert req.json["system"] == "SYS"
    assert req.json["messages"][:2] == [
        {"role": "user", "content": "earlier"},
        {"role": "assistant", "content": "reply"},
    ]
    assert req.json["messages"][-1] == {"role": "user", "content": "NOTES|what now?"}


def test_anthropic_builds_image_blocks_first():
    ac = AnthropicClient(SettingsStub())
    ctx = _context(
        image_urls=["https://img.test/1", "https://img.test/2"],
        scrapes=[ScrapeResult(url="https://a.test", title="A", content="body a")],
    )
    content = ac.build_request(ctx, "claude-3-5-sonnet-20240620").json["messages"][-1]["content"]
    assert [b["type"] for b in content] == ["image", "image", "text"]
    assert content[0]["source"] == {"type": "url", "url": "https://img.test/1"}
    assert content[2]["text"].startswith("what now?")
    assert "body a" in content[2]["text"]


def test_anthropic_extract_text():
    ac = AnthropicClient(SettingsStub())
    raw = {"content": [{"type": "tool_use", "id": "x"}, {"type": "text", "text": "hello"}]}
    assert ac.extract_text(raw) == "hello"
    assert ac.extract_text({"content": []}) == NO_RESPONSE_PLACEHOLDER


@pytest.mark.parametrize("adapter_cls", [AnthropicClient, GroqClient])
def test_missing_key_is_configuration_error(adapter_cls):
    adapter = adapter_cls(NoKeys())
    with pytest.raises(ConfigurationError):
        adapter.ensure_configured()
    with pytest.raises(ConfigurationError):
        adapter.build_request(_context(), adapter.variants[0])


@pytest.mark.parametrize("raw", [
    {"choices": [None]},
    {"choices": [{"message": "hi"}]},
    {"choices": "nope"},
    {"choices": [{"message": {"content": 42}}]},
    [],
])
def test_groq_unusable_success_body_yields_placeholder(raw):
    assert GroqClient(SettingsStub()).extract_text(raw) == NO_RESPONSE_PLACEHOLDER


@pytest.mark.parametrize("raw", [
    {"content": "text"},
    {"content": [{"type": "text", "text": None}]},
    {"content": [{"type": "text", "text": {"x": 1}}]},
    ["content"],
])
def test_anthropic_unusable_success_body_yields_placeholder(raw):
    assert AnthropicClient(SettingsStub()).extract_text(raw) == NO_RESPONSE_PLACEHOLDER
