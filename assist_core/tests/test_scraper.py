import httpx

from assist_core.scraping.scraper import NO_PREVIEW, SCRAPE_FAILED, USER_AGENT, ContentScraper

PAGE = """<html><head>
<title>Example Domain</title>
<meta name="description" content="An example page.">
<link rel="icon" href="/static/favicon.ico">
</head><body>hi</body></html>"""


class SettingsStub:
    firecrawl_api_key = None
    firecrawl_base_url = "https://firecrawl.test/v0"
    http_timeout = 1.0
    scrape_content_limit = 8000


class WithKey(SettingsStub):
    firecrawl_api_key = "f" * 12


class Resp:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("not json")
        return self._payload


def _install(monkeypatch, post=None, get=None, calls=None):
    calls = calls if calls is not None else []

    class Client:
        def __init__(self, *a, **kw):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *a):
            return False

        def post(self, url, **kw):
            calls.append(("POST", url, kw))
            if isinstance(post, Exception):
                raise post
            return post

        def get(self, url, **kw):
            calls.append(("GET", url, kw))
            if isinstance(get, Exception):
                raise get
            return get

    monkeypatch.setattr("httpx.Client", Client)
    return calls


def test_degraded_path_without_credential(monkeypatch):
    calls = _install(monkeypatch, get=Resp(200, text=PAGE))
    result = ContentScraper(SettingsStub()).scrape("https://example.test/page")
    assert [c[0] for c in calls] == ["GET"]
    assert calls[0][2]["headers"]["User-Agent"] == USER_AGENT
    assert result.success is True
    assert result.title == "Example Domain"
    assert result.content == "An example page."
    assert result.favicon == "https://example.test/static/favicon.ico"


def test_degraded_path_og_fallbacks(monkeypatch):
    page = (
        '<meta property="og:title" content="OG Title">'
        '<meta property="og:description" content="OG desc">'
    )
    _install(monkeypatch, get=Resp(200, text=page))
    result = ContentScraper(SettingsStub()).scrape("https://example.test")
    assert result.title == "OG Title"
    assert result.content == "OG desc"
    assert result.favicon is None


def test_degraded_path_defaults(monkeypatch):
    _install(monkeypatch, get=Resp(200, text="<p>nothing</p>"))
    result = ContentScraper(SettingsStub()).scrape("https://example.test")
    assert result.title == "https://example.test"
    assert result.content == NO_PREVIEW
    assert result.success is True


def test_degraded_fetch_failure_never_raises(monkeypatch):
    _install(monkeypatch, get=httpx.ConnectError("dns"))
    result = ContentScraper(SettingsStub()).scrape("https://down.test")
    assert result.success is False
    assert result.title == "https://down.test"
    assert result.content == SCRAPE_FAILED


def test_firecrawl_success_mapping(monkeypatch):
    payload = {
        "success": True,
        "data": {
            "markdown": "# Hello",
            "metadata": {"ogTitle": "OG", "ogImage": "https://a.test/og.png"},
        },
    }
    calls = _install(monkeypatch, post=Resp(200, payload))
    result = ContentScraper(WithKey()).scrape("https://a.test")
    assert calls[0][1] == "https://firecrawl.test/v0/scrape"
    assert calls[0][2]["json"] == {"url": "https://a.test", "pageOptions": {"onlyMainContent": True}}
    assert result.title == "OG"
    assert result.content == "# Hello"
    assert result.favicon == "https://a.test/og.png"
    assert result.success is True


def test_firecrawl_untitled_and_raw_content(monkeypatch):
    _install(monkeypatch, post=Resp(200, {"success": True, "data": {"content": "raw", "metadata": {}}}))
    result = ContentScraper(WithKey()).scrape("https://a.test")
    assert result.title == "Untitled"
    assert result.content == "raw"


def test_firecrawl_failure_falls_back(monkeypatch):
    calls = _install(monkeypatch, post=Resp(500, text="err"), get=Resp(200, text=PAGE))
    result = ContentScraper(WithKey()).scrape("https://example.test")
    assert [c[0] for c in calls] == ["POST", "GET"]
    assert result.title == "Example Domain"


def test_firecrawl_unsuccessful_body_falls_back(monkeypatch):
    calls = _install(monkeypatch, post=Resp(200, {"success": False, "error": "blocked"}), get=Resp(200, text=PAGE))
    ContentScraper(WithKey()).scrape("https://example.test")
    assert [c[0] for c in calls] == ["POST", "GET"]


def test_firecrawl_malformed_json_falls_back(monkeypatch):
    calls = _install(monkeypatch, post=Resp(200, None, text="<html>"), get=Resp(200, text=PAGE))
    result = ContentScraper(WithKey()).scrape("https://example.test")
    assert [c[0] for c in calls] == ["POST", "GET"]
    assert result.success is True


def test_content_truncated(monkeypatch):
    _install(monkeypatch, post=Resp(200, {"success": True, "data": {"markdown": "x" * 9000}}))
    result = ContentScraper(WithKey()).scrape("https://a.test")
    assert len(result.content) == 8000


def test_firecrawl_non_dict_metadata_falls_back(monkeypatch):
    calls = _install(monkeypatch, post=Resp(200, {"success": True, "data": {"markdown": "ok", "metadata": "oops"}}), get=Resp(200, text=PAGE))
    result = ContentScraper(WithKey()).scrape("https://example.test")
    assert [c[0] for c in calls] == ["POST", "GET"]
    assert result.title == "Example Domain"
    assert result.success is True


def test_firecrawl_non_string_markdown_falls_back(monkeypatch):
    calls = _install(monkeypatch, post=Resp(200, {"success": True, "data": {"markdown": 123, "metadata": {}}}), get=Resp(200, text=PAGE))
    result = ContentScraper(WithKey()).scrape("https://example.test")
    assert [c[0] for c in calls] == ["POST", "GET"]
    assert result.content == "An example page."


def test_firecrawl_non_string_title_falls_back(monkeypatch):
    calls = _install(monkeypatch, post=Resp(200, {"success": True, "data": {"markdown": "ok", "metadata": {"title": ["x"]}}}), get=Resp(200, text=PAGE))
    ContentScraper(WithKey()).scrape("https://example.test")
    assert [c[0] for c in calls] == ["POST", "GET"]


def test_degraded_path_parses_error_pages(monkeypatch):
    _install(monkeypatch, get=Resp(404, text="<title>Page Not Found</title>"))
    result = ContentScraper(SettingsStub()).scrape("https://example.test/missing")
    assert result.success is True
    assert result.title == "Page Not Found"
    assert result.content == NO_PREVIEW
