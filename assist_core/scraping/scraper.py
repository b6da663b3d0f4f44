"""网页内容抓取。

主路径调用 Firecrawl 抓取服务；未配置密钥、接口失败或返回格式不对时，
退化为直接拉取页面 HTML，用正则提取 title / description / favicon。
scrape() 永远不抛异常，最差返回 success=False 的结果。
"""

import html
import re
from typing import Any, Dict, Optional
from urllib.parse import urljoin

import httpx

from assist_core.config.settings import settings
from assist_core.domain.models import ScrapeResult
from assist_core.infrastructure.logging.logger import logger

USER_AGENT = "Mozilla/5.0 (compatible; AI-Chat-Bot/1.0)"
NO_PREVIEW = "No content preview available."
SCRAPE_FAILED = "Could not scrape link content."

_TITLE_PATTERNS = [
    re.compile(r"<title[^>]*>(.*?)</title>", re.I | re.S),
    re.compile(r'<meta property="og:title" content="(.*?)"', re.I),
]
_DESCRIPTION_PATTERNS = [
    re.compile(r'<meta name="description" content="(.*?)"', re.I),
    re.compile(r'<meta property="og:description" content="(.*?)"', re.I),
]
_FAVICON_PATTERNS = [
    re.compile(r'<link rel="icon" href="(.*?)"', re.I),
    re.compile(r'<link rel="shortcut icon" href="(.*?)"', re.I),
]


class FirecrawlError(Exception):
    """主路径失败，只在本模块内部用于切换到降级路径。"""


def _first_match(patterns, text: str) -> Optional[str]:
    for pattern in patterns:
        m = pattern.search(text)
        if m:
            value = html.unescape(m.group(1)).strip()
            if value:
                return value
    return None


def _str_field(obj: Dict[str, Any], *keys: str) -> Optional[str]:
    """按顺序取第一个非空字段；字段存在但不是字符串视为格式错误。"""
    for key in keys:
        value = obj.get(key)
        if value is None or value == "":
            continue
        if not isinstance(value, str):
            raise FirecrawlError(f"Malformed Firecrawl field: {key}")
        return value
    return None


class ContentScraper:
    def __init__(self, cfg=settings):
        self._settings = cfg

    @property
    def content_limit(self) -> int:
        return int(getattr(self._settings, "scrape_content_limit", 8000))

    def scrape(self, url: str) -> ScrapeResult:
        api_key = getattr(self._settings, "firecrawl_api_key", None)
        if not api_key:
            logger.info("No FIRECRAWL_API_KEY, using basic metadata extraction", extra={"extra": {"url": url}})
            return self._truncate(self.basic_extract(url))
        try:
            return self._truncate(self._firecrawl(url, api_key))
        except (FirecrawlError, httpx.HTTPError, ValueError) as e:
            logger.warning("Firecrawl scrape failed, falling back", extra={"extra": {"url": url, "error": str(e)}})
            return self._truncate(self.basic_extract(url))

    def _firecrawl(self, url: str, api_key: str) -> ScrapeResult:
        base = getattr(self._settings, "firecrawl_base_url", None) or "https://api.firecrawl.dev/v0"
        with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
            resp = client.post(
                f"{base}/scrape",
                json={"url": url, "pageOptions": {"onlyMainContent": True}},
                headers={
                    "Authorization": f"Bearer {api_key}",
                    "Content-Type": "application/json",
                },
            )
        if resp.status_code < 200 or resp.status_code >= 300:
            raise FirecrawlError(f"Firecrawl API error: {resp.status_code}")
        data = resp.json()
        if not isinstance(data, dict) or not data.get("success"):
            error = data.get("error") if isinstance(data, dict) else None
            raise FirecrawlError(error or "Unknown Firecrawl error")
        page: Dict[str, Any] = data.get("data") or {}
        if not isinstance(page, dict):
            raise FirecrawlError("Malformed Firecrawl response")
        metadata: Dict[str, Any] = page.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise FirecrawlError("Malformed Firecrawl metadata")
        return ScrapeResult(
            url=url,
            title=_str_field(metadata, "title", "ogTitle") or "Untitled",
            content=_str_field(page, "markdown", "content") or "",
            favicon=_str_field(metadata, "favicon", "ogImage"),
            success=True,
        )

    def basic_extract(self, url: str) -> ScrapeResult:
        """降级路径：直接拉取页面并用正则提取元信息。

        只要拿到了响应就解析正文（包括非 2xx 的错误页），只有请求本身失败才返回 success=False。
        """
        try:
            with httpx.Client(timeout=self._settings.http_timeout, follow_redirects=True) as client:
                resp = client.get(url, headers={"User-Agent": USER_AGENT})
            page = resp.text
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Basic extraction failed", extra={"extra": {"url": url, "error": str(e)}})
            return ScrapeResult(url=url, title=url, content=SCRAPE_FAILED, success=False)

        favicon = _first_match(_FAVICON_PATTERNS, page)
        return ScrapeResult(
            url=url,
            title=_first_match(_TITLE_PATTERNS, page) or url,
            content=_first_match(_DESCRIPTION_PATTERNS, page) or NO_PREVIEW,
            favicon=urljoin(url, favicon) if favicon else None,
            success=True,
        )

    def _truncate(self, result: ScrapeResult) -> ScrapeResult:
        if len(result.content) > self.content_limit:
            result.content = result.content[: self.content_limit]
        return result
