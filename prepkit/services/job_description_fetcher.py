from __future__ import annotations

import ipaddress
import logging
import re
import socket
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from prepkit.core.config import settings
from prepkit.core.scoring import get_scoring_value
from prepkit.services.llm import LLMError, chat_completion, llm_enabled

logger = logging.getLogger(__name__)

JOB_SELECTORS = (
    # job-board specific
    "article.job-description",
    "div.job-description",
    "section.job-description",
    "div[class*='job-detail']",
    "div[class*='job_detail']",
    "section[class*='job-detail']",
    "div[id*='job-description']",
    "div[id*='jobDescription']",
    # generic content
    "main article",
    "article",
    "main",
    "[role='main']",
    "div.content",
    "div#content",
    "body",
)

REMOVABLE_ELEMENTS = "script, style, nav, footer, header, aside, .nav, .footer, .header, .sidebar"

REQUEST_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/122.0.0.0 Safari/537.36"
    ),
    "Accept-Language": "ja,en-US;q=0.8,en;q=0.6",
}

EXTRACTION_SYSTEM_PROMPT = "あなたは求人情報の抽出専門家です。Webページから求人情報のみを抽出してください。"

EXTRACTION_PROMPT = """以下のWebページテキストから、求人情報に関する部分だけを抽出してください。
ナビゲーション、広告、その他の不要な情報は除外してください。

【抽出する情報】
- 募集職種
- 業務内容
- 必須スキル・歓迎スキル
- 求める人物像
- 勤務地・条件
- 企業情報（簡潔に）

【Webページテキスト】
{content}

※求人情報のみを抽出して返してください。説明文は不要です。
"""

MAX_REDIRECTS = 5

_WHITESPACE_RE = re.compile(r"\s+")


class FetchError(ValueError):
    pass


def host_is_private_or_local(hostname: str) -> bool:
    host = (hostname or "").strip().lower()
    if host in {"localhost", "127.0.0.1", "::1"} or host.endswith(".local"):
        return True
    try:
        ip = ipaddress.ip_address(host)
        return bool(ip.is_private or ip.is_loopback or ip.is_link_local or ip.is_reserved)
    except ValueError:
        pass
    try:
        for _family, _socktype, _proto, _canon, sockaddr in socket.getaddrinfo(host, None):
            address = sockaddr[0] if sockaddr else ""
            try:
                resolved = ipaddress.ip_address(address)
            except ValueError:
                continue
            if resolved.is_private or resolved.is_loopback or resolved.is_link_local or resolved.is_reserved:
                return True
    except OSError:
        # unresolvable hosts fail later at fetch time
        return False
    return False


def validate_url(url: str) -> str:
    """Return the hostname of an http(s) URL or raise ``FetchError``."""
    try:
        parsed = urlparse((url or "").strip())
    except ValueError as exc:
        raise FetchError("無効なURL形式です") from exc
    if parsed.scheme not in {"http", "https"} or not parsed.hostname:
        raise FetchError("有効なURLを入力してください")
    if host_is_private_or_local(parsed.hostname):
        raise FetchError("社内ネットワークやローカルのURLは取得できません")
    return parsed.hostname


def fetch_html(url: str) -> str:
    """GET ``url`` following at most ``MAX_REDIRECTS`` redirects, each target checked like the first."""
    current = url
    try:
        with httpx.Client(
            timeout=settings.job_fetch_timeout_s,
            follow_redirects=False,
            headers=REQUEST_HEADERS,
        ) as client:
            for _ in range(MAX_REDIRECTS + 1):
                response = client.get(current)
                if not response.is_redirect:
                    break
                location = response.headers.get("location")
                if not location:
                    break
                current = urljoin(str(response.url), location)
                validate_url(current)
                logger.info("job_fetch_redirect to=%s", current)
            else:
                raise FetchError("リダイレクトが多すぎます")
    except httpx.TimeoutException as exc:
        raise FetchError(f"URLからの取得がタイムアウトしました: {exc}") from exc
    except httpx.HTTPError as exc:
        raise FetchError(f"URLに接続できません: {exc}") from exc

    if response.status_code >= 400:
        raise FetchError(f"URLからの取得に失敗しました: {response.status_code} {response.reason_phrase}")
    return response.text or ""


def clean_whitespace(content: str) -> str:
    return _WHITESPACE_RE.sub(" ", content or "").strip()


def _find_longest_content(soup: BeautifulSoup, selector: str) -> str | None:
    elements = soup.select(selector)
    if not elements:
        return None
    text = max((element.get_text() for element in elements), key=len)
    min_chars = int(get_scoring_value("job_fetch.min_content_chars", 100))
    return text if len(text) > min_chars else None


def extract_job_content(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for element in soup.select(REMOVABLE_ELEMENTS):
        element.decompose()

    for selector in JOB_SELECTORS:
        content = _find_longest_content(soup, selector)
        if content:
            return content

    body = soup.body
    return body.get_text() if body is not None else soup.get_text()


def _should_use_llm(content: str) -> bool:
    return llm_enabled() and len(content) > int(get_scoring_value("job_fetch.llm_threshold_chars", 3000))


def extract_with_llm(content: str) -> str:
    limit = int(get_scoring_value("job_fetch.llm_input_chars", 5000))
    try:
        extracted = chat_completion(
            system_prompt=EXTRACTION_SYSTEM_PROMPT,
            user_prompt=EXTRACTION_PROMPT.format(content=content[:limit]),
            temperature=0.3,
            max_tokens=2000,
            task="job_fetch",
        )
    except LLMError as exc:
        logger.warning("job_fetch_llm_extraction_failed: %s", exc)
        return content
    return extracted


def fetch_job_description(url: str) -> str:
    """Download a job posting page and return its job-description text."""
    hostname = validate_url(url)
    html = fetch_html(url.strip())
    try:
        content = clean_whitespace(extract_job_content(html))
    except Exception as exc:
        logger.error("job_fetch_parse_failed host=%s: %s", hostname, exc)
        raise FetchError(f"予期しないエラーが発生しました: {exc}") from exc

    logger.info("job_fetch_completed host=%s chars=%s", hostname, len(content))
    if _should_use_llm(content):
        return extract_with_llm(content)
    return content
