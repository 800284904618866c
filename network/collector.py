"""
Callback-driven async collector built on httpx and BeautifulSoup.

Every visit runs as an asyncio task. Registered callbacks fire for each
request, response, error and matching HTML element, and an HTML callback may
schedule further visits with ``Collector.visit``. The collector owns the
transport concerns of a crawl:

- per-domain rate limiting (``LimitRule``: delay, random delay, parallelism)
- an optional on-disk response cache keyed by URL
- a random User-Agent per request via fake_useragent
- de-duplication of URLs within one collector

Transport failures are reported to ``on_error`` callbacks with a response whose
``status_code`` is 0; HTTP errors carry the real status code.
"""

from __future__ import annotations

import asyncio
import base64
import contextlib
import fnmatch
import hashlib
import json
import logging
import os
import random
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Set, Tuple
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup, Tag
from fake_useragent import UserAgent

from utils.error_handling import AlreadyVisitedError, InvalidURLError, VisitError

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}

RequestCallback = Callable[["Request"], Any]
ResponseCallback = Callable[["Response"], Any]
ErrorCallback = Callable[["Response", BaseException], Any]
HTMLCallback = Callable[["HTMLElement"], Any]


def validate_url(url: str) -> str:
    """Return ``url`` stripped, or raise InvalidURLError if it is not absolute http(s).

    The URL must also be one httpx accepts (valid IDNA host, printable
    characters), so a validated URL never fails inside the HTTP client.
    """
    candidate = (url or "").strip()
    try:
        parsed = urlparse(candidate)
    except ValueError as exc:
        raise InvalidURLError(candidate, str(exc)) from exc
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise InvalidURLError(candidate)
    try:
        httpx.URL(candidate)
    except (httpx.InvalidURL, ValueError) as exc:
        # idna errors are UnicodeError, a ValueError subclass
        raise InvalidURLError(candidate, str(exc)) from exc
    return candidate


@dataclass
class LimitRule:
    """Throttling applied to hosts matching ``domain_glob``."""

    domain_glob: str = "*"
    delay: float = 0.0
    random_delay: float = 0.0
    parallelism: int = 1

    def matches(self, host: str) -> bool:
        return fnmatch.fnmatch(host.lower(), self.domain_glob.lower())

    def next_delay(self) -> float:
        extra = random.uniform(0, self.random_delay) if self.random_delay > 0 else 0.0
        return self.delay + extra


@dataclass
class CollectorConfig:
    cache_dir: Optional[str] = None
    timeout: float = 30.0
    rotate_user_agent: bool = True
    user_agent: str = DEFAULT_USER_AGENT
    allow_revisit: bool = False
    follow_redirects: bool = True
    transport: Any = None
    headers: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_HEADERS))
    limit_rules: List[LimitRule] = field(default_factory=list)


@dataclass
class Request:
    url: str
    depth: int = 1
    ctx: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def host(self) -> str:
        return urlparse(self.url).hostname or ""

    def absolute_url(self, href: str) -> str:
        return urljoin(self.url, (href or "").strip())


@dataclass
class Response:
    request: Request
    status_code: int = 0
    body: bytes = b""
    headers: Dict[str, str] = field(default_factory=dict)
    from_cache: bool = False

    @property
    def url(self) -> str:
        return self.request.url

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    @property
    def is_html(self) -> bool:
        content_type = self.headers.get("content-type", "")
        return not content_type or "html" in content_type.lower()


class HTMLElement:
    """A matched element plus the request that produced it."""

    def __init__(self, tag: Tag, response: Response, index: int = 0):
        self.tag = tag
        self.response = response
        self.request = response.request
        self.index = index

    @property
    def text(self) -> str:
        return self.tag.get_text()

    def attr(self, name: str) -> str:
        value = self.tag.get(name)
        if value is None:
            return ""
        if isinstance(value, list):
            return " ".join(value)
        return str(value)

    def child_text(self, selector: str) -> str:
        """Concatenated, stripped text of every descendant matching ``selector``."""
        return "".join(node.get_text() for node in self.tag.select(selector)).strip()

    def child_texts(self, selector: str) -> List[str]:
        return [node.get_text().strip() for node in self.tag.select(selector)]

    def child_attr(self, selector: str, name: str) -> str:
        node = self.tag.select_one(selector)
        if node is None:
            return ""
        return HTMLElement(node, self.response).attr(name)

    def for_each(self, selector: str, callback: Callable[[int, "HTMLElement"], Any]) -> None:
        for index, node in enumerate(self.tag.select(selector)):
            callback(index, HTMLElement(node, self.response, index))

    def absolute_url(self, href: str) -> str:
        return self.request.absolute_url(href)


class Collector:
    """Async, callback-driven page collector."""

    def __init__(self, config: Optional[CollectorConfig] = None):
        self.config = config or CollectorConfig()

        self._request_callbacks: List[RequestCallback] = []
        self._response_callbacks: List[ResponseCallback] = []
        self._error_callbacks: List[ErrorCallback] = []
        self._html_callbacks: List[Tuple[str, HTMLCallback]] = []
        self._scraped_callbacks: List[ResponseCallback] = []

        self._visited: Set[str] = set()
        self._tasks: Set[asyncio.Task] = set()
        self._semaphores: Dict[int, asyncio.Semaphore] = {}
        self._client: Optional[httpx.AsyncClient] = None

        # User agent rotation
        self.ua: Optional[UserAgent] = None
        if self.config.rotate_user_agent:
            try:
                self.ua = UserAgent()
            except Exception as e:
                logger.warning(f"Failed to initialize UserAgent: {e}")

    # -- callback registration -------------------------------------------------

    def on_request(self, callback: RequestCallback) -> None:
        self._request_callbacks.append(callback)

    def on_response(self, callback: ResponseCallback) -> None:
        self._response_callbacks.append(callback)

    def on_error(self, callback: ErrorCallback) -> None:
        self._error_callbacks.append(callback)

    def on_html(self, selector: str, callback: HTMLCallback) -> None:
        self._html_callbacks.append((selector, callback))

    def on_scraped(self, callback: ResponseCallback) -> None:
        self._scraped_callbacks.append(callback)

    # -- visiting ----------------------------------------------------------------

    def visit(self, url: str, ctx: Optional[Dict[str, Any]] = None, depth: int = 1) -> None:
        """Schedule ``url`` for fetching and return immediately.

        Must be called with a running event loop, typically from a callback.

        Raises:
            InvalidURLError: ``url`` is not an absolute http(s) URL
            AlreadyVisitedError: ``url`` was already scheduled by this collector
        """
        request = self._prepare(url, ctx, depth)
        task = asyncio.get_running_loop().create_task(self._scrape(request))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def run(self, url: str, ctx: Optional[Dict[str, Any]] = None) -> None:
        """Fetch ``url`` inline and wait for every visit it schedules.

        Raises:
            InvalidURLError, AlreadyVisitedError: preflight failures, or a URL
                the HTTP client rejects
            VisitError: the page itself failed (after on_error callbacks ran)
        """
        request = self._prepare(url, ctx, 1)
        await self._scrape(request, propagate=True)
        await self.wait()

    async def wait(self) -> None:
        """Block until no scheduled visit is pending."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel pending visits and release the HTTP client."""
        pending = list(self._tasks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def clone(self) -> "Collector":
        """New collector with the same configuration and no callbacks."""
        return Collector(self.config)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def __aenter__(self) -> "Collector":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # -- internals ---------------------------------------------------------------

    def _prepare(self, url: str, ctx: Optional[Dict[str, Any]], depth: int) -> Request:
        url = validate_url(url)
        if not self.config.allow_revisit:
            if url in self._visited:
                raise AlreadyVisitedError(url)
            self._visited.add(url)
        return Request(url=url, depth=depth, ctx=dict(ctx or {}))

    async def _scrape(self, request: Request, propagate: bool = False) -> None:
        try:
            response = await self._fetch(request)
        except VisitError:
            if propagate:
                raise
            return
        except InvalidURLError as exc:
            if propagate:
                raise
            logger.error("Rejected url=%s: %s", request.url, exc)
            return
        self._handle_response(response)

    async def _fetch(self, request: Request) -> Response:
        request.headers["User-Agent"] = self._user_agent()
        for callback in self._request_callbacks:
            self._invoke(callback, request)

        cached = self._load_cached(request)
        if cached is not None:
            return cached

        client = self._get_client()
        async with self._throttle(request.host):
            try:
                http_response = await client.get(request.url, headers=request.headers)
            except httpx.RequestError as exc:
                response = Response(request=request, status_code=0)
                self._dispatch_error(response, exc)
                raise VisitError(request.url, 0, exc) from exc
            except (httpx.InvalidURL, UnicodeError) as exc:
                raise InvalidURLError(request.url, str(exc)) from exc

        response = Response(
            request=request,
            status_code=http_response.status_code,
            body=http_response.content,
            headers={k.lower(): v for k, v in http_response.headers.items()},
        )
        if http_response.is_error:
            error = VisitError(request.url, response.status_code)
            self._dispatch_error(response, error)
            raise error

        self._store_cached(response)
        return response

    def _handle_response(self, response: Response) -> None:
        for callback in self._response_callbacks:
            self._invoke(callback, response)

        if response.is_html and self._html_callbacks:
            soup = BeautifulSoup(response.body, "html.parser")
            for selector, callback in self._html_callbacks:
                for index, tag in enumerate(soup.select(selector)):
                    self._invoke(callback, HTMLElement(tag, response, index))

        for callback in self._scraped_callbacks:
            self._invoke(callback, response)

    def _dispatch_error(self, response: Response, error: BaseException) -> None:
        for callback in self._error_callbacks:
            self._invoke(callback, response, error)

    def _invoke(self, callback: Callable[..., Any], *args: Any) -> None:
        try:
            callback(*args)
        except Exception:
            logger.exception("Collector callback %r failed", getattr(callback, "__name__", callback))

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.timeout),
                follow_redirects=self.config.follow_redirects,
                headers=dict(self.config.headers),
                transport=self.config.transport,
            )
        return self._client

    def _user_agent(self) -> str:
        if self.ua is not None:
            try:
                return self.ua.random
            except Exception:
                return self.config.user_agent
        return self.config.user_agent

    @contextlib.asynccontextmanager
    async def _throttle(self, host: str) -> AsyncIterator[None]:
        for index, rule in enumerate(self.config.limit_rules):
            if rule.matches(host):
                semaphore = self._semaphores.get(index)
                if semaphore is None:
                    semaphore = asyncio.Semaphore(max(rule.parallelism, 1))
                    self._semaphores[index] = semaphore
                async with semaphore:
                    delay = rule.next_delay()
                    if delay > 0:
                        await asyncio.sleep(delay)
                    yield
                return
        yield

    # -- response cache ----------------------------------------------------------

    def _cache_path(self, url: str) -> Optional[Path]:
        if not self.config.cache_dir:
            return None
        digest = hashlib.sha1(url.encode("utf-8")).hexdigest()
        return Path(self.config.cache_dir) / digest[:2] / digest

    def _load_cached(self, request: Request) -> Optional[Response]:
        path = self._cache_path(request.url)
        if path is None or not path.exists():
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            body = base64.b64decode(payload["body"])
        except (OSError, ValueError, KeyError) as exc:
            logger.warning("Ignoring unreadable cache entry %s: %s", path, exc)
            return None
        logger.debug("Cache hit for %s", request.url)
        return Response(
            request=request,
            status_code=int(payload.get("status_code", 200)),
            body=body,
            headers=dict(payload.get("headers") or {}),
            from_cache=True,
        )

    def _store_cached(self, response: Response) -> None:
        path = self._cache_path(response.url)
        if path is None:
            return
        payload = {
            "url": response.url,
            "status_code": response.status_code,
            "headers": response.headers,
            "body": base64.b64encode(response.body).decode("ascii"),
        }
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle)
            os.replace(tmp_name, path)
        except OSError as exc:
            logger.warning("Failed to cache %s: %s", response.url, exc)
