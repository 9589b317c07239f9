import asyncio
import ipaddress
import json
import logging
import time
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from launchpad.errors import ErrorKind, ServiceError

logger = logging.getLogger(__name__)

USER_AGENT = "ADLP-Bot/1.0 (+https://adlp.dev/bot)"
REQUEST_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,application/pdf,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}

IMAGE_SELECTORS = [
    ('meta[property="og:image"]', "og:image", 10),
    ('meta[name="twitter:image"]', "twitter:image", 9),
    ('meta[name="twitter:image:src"]', "twitter:image:src", 8),
    ('link[rel="image_src"]', "image_src", 7),
    ('link[rel="apple-touch-icon"]', "apple-touch-icon", 6),
    ('link[rel="icon"][type*="image"]', "icon", 5),
]
IMG_TAG_PRIORITY = 3

FAVICON_SELECTORS = [
    'link[rel="icon"]',
    'link[rel="shortcut icon"]',
    'link[rel="apple-touch-icon"]',
    'link[rel="apple-touch-icon-precomposed"]',
    'link[rel="mask-icon"]',
]

_LOCALHOST_NAMES = {"localhost", "localhost.localdomain"}


class _FetchFailure(Exception):
    def __init__(self, reason: str, retryable: bool) -> None:
        super().__init__(reason)
        self.reason = reason
        self.retryable = retryable


def _ip(hostname: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
    try:
        address = ipaddress.ip_address(hostname.strip("[]"))
    except ValueError:
        return None
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
        return address.ipv4_mapped
    return address


def is_loopback(hostname: str) -> bool:
    if hostname in _LOCALHOST_NAMES or hostname.endswith(".localhost"):
        return True
    address = _ip(hostname)
    return address is not None and (address.is_loopback or address.is_unspecified)


def is_private_ip(hostname: str) -> bool:
    address = _ip(hostname)
    if address is None:
        return False
    return (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_unspecified
        or address.is_reserved
        or address.is_multicast
    )


def resolve_url(href: str | None, base_url: str) -> str | None:
    if not href:
        return None
    href = href.strip()
    if href.startswith("//"):
        return f"{urlparse(base_url).scheme}:{href}"
    if href.startswith(("http://", "https://")):
        return href
    try:
        return urljoin(base_url, href)
    except ValueError:
        logger.debug("[metadata] could not resolve url | href=%s", href)
        return None


def _to_int(value) -> int | None:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def _rel(element) -> str:
    rel = element.get("rel")
    if isinstance(rel, list):
        return " ".join(rel)
    return rel or ""


class MetadataFetcher:
    def __init__(
        self,
        timeout: float = 10.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        allow_private_urls: bool = False,
        cache_enabled: bool = False,
        cache_max_age: int = 3600,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.allow_private_urls = allow_private_urls
        self.cache_enabled = cache_enabled
        self.cache_max_age = cache_max_age
        self._transport = transport
        self._cache: dict[str, tuple[float, dict]] = {}
        self._in_flight: dict[str, asyncio.Task] = {}

    def validate_url(self, url: str) -> None:
        if not url or not isinstance(url, str):
            raise ServiceError(ErrorKind.VALIDATION_ERROR, "URL is required")
        try:
            parsed = urlparse(url.strip())
        except ValueError as exc:
            raise ServiceError(ErrorKind.VALIDATION_ERROR, "Invalid URL format") from exc
        if not parsed.scheme or not parsed.netloc or not parsed.hostname:
            raise ServiceError(ErrorKind.VALIDATION_ERROR, "Invalid URL format")
        if parsed.scheme not in ("http", "https"):
            raise ServiceError(ErrorKind.VALIDATION_ERROR, "Only HTTP and HTTPS URLs are supported")

        if self.allow_private_urls:
            return
        hostname = parsed.hostname.lower()
        if is_loopback(hostname):
            raise ServiceError(ErrorKind.VALIDATION_ERROR, "Localhost URLs are not allowed")
        if is_private_ip(hostname):
            raise ServiceError(ErrorKind.VALIDATION_ERROR, "Private IP addresses are not allowed")

    async def fetch(self, url: str) -> dict:
        """
        Fetch url and extract its metadata.
        Concurrent calls for the same URL share one request; results are cached when enabled.
        """
        self.validate_url(url)

        if self.cache_enabled:
            cached = self._cache.get(url)
            if cached and time.monotonic() - cached[0] < self.cache_max_age:
                logger.debug("[metadata] cache hit | url=%s", url)
                return cached[1]

        task = self._in_flight.get(url)
        if task is None:
            task = asyncio.ensure_future(self._fetch_with_retries(url))
            self._in_flight[url] = task
            task.add_done_callback(lambda _: self._in_flight.pop(url, None))

        metadata = await asyncio.shield(task)
        if self.cache_enabled:
            self._cache[url] = (time.monotonic(), metadata)
        return metadata

    def clear_cache(self) -> None:
        self._cache.clear()

    async def _fetch_with_retries(self, url: str) -> dict:
        last_reason = "unknown error"
        for attempt in range(1, self.max_retries + 1):
            try:
                return await self._fetch_once(url)
            except _FetchFailure as failure:
                last_reason = failure.reason
                if not failure.retryable:
                    logger.warning("[metadata] fetch failed | url=%s | reason=%s", url, failure.reason)
                    raise ServiceError(
                        ErrorKind.METADATA_FETCH_FAILED, f"Failed to fetch URL: {failure.reason}"
                    ) from failure
                logger.info(
                    "[metadata] attempt failed | url=%s | attempt=%d/%d | reason=%s",
                    url, attempt, self.max_retries, failure.reason,
                )
                if attempt < self.max_retries:
                    await asyncio.sleep(self.retry_delay * attempt)

        logger.warning("[metadata] giving up | url=%s | reason=%s", url, last_reason)
        raise ServiceError(
            ErrorKind.METADATA_FETCH_FAILED,
            f"Failed to fetch metadata after {self.max_retries} attempts: {last_reason}",
        )

    async def _check_hop(self, request: httpx.Request) -> None:
        # runs for the first request and every redirect
        try:
            self.validate_url(str(request.url))
        except ServiceError as exc:
            raise _FetchFailure(f"Redirect not allowed: {exc.message}", retryable=False) from exc

    async def _fetch_once(self, url: str) -> dict:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                max_redirects=5,
                headers=REQUEST_HEADERS,
                transport=self._transport,
                event_hooks={"request": [self._check_hop]},
            ) as client:
                response = await client.get(url)
        except httpx.TimeoutException as exc:
            raise _FetchFailure("Request timeout", retryable=True) from exc
        except httpx.TooManyRedirects as exc:
            raise _FetchFailure("Too many redirects", retryable=False) from exc
        except httpx.HTTPError as exc:
            raise _FetchFailure(str(exc) or exc.__class__.__name__, retryable=True) from exc

        if response.status_code >= 400:
            reason = f"HTTP {response.status_code}: {response.reason_phrase}"
            raise _FetchFailure(reason, retryable=response.status_code >= 500)

        content_type = response.headers.get("content-type", "text/html")
        final_url = str(response.url) or url
        if "application/pdf" in content_type:
            return self.extract_pdf_metadata(final_url, response.headers.get("content-length"))
        if "text/html" not in content_type and "application/xhtml" not in content_type:
            raise _FetchFailure(f"Content type not supported: {content_type}", retryable=False)

        logger.info("[metadata] fetched | url=%s | status=%d", final_url, response.status_code)
        return self.extract_metadata(response.text, final_url)

    # extraction

    def extract_metadata(self, html: str, url: str) -> dict:
        soup = BeautifulSoup(html, "html.parser")
        open_graph = self._extract_prefixed(soup, "property", ("og:", "article:"))
        twitter = self._extract_prefixed(soup, "name", ("twitter:",))
        structured_data = {
            "jsonLd": self._extract_json_ld(soup),
            "microdata": self._extract_microdata(soup),
        }
        images = self._extract_images(soup, url)

        title_tag = soup.find("title")
        title = open_graph.get("og:title") or (title_tag.get_text().strip() if title_tag else None) or None
        description_tag = soup.find("meta", attrs={"name": "description"})
        description = open_graph.get("og:description") or (
            description_tag.get("content", "").strip() if description_tag else None
        ) or None

        favicons = self._extract_favicons(soup, url)
        metadata = {
            "url": url,
            "title": title,
            "description": description,
            "image": images["primary"],
            "favicon": favicons[0]["url"],
            "images": images,
            "favicons": favicons,
            "openGraph": {key.removeprefix("og:"): value for key, value in open_graph.items()},
            "twitter": {key.removeprefix("twitter:"): value for key, value in twitter.items()},
            "structuredData": structured_data,
        }
        metadata["contentType"] = self._detect_content_type(soup, open_graph, structured_data)
        if metadata["contentType"] == "video":
            metadata["video"] = self._extract_video(soup, url)
        return metadata

    def extract_pdf_metadata(self, url: str, content_length: str | None = None) -> dict:
        filename = urlparse(url).path.rstrip("/").split("/")[-1] or "document.pdf"
        return {
            "url": url,
            "title": filename,
            "description": f"PDF document: {filename}",
            "contentType": "application/pdf",
            "fileSize": _to_int(content_length),
            "filename": filename,
            "image": None,
            "favicon": None,
            "images": {"primary": None, "sources": []},
            "favicons": [],
            "openGraph": {},
            "twitter": {},
            "structuredData": {"jsonLd": [], "microdata": []},
        }

    @staticmethod
    def _extract_prefixed(soup: BeautifulSoup, attribute: str, prefixes: tuple[str, ...]) -> dict:
        values: dict[str, str] = {}
        for element in soup.find_all("meta", attrs={attribute: True}):
            key = element.get(attribute, "")
            content = element.get("content")
            if key.startswith(prefixes) and content and key not in values:
                values[key] = content.strip()
        return values

    def _extract_images(self, soup: BeautifulSoup, base_url: str) -> dict:
        sources = []
        og_width = soup.find("meta", property="og:image:width")
        og_height = soup.find("meta", property="og:image:height")

        for selector, image_type, priority in IMAGE_SELECTORS:
            for element in soup.select(selector):
                href = element.get("content") or element.get("href")
                resolved = resolve_url(href, base_url)
                if not resolved:
                    continue
                is_og = image_type == "og:image"
                sources.append(
                    {
                        "url": resolved,
                        "type": image_type,
                        "priority": priority,
                        "sizes": element.get("sizes"),
                        "width": _to_int(og_width.get("content")) if is_og and og_width else None,
                        "height": _to_int(og_height.get("content")) if is_og and og_height else None,
                        "alt": None,
                    }
                )

        for element in soup.find_all("img"):
            resolved = resolve_url(element.get("src"), base_url)
            if not resolved:
                continue
            sources.append(
                {
                    "url": resolved,
                    "type": "img",
                    "priority": IMG_TAG_PRIORITY,
                    "sizes": None,
                    "width": _to_int(element.get("width")),
                    "height": _to_int(element.get("height")),
                    "alt": element.get("alt"),
                }
            )

        sources.sort(key=lambda source: source["priority"], reverse=True)
        return {"primary": sources[0]["url"] if sources else None, "sources": sources}

    def _extract_favicons(self, soup: BeautifulSoup, base_url: str) -> list[dict]:
        favicons = []
        for selector in FAVICON_SELECTORS:
            for element in soup.select(selector):
                resolved = resolve_url(element.get("href"), base_url)
                if resolved:
                    favicons.append(
                        {
                            "url": resolved,
                            "type": _rel(element),
                            "sizes": element.get("sizes"),
                            "mimeType": element.get("type"),
                            "color": element.get("color"),
                        }
                    )
        if not favicons:
            favicons.append(
                {
                    "url": resolve_url("/favicon.ico", base_url),
                    "type": "icon",
                    "sizes": None,
                    "mimeType": "image/x-icon",
                    "color": None,
                }
            )
        return favicons

    @staticmethod
    def _extract_json_ld(soup: BeautifulSoup) -> list:
        items = []
        for element in soup.find_all("script", attrs={"type": "application/ld+json"}):
            content = element.string or element.get_text()
            if not content or not content.strip():
                continue
            try:
                items.append(json.loads(content))
            except json.JSONDecodeError as exc:
                logger.debug("[metadata] skipping malformed JSON-LD | error=%s", exc)
        return items

    @staticmethod
    def _extract_microdata(soup: BeautifulSoup) -> list[dict]:
        items = []
        for scope in soup.find_all(attrs={"itemscope": True}):
            properties: dict = {}
            for prop in scope.find_all(attrs={"itemprop": True}):
                name = prop.get("itemprop")
                value = prop.get("content") or prop.get("href") or prop.get_text().strip()
                if not name or not value:
                    continue
                if name in properties:
                    if not isinstance(properties[name], list):
                        properties[name] = [properties[name]]
                    properties[name].append(value)
                else:
                    properties[name] = value
            if properties:
                items.append({"type": scope.get("itemtype"), "properties": properties})
        return items

    @staticmethod
    def _detect_content_type(soup: BeautifulSoup, open_graph: dict, structured_data: dict) -> str:
        if open_graph.get("og:type"):
            return open_graph["og:type"]
        if soup.find("meta", property="og:video") or soup.find("video"):
            return "video"
        if soup.find("article") or soup.find("meta", property="article:author"):
            return "article"
        if soup.select('[itemtype*="Product"]') or any(
            isinstance(item, dict) and item.get("@type") == "Product" for item in structured_data["jsonLd"]
        ):
            return "product"
        return "website"

    @staticmethod
    def _extract_video(soup: BeautifulSoup, base_url: str) -> dict:
        def og(name: str) -> str | None:
            element = soup.find("meta", property=name)
            return element.get("content") if element else None

        return {
            "url": resolve_url(og("og:video"), base_url),
            "width": _to_int(og("og:video:width")),
            "height": _to_int(og("og:video:height")),
            "duration": _to_int(og("og:video:duration")),
            "type": og("og:video:type"),
        }
