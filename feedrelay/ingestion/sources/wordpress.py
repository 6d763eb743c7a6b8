"""
WordPress REST Source
=====================

Pages through ``/wp-json/wp/v2/posts`` and cleans each post at ingestion:
entity-decoded title, scripts / ad containers / document wrappers removed
from the rendered content and excerpt, and author, categories and thumbnail
lifted from the Yoast SEO metadata when the site publishes it.
"""

import asyncio
import ssl
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import aiohttp
import certifi
from bs4 import BeautifulSoup

from ...config.settings import SourceSettings
from ...database.models import SourceRecord
from ...utils.exceptions import ContentValidationError, ErrorCode, SourceFetchError
from ...utils.logging import get_logger_for_component
from .base import ContentSource, SourcePage


class WordPressSource(ContentSource):
    """WordPress REST API content source."""

    name = "WordPress"

    POSTS_PATH = "/wp-json/wp/v2/posts"
    TOTAL_PAGES_HEADER = "X-WP-TotalPages"
    TOTAL_POSTS_HEADER = "X-WP-Total"

    # Removed from rendered HTML before storage
    STRIP_SELECTORS = ["script", 'div[class*="ad-dog"]', "head"]
    UNWRAP_TAGS = ["body", "html"]

    def __init__(self, settings: SourceSettings, session: Optional[aiohttp.ClientSession] = None):
        """Initialize WordPress source.

        Args:
            settings: Source section of the run settings
            session: Externally managed session; one is opened on enter when omitted
        """
        self.settings = settings
        self.base_url = (settings.url or "").rstrip("/")
        self.logger = get_logger_for_component("wordpress", source=settings.name)
        self.parser = "html.parser"

        self.ssl_context = ssl.create_default_context(cafile=certifi.where())
        self._session = session
        self._owns_session = False

    async def __aenter__(self) -> "WordPressSource":
        if self._session is None:
            connector = aiohttp.TCPConnector(ssl=self.ssl_context, limit=4)
            timeout = aiohttp.ClientTimeout(total=self.settings.request_timeout)
            headers = {
                "User-Agent": "FeedRelay/1.0",
                "Accept": "application/json",
                "Content-Type": "application/json",
            }
            if self.settings.api_token:
                headers["Authorization"] = f"Bearer {self.settings.api_token}"

            self._session = aiohttp.ClientSession(
                connector=connector, timeout=timeout, headers=headers
            )
            self._owns_session = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
            self._owns_session = False

    @property
    def posts_url(self) -> str:
        return f"{self.base_url}{self.POSTS_PATH}"

    def build_params(self, page: int) -> Dict[str, Any]:
        params: Dict[str, Any] = {"per_page": self.settings.per_page, "page": page}
        if self.settings.posts_filter and self.settings.posts_filter_value:
            params[self.settings.posts_filter] = self.settings.posts_filter_value
        return params

    async def fetch_page(self, page: int) -> SourcePage:
        """Fetch one page of posts.

        Raises:
            SourceFetchError: On a non-200 response, a non-list body or a transport failure
        """
        if self._session is None:
            raise RuntimeError("WordPressSource must be entered before fetching")

        url = self.posts_url
        self.logger.debug(f"Fetching page {page} from {url}")

        try:
            async with self._session.get(url, params=self.build_params(page)) as response:
                if response.status in (401, 403):
                    raise SourceFetchError(
                        f"Access denied (HTTP {response.status}); check source.api_token",
                        source_url=url,
                        error_code=ErrorCode.SOURCE_ACCESS_DENIED,
                        context={"page": page},
                    )
                if response.status != 200:
                    raise SourceFetchError(
                        f"HTTP {response.status}: {response.reason}",
                        source_url=url,
                        error_code=ErrorCode.SOURCE_HTTP_ERROR,
                        context={"page": page},
                    )

                posts = await response.json(content_type=None)
                total_pages = self._parse_total_pages(response.headers.get(self.TOTAL_PAGES_HEADER))
                total_posts = response.headers.get(self.TOTAL_POSTS_HEADER, "unknown")

        except asyncio.TimeoutError as e:
            raise SourceFetchError(
                f"Request timeout after {self.settings.request_timeout}s",
                source_url=url,
                error_code=ErrorCode.SOURCE_FETCH_TIMEOUT,
                context={"page": page},
            ) from e
        except aiohttp.InvalidURL as e:
            raise SourceFetchError(
                f"Invalid source URL: {e}",
                source_url=url,
                error_code=ErrorCode.SOURCE_INVALID_URL,
                context={"page": page},
            ) from e
        except aiohttp.ClientError as e:
            raise SourceFetchError(
                f"Request failed: {e}",
                source_url=url,
                error_code=ErrorCode.SOURCE_NETWORK_ERROR,
                context={"page": page},
            ) from e
        except ValueError as e:
            raise SourceFetchError(
                f"Response is not JSON: {e}",
                source_url=url,
                error_code=ErrorCode.SOURCE_PARSE_ERROR,
                context={"page": page},
            ) from e

        if not isinstance(posts, list):
            raise SourceFetchError(
                "Posts response is not a list",
                source_url=url,
                error_code=ErrorCode.SOURCE_PARSE_ERROR,
                context={"page": page},
            )

        self.logger.info(f"Fetched {len(posts)} posts from page {page} of {total_pages} (total posts: {total_posts})")
        return SourcePage(entries=posts, total_pages=total_pages)

    @staticmethod
    def _parse_total_pages(value: Optional[str]) -> int:
        try:
            return max(int(value), 0) if value is not None else 1
        except ValueError:
            return 1

    def parse_record(self, raw: Dict[str, Any]) -> SourceRecord:
        """Clean one post into the shared post payload shape."""
        if not isinstance(raw, dict):
            raise ContentValidationError("Post is not an object")

        post_id = raw.get("id")
        if post_id is None or post_id == "":
            raise ContentValidationError("Post has no id")
        upstream_id = str(post_id)

        try:
            published_at = self._parse_gmt(raw.get("date_gmt"))
            modified_at = self._parse_gmt(raw.get("modified_gmt"))
        except (TypeError, ValueError) as e:
            raise ContentValidationError(f"Bad timestamp: {e}", upstream_id=upstream_id) from e

        yoast = self._yoast(raw)
        primary = self._primary_graph_node(yoast)

        categories = primary.get("articleSection") or []
        if isinstance(categories, str):
            categories = [categories]
        elif not isinstance(categories, list):
            categories = []

        payload = {
            "id": post_id,
            "date": raw.get("date"),
            "date_gmt": raw.get("date_gmt"),
            "modified": raw.get("modified"),
            "modified_gmt": raw.get("modified_gmt"),
            "guid": self._rendered(raw.get("guid")),
            "slug": raw.get("slug"),
            "link": raw.get("link"),
            "title": self.decode_entities(self._rendered(raw.get("title"))),
            "author": yoast.get("author"),
            "categories": list(categories),
            "thumbnail": primary.get("thumbnailUrl"),
        }

        content = self._rendered(raw.get("content"))
        if content:
            payload["content"] = self.clean_html(content)

        excerpt = self._rendered(raw.get("excerpt"))
        if excerpt:
            payload["excerpt"] = self.clean_html(excerpt)

        metadata = {
            "id": post_id,
            "title": payload["title"],
            "date": raw.get("date"),
            "modified": raw.get("modified"),
            "link": raw.get("link"),
            "author": payload["author"],
        }

        return SourceRecord(
            upstream_id=upstream_id,
            published_at=published_at,
            modified_at=modified_at,
            payload=payload,
            metadata=metadata,
        )

    @staticmethod
    def _yoast(raw: Dict[str, Any]) -> Dict[str, Any]:
        yoast = raw.get("yoast_head_json")
        return yoast if isinstance(yoast, dict) else {}

    @staticmethod
    def _primary_graph_node(yoast: Dict[str, Any]) -> Dict[str, Any]:
        """First ``@graph`` node of the Yoast schema, or an empty dict."""
        schema = yoast.get("schema")
        if not isinstance(schema, dict):
            return {}
        graph = schema.get("@graph")
        if not isinstance(graph, list) or not graph:
            return {}
        return graph[0] if isinstance(graph[0], dict) else {}

    @staticmethod
    def _rendered(value: Any) -> str:
        if isinstance(value, dict):
            value = value.get("rendered")
        return value if isinstance(value, str) else ""

    @staticmethod
    def _parse_gmt(value: Optional[str]) -> Optional[datetime]:
        """WordPress ``*_gmt`` fields are UTC without an offset."""
        if not value:
            return None
        if not isinstance(value, str):
            raise TypeError(f"expected an ISO 8601 string, got {type(value).__name__}")
        parsed = datetime.fromisoformat(value)
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)

    def decode_entities(self, text: str) -> str:
        if not text:
            return text
        return BeautifulSoup(text, self.parser).get_text()

    def clean_html(self, html_content: str) -> str:
        """Remove scripts, ad containers and document wrappers from post HTML."""
        soup = BeautifulSoup(html_content, self.parser)

        for selector in self.STRIP_SELECTORS:
            for element in soup.select(selector):
                element.decompose()

        for tag_name in self.UNWRAP_TAGS:
            for element in soup.find_all(tag_name):
                element.unwrap()

        return str(soup)
