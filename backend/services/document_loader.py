"""Document sources: WordPress (REST API with RSS fallback) and local directories."""
import asyncio
import logging
import os
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import fitz  # PyMuPDF
import httpx
from bs4 import BeautifulSoup

from config import BLOG_URL, DOCS_DIRECTORY, FETCH_TIMEOUT, SOURCE_BACKEND, WP_MAX_PAGES
from models.document import SourceDocument

logger = logging.getLogger(__name__)

USER_AGENT = "TuppuAgent/1.0"
_BLANK_LINES = re.compile(r"\n\s*\n+")
_SPACES = re.compile(r"[ \t\r\f\v]+")


class SourceFetchError(Exception):
    """The document source is unreachable or returned nothing usable."""


def html_to_text(html: str) -> str:
    """Strip markup, keep paragraph breaks, drop link targets."""
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    text = soup.get_text()
    text = _SPACES.sub(" ", text)
    text = _BLANK_LINES.sub("\n\n", text)
    return "\n".join(line.strip() for line in text.split("\n")).strip()


def deduplicate(documents: Iterable[SourceDocument]) -> List[SourceDocument]:
    """Keep the first document seen for each document_key."""
    seen = set()
    unique = []
    for document in documents:
        if document.document_key in seen:
            continue
        seen.add(document.document_key)
        unique.append(document)
    return unique


class DocumentSource(ABC):
    """Anything that can produce the current corpus as SourceDocuments."""

    @abstractmethod
    async def fetch_documents(self) -> List[SourceDocument]:
        """
        Fetch the full current corpus.

        Raises:
            SourceFetchError: If the source cannot be read at all
        """


class WordPressSource(DocumentSource):
    """Posts from a WordPress site, via the REST API or, failing that, its RSS feeds."""

    def __init__(
        self,
        blog_url: str = BLOG_URL,
        max_pages: int = WP_MAX_PAGES,
        per_page: int = 100,
        timeout: float = FETCH_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.blog_url = blog_url.rstrip("/")
        self.max_pages = max_pages
        self.per_page = per_page
        self.timeout = timeout
        self.transport = transport

        self.posts_url = f"{self.blog_url}/wp-json/wp/v2/posts"
        self.categories_url = f"{self.blog_url}/wp-json/wp/v2/categories"
        self.main_feed = f"{self.blog_url}/feed/"
        self.uncategorized_feed = f"{self.blog_url}/category/uncategorized/feed/"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            transport=self.transport,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT}
        )

    async def fetch_documents(self) -> List[SourceDocument]:
        async with self._client() as client:
            documents, rest_error = await self._fetch_rest(client)

            if not documents:
                logger.info("REST API returned no posts, falling back to RSS feeds")
                documents, any_feed_ok = await self._fetch_rss(client)
                if not documents and rest_error is not None and not any_feed_ok:
                    raise SourceFetchError(
                        f"Could not reach {self.blog_url}: REST API and RSS feeds all failed ({rest_error})"
                    )

        unique = deduplicate(documents)
        logger.info(f"Fetched {len(unique)} documents from {self.blog_url}")
        return unique

    async def _fetch_rest(
        self, client: httpx.AsyncClient
    ) -> Tuple[List[SourceDocument], Optional[Exception]]:
        documents: List[SourceDocument] = []
        for page in range(1, self.max_pages + 1):
            params = {
                "_fields": "id,link,title,content,excerpt",
                "per_page": self.per_page,
                "page": page
            }
            try:
                response = await client.get(self.posts_url, params=params)
            except httpx.HTTPError as e:
                logger.warning(f"REST request for page {page} failed: {e}")
                return documents, e if page == 1 else None

            # WordPress answers 400 once page runs past the last one
            if not response.is_success:
                if page == 1:
                    logger.warning(f"REST API answered HTTP {response.status_code}")
                    return documents, httpx.HTTPStatusError(
                        f"REST API answered HTTP {response.status_code}",
                        request=response.request,
                        response=response
                    )
                break

            try:
                items = response.json()
            except ValueError as e:
                logger.warning(f"REST page {page} was not JSON: {e}")
                return documents, e if page == 1 else None

            if not isinstance(items, list) or not items:
                break

            for item in items:
                document = self._parse_post(item)
                if document:
                    documents.append(document)
            logger.debug(f"REST page {page}: {len(items)} posts")

        return documents, None

    @staticmethod
    def _parse_post(item: dict) -> Optional[SourceDocument]:
        link = item.get("link")
        if not link:
            return None
        title = (item.get("title") or {}).get("rendered") or ""
        content = (item.get("content") or {}).get("rendered") or ""
        if not content:
            content = (item.get("excerpt") or {}).get("rendered") or ""
        return SourceDocument(
            document_key=link,
            title=html_to_text(title),
            text=html_to_text(content)
        )

    async def _feed_urls(self, client: httpx.AsyncClient) -> List[str]:
        feeds = [self.main_feed]
        try:
            response = await client.get(self.categories_url, params={"per_page": 100})
            response.raise_for_status()
            categories = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Failed to fetch categories, using main feed only: {e}")
            return feeds + [self.uncategorized_feed]

        for category in categories if isinstance(categories, list) else []:
            if not isinstance(category, dict):
                continue
            slug = category.get("slug")
            count = category.get("count") or 0
            if slug and isinstance(count, int) and count > 0:
                feeds.append(f"{self.blog_url}/category/{slug}/feed/")

        # The uncategorized feed can hold posts even when the API reports 0
        if self.uncategorized_feed not in feeds:
            feeds.append(self.uncategorized_feed)

        logger.info(f"Generated {len(feeds)} RSS feed URLs")
        return feeds

    async def _fetch_rss(self, client: httpx.AsyncClient) -> Tuple[List[SourceDocument], bool]:
        feeds = await self._feed_urls(client)
        responses = await asyncio.gather(
            *(client.get(url) for url in feeds), return_exceptions=True
        )

        documents: List[SourceDocument] = []
        any_ok = False
        for url, response in zip(feeds, responses):
            if isinstance(response, Exception):
                logger.warning(f"Feed {url} failed: {response}")
                continue
            if not response.is_success:
                logger.warning(f"Feed {url} returned HTTP {response.status_code}")
                continue
            any_ok = True
            documents.extend(self.parse_feed(response.text))

        return documents, any_ok

    @staticmethod
    def parse_feed(xml: str) -> List[SourceDocument]:
        """Parse RSS 2.0 items into documents, skipping items without a link."""
        soup = BeautifulSoup(xml, "xml")
        documents = []
        for item in soup.find_all("item"):
            link_tag = item.find("link")
            link = link_tag.get_text(strip=True) if link_tag else ""
            if not link:
                continue

            title_tag = item.find("title")
            body_tag = item.find("content:encoded") or item.find("encoded") or item.find("description")
            documents.append(SourceDocument(
                document_key=link,
                title=title_tag.get_text(strip=True) if title_tag else "",
                text=html_to_text(body_tag.get_text() if body_tag else "")
            ))
        return documents


class DirectorySource(DocumentSource):
    """Loads PDF, text, Markdown and HTML files from a local directory."""

    EXTENSIONS = (".pdf", ".txt", ".md", ".html", ".htm")

    def __init__(self, docs_directory: str = DOCS_DIRECTORY):
        """
        Initialize DirectorySource.

        Args:
            docs_directory: Path to directory containing documents
        """
        self.docs_directory = docs_directory

    async def fetch_documents(self) -> List[SourceDocument]:
        if not os.path.isdir(self.docs_directory):
            raise SourceFetchError(f"Documents directory not found: {self.docs_directory}")
        return await asyncio.to_thread(self._load_documents)

    def _load_documents(self) -> List[SourceDocument]:
        documents = []
        filenames = sorted(
            f for f in os.listdir(self.docs_directory) if f.lower().endswith(self.EXTENSIONS)
        )
        logger.info(f"Found {len(filenames)} files in {self.docs_directory}")

        for filename in filenames:
            filepath = os.path.join(self.docs_directory, filename)
            try:
                documents.append(self._load_file(filepath, filename))
            except Exception as e:
                # Skip unreadable file and continue
                logger.error(f"Error loading {filename}: {e}", exc_info=True)

        logger.info(f"Successfully loaded {len(documents)} documents")
        return documents

    def _load_file(self, filepath: str, filename: str) -> SourceDocument:
        suffix = Path(filename).suffix.lower()
        title = Path(filename).stem

        if suffix == ".pdf":
            title, text = self._load_pdf(filepath, title)
        else:
            with open(filepath, encoding="utf-8", errors="replace") as f:
                text = f.read()
            if suffix in (".html", ".htm"):
                soup = BeautifulSoup(text, "html.parser")
                if soup.title and soup.title.get_text(strip=True):
                    title = soup.title.get_text(strip=True)
                text = html_to_text(text)

        return SourceDocument(document_key=filename, title=title, text=text)

    @staticmethod
    def _load_pdf(filepath: str, default_title: str) -> Tuple[str, str]:
        """Extract text page by page with PyMuPDF."""
        with fitz.open(filepath) as pdf_document:
            title = (pdf_document.metadata or {}).get("title") or default_title
            pages = [page.get_text() for page in pdf_document]
        return title, "\n\n".join(p.strip() for p in pages if p.strip())


def create_document_source(backend: str = SOURCE_BACKEND) -> DocumentSource:
    """
    Build the configured document source.

    Args:
        backend: "wordpress" or "directory"
    """
    if backend == "wordpress":
        return WordPressSource()
    if backend == "directory":
        return DirectorySource()
    raise ValueError(f"Unknown source backend: {backend}")
