"""Unit tests for the document sources."""
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

import fitz
import httpx
import pytest
from models.document import SourceDocument
from services.document_loader import (
    DirectorySource,
    SourceFetchError,
    WordPressSource,
    create_document_source,
    deduplicate,
    html_to_text,
)

BLOG = "https://blog.test"

FEED_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:content="http://purl.org/rss/1.0/modules/content/">
<channel>
<title>Test blog</title>
{items}
</channel>
</rss>"""

ITEM_TEMPLATE = """<item>
<title>{title}</title>
<link>{link}</link>
<description><![CDATA[<p>Short {title}</p>]]></description>
<content:encoded><![CDATA[<p>Full text of {title}</p><script>track()</script>]]></content:encoded>
</item>"""


def feed(*posts):
    items = "\n".join(ITEM_TEMPLATE.format(title=title, link=link) for title, link in posts)
    return FEED_TEMPLATE.format(items=items)


def post(link, title, content):
    return {"id": 1, "link": link, "title": {"rendered": title}, "content": {"rendered": content}}


def make_source(handler, **kwargs):
    return WordPressSource(blog_url=BLOG, transport=httpx.MockTransport(handler), **kwargs)


class TestHtmlToText:

    def test_strips_markup_and_scripts(self):
        html = "<p>Wind <b>power</b> &amp; solar</p><script>alert(1)</script><style>p{}</style>"
        assert html_to_text(html) == "Wind power & solar"

    def test_keeps_paragraph_breaks(self):
        assert html_to_text("<p>One</p>\n\n\n<p>Two</p>") == "One\n\nTwo"

    def test_empty(self):
        assert html_to_text("") == ""

    def test_deduplicate_keeps_first(self):
        docs = [
            SourceDocument("a", "A", "first"),
            SourceDocument("b", "B", "b"),
            SourceDocument("a", "A", "second"),
        ]
        assert [d.text for d in deduplicate(docs)] == ["first", "b"]


class TestWordPressSource:
    """Test suite for WordPressSource class."""

    @pytest.mark.asyncio
    async def test_rest_api_pages(self):
        pages = {
            "1": [
                post(f"{BLOG}/tuulivoima/", "Tuulivoima &amp; aurinko", "<p>Wind <b>power</b></p>"),
                post(f"{BLOG}/grid/", "Grid", "<p>Grid news</p>"),
            ],
            "2": [post(f"{BLOG}/tuulivoima/", "Duplicate", "<p>Again</p>")],
        }
        requested_pages = []

        def handler(request):
            assert request.url.path == "/wp-json/wp/v2/posts"
            page = request.url.params["page"]
            requested_pages.append(page)
            assert request.url.params["per_page"] == "100"
            if page in pages:
                return httpx.Response(200, json=pages[page])
            return httpx.Response(400, json={"code": "rest_post_invalid_page_number"})

        documents = await make_source(handler).fetch_documents()

        assert requested_pages == ["1", "2", "3"]
        assert [d.document_key for d in documents] == [f"{BLOG}/tuulivoima/", f"{BLOG}/grid/"]
        assert documents[0].title == "Tuulivoima & aurinko"
        assert documents[0].text == "Wind power"

    @pytest.mark.asyncio
    async def test_max_pages(self):
        calls = []

        def handler(request):
            calls.append(request)
            page = request.url.params["page"]
            return httpx.Response(200, json=[post(f"{BLOG}/p{page}/", "T", "body")])

        documents = await make_source(handler, max_pages=2).fetch_documents()

        assert len(calls) == 2
        assert len(documents) == 2

    @pytest.mark.asyncio
    async def test_excerpt_used_when_content_missing(self):
        item = {"link": f"{BLOG}/x/", "title": {"rendered": "X"}, "excerpt": {"rendered": "<p>Teaser</p>"}}

        def handler(request):
            if request.url.params["page"] == "1":
                return httpx.Response(200, json=[item])
            return httpx.Response(200, json=[])

        documents = await make_source(handler).fetch_documents()
        assert documents[0].text == "Teaser"

    @pytest.mark.asyncio
    async def test_rss_fallback_uses_category_feeds(self):
        requested = []

        def handler(request):
            url = str(request.url)
            requested.append(url.split("?")[0])
            if request.url.path == "/wp-json/wp/v2/posts":
                return httpx.Response(404)
            if request.url.path == "/wp-json/wp/v2/categories":
                return httpx.Response(200, json=[
                    {"slug": "energia", "count": 2},
                    {"slug": "tyhja", "count": 0},
                    {"slug": "uncategorized", "count": 0},
                ])
            if url == f"{BLOG}/feed/":
                return httpx.Response(200, text=feed(("Wind", f"{BLOG}/wind/")))
            if url == f"{BLOG}/category/energia/feed/":
                return httpx.Response(200, text=feed(("Wind", f"{BLOG}/wind/"), ("Solar", f"{BLOG}/solar/")))
            return httpx.Response(404)

        documents = await make_source(handler).fetch_documents()

        assert [d.document_key for d in documents] == [f"{BLOG}/wind/", f"{BLOG}/solar/"]
        assert documents[0].title == "Wind"
        assert documents[0].text == "Full text of Wind"
        assert f"{BLOG}/category/uncategorized/feed/" in requested
        assert f"{BLOG}/category/tyhja/feed/" not in requested

    @pytest.mark.asyncio
    async def test_rss_fallback_without_categories(self):
        def handler(request):
            if request.url.path == "/wp-json/wp/v2/posts":
                return httpx.Response(200, json=[])
            if request.url.path == "/wp-json/wp/v2/categories":
                return httpx.Response(500)
            if str(request.url) == f"{BLOG}/feed/":
                return httpx.Response(200, text=feed(("Wind", f"{BLOG}/wind/")))
            return httpx.Response(404)

        documents = await make_source(handler).fetch_documents()
        assert [d.document_key for d in documents] == [f"{BLOG}/wind/"]

    @pytest.mark.asyncio
    async def test_server_errors_everywhere_raise(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503, text="Service Unavailable")

        with pytest.raises(SourceFetchError, match="503"):
            await make_source(handler).fetch_documents()
        assert len(calls) > 1

    @pytest.mark.asyncio
    async def test_rest_server_error_with_working_feed(self):
        def handler(request):
            if request.url.path == "/wp-json/wp/v2/posts":
                return httpx.Response(500)
            if request.url.path == "/wp-json/wp/v2/categories":
                return httpx.Response(500)
            if str(request.url) == f"{BLOG}/feed/":
                return httpx.Response(200, text=feed(("Wind", f"{BLOG}/wind/")))
            return httpx.Response(404)

        documents = await make_source(handler).fetch_documents()
        assert [d.document_key for d in documents] == [f"{BLOG}/wind/"]

    @pytest.mark.asyncio
    async def test_malformed_categories_are_ignored(self):
        requested = []

        def handler(request):
            requested.append(str(request.url).split("?")[0])
            if request.url.path == "/wp-json/wp/v2/posts":
                return httpx.Response(200, json=[])
            if request.url.path == "/wp-json/wp/v2/categories":
                return httpx.Response(200, json=[
                    "not-a-category",
                    {"slug": "nolla", "count": None},
                    {"slug": "energia", "count": 3},
                ])
            if str(request.url) == f"{BLOG}/category/energia/feed/":
                return httpx.Response(200, text=feed(("Solar", f"{BLOG}/solar/")))
            return httpx.Response(200, text=feed())

        documents = await make_source(handler).fetch_documents()

        assert [d.document_key for d in documents] == [f"{BLOG}/solar/"]
        assert f"{BLOG}/category/nolla/feed/" not in requested

    @pytest.mark.asyncio
    async def test_unreachable_site_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(SourceFetchError):
            await make_source(handler).fetch_documents()

    @pytest.mark.asyncio
    async def test_reachable_but_empty_site_returns_nothing(self):
        def handler(request):
            if request.url.path == "/wp-json/wp/v2/categories":
                return httpx.Response(200, json=[])
            if request.url.path == "/wp-json/wp/v2/posts":
                return httpx.Response(200, json=[])
            return httpx.Response(200, text=feed())

        assert await make_source(handler).fetch_documents() == []

    def test_parse_feed_skips_items_without_link(self):
        xml = FEED_TEMPLATE.format(items="""
<item><title>No link</title><description>orphan</description></item>
<item><title>Plain</title><link>https://blog.test/plain/</link><description>&lt;p&gt;Only &lt;i&gt;summary&lt;/i&gt;&lt;/p&gt;</description></item>
""")
        documents = WordPressSource.parse_feed(xml)

        assert len(documents) == 1
        assert documents[0].document_key == "https://blog.test/plain/"
        assert documents[0].text == "Only summary"


class TestDirectorySource:
    """Test suite for DirectorySource class."""

    @pytest.mark.asyncio
    async def test_loads_supported_files(self, tmp_path):
        (tmp_path / "notes.txt").write_text("Wind power grew.", encoding="utf-8")
        (tmp_path / "readme.md").write_text("# Solar\n\nPanels.", encoding="utf-8")
        (tmp_path / "page.html").write_text(
            "<html><head><title>Grid Page</title></head><body><p>Grid <b>news</b></p></body></html>",
            encoding="utf-8"
        )
        (tmp_path / "data.csv").write_text("a,b", encoding="utf-8")

        pdf = fitz.open()
        page = pdf.new_page()
        page.insert_text((72, 72), "Hydro capacity stayed flat")
        pdf.set_metadata({"title": "Hydro Report"})
        pdf.save(str(tmp_path / "report.pdf"))
        pdf.close()

        documents = {d.document_key: d for d in await DirectorySource(str(tmp_path)).fetch_documents()}

        assert set(documents) == {"notes.txt", "readme.md", "page.html", "report.pdf"}
        assert documents["notes.txt"].title == "notes"
        assert documents["notes.txt"].text == "Wind power grew."
        assert documents["page.html"].title == "Grid Page"
        assert "Grid news" in documents["page.html"].text
        assert documents["report.pdf"].title == "Hydro Report"
        assert "Hydro capacity stayed flat" in documents["report.pdf"].text

    @pytest.mark.asyncio
    async def test_unreadable_file_is_skipped(self, tmp_path):
        (tmp_path / "broken.pdf").write_bytes(b"not a pdf at all")
        (tmp_path / "ok.txt").write_text("fine", encoding="utf-8")

        documents = await DirectorySource(str(tmp_path)).fetch_documents()

        assert [d.document_key for d in documents] == ["ok.txt"]

    @pytest.mark.asyncio
    async def test_missing_directory(self, tmp_path):
        with pytest.raises(SourceFetchError, match="not found"):
            await DirectorySource(str(tmp_path / "nope")).fetch_documents()


class TestCreateDocumentSource:

    def test_backends(self):
        assert isinstance(create_document_source("wordpress"), WordPressSource)
        assert isinstance(create_document_source("directory"), DirectorySource)

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            create_document_source("s3")
