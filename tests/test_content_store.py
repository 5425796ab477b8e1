"""Tests for reading and writing document sources."""
import pytest

from findreplace.storage.content import ContentStore, is_page_empty


class TestIsPageEmpty:
    def test_skeletons_are_empty(self):
        assert is_page_empty("")
        assert is_page_empty("<body></body>")
        assert is_page_empty("<body>\n  <header></header>\n  <main><div></div></main>\n  <footer></footer>\n</body>")

    def test_content_is_not_empty(self):
        assert not is_page_empty("<body><main><p>Hi</p></main></body>")


class TestContentStore:
    @pytest.mark.asyncio
    async def test_fetch_failure_is_not_an_empty_page(self, client, api):
        api.add_file("/org/site/a.html", "<p>x</p>")
        api.source_status["/org/site/a.html"] = 500
        result = await ContentStore(client).read("/org/site/a.html")
        assert not result.success
        assert result.error == "HTTP 500"

    @pytest.mark.asyncio
    async def test_reads_are_cached_until_written(self, client, api):
        api.add_file("/org/site/a.html", "<p>one</p>")
        store = ContentStore(client)
        assert (await store.read("/org/site/a.html")).content == "<p>one</p>"
        api.sources["/org/site/a.html"] = "<p>two</p>"
        assert (await store.read("/org/site/a.html")).content == "<p>one</p>"

        assert await store.write("/org/site/a.html", "<p>three</p>")
        assert api.writes["/org/site/a.html"] == "<p>three</p>"
        assert (await store.read("/org/site/a.html")).content == "<p>three</p>"

    @pytest.mark.asyncio
    async def test_write_failure(self, client, api):
        api.write_failures.add("/org/site/a.html")
        assert not await ContentStore(client).write("/org/site/a.html", "x")

    @pytest.mark.asyncio
    async def test_invalidate_all(self, client, api):
        api.add_file("/org/site/a.html", "<p>one</p>")
        store = ContentStore(client)
        await store.read("/org/site/a.html")
        store.invalidate_all()
        assert store.cache == {}
