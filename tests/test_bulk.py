"""Tests for lifecycle transitions."""
import pytest

from findreplace.bulk.coordinator import BulkOpsCoordinator
from findreplace.errors import ConfigurationError
from findreplace.models import BulkOperation, FileDescriptor


def descriptor(path):
    return FileDescriptor(path=path, ext="html", last_modified=1, name=path.split("/")[-1])


FILES = [descriptor("/org/site/a.html"), descriptor("/org/site/b.html"), descriptor("/org/site/blog/c.html")]


class TestPaths:
    @pytest.mark.asyncio
    async def test_site_path_strips_prefix_and_extension(self, client):
        coordinator = BulkOpsCoordinator(client)
        assert coordinator.site_path("/org/site/blog/c.html") == "/blog/c"
        assert coordinator.site_path("docs/readme") == "/docs/readme"

    @pytest.mark.asyncio
    async def test_copy_urls_needs_no_remote_call(self, client, api):
        urls = BulkOpsCoordinator(client).copy_urls(FILES[:1])
        assert urls == ["https://main--site--org.aem.page/a"]
        assert api.calls == []


class TestTransition:
    @pytest.mark.asyncio
    async def test_unpublish_reports_partial_failure(self, client, api):
        api.lifecycle_failures.add("/b")
        summary = await BulkOpsCoordinator(client).transition(BulkOperation.UNPUBLISH, FILES)
        assert summary.succeeded == 2
        assert summary.failed_paths == ["/b"]
        assert summary.message == "Unpublished 2/3 files. Failed: /b"
        assert ("DELETE", "/live/org/site/main/blog/c") in api.calls

    @pytest.mark.asyncio
    async def test_single_file_uses_direct_call_on_ref_branch(self, client, api):
        summary = await BulkOpsCoordinator(client).transition(BulkOperation.PREVIEW, FILES[:1])
        assert summary.ok
        assert summary.message == "Successfully completed preview for 1 file"
        assert api.lifecycle_calls() == [("POST", "/preview/org/site/feature/a")]

    @pytest.mark.asyncio
    async def test_single_file_failure(self, client, api):
        api.lifecycle_failures.add("/a")
        summary = await BulkOpsCoordinator(client).transition(BulkOperation.PUBLISH, FILES[:1])
        assert not summary.ok
        assert summary.message.startswith("publish failed: 502")

    @pytest.mark.asyncio
    async def test_bulk_publish_reports_job(self, client, api):
        api.bulk_response = {"job": {"name": "job-42"}}
        summary = await BulkOpsCoordinator(client).transition(BulkOperation.PUBLISH, FILES)
        assert summary.job_id == "job-42"
        assert summary.message == "Bulk publish job initiated for 3 files. Job ID: job-42"
        assert api.lifecycle_calls() == [("POST", "/live/org/site/main/*")]
        assert api.bulk_payloads == [
            {"forceUpdate": True, "paths": ["/a", "/b", "/blog/c"], "delete": False}
        ]

    @pytest.mark.asyncio
    async def test_bulk_without_job_completes(self, client, api):
        summary = await BulkOpsCoordinator(client).transition(BulkOperation.PREVIEW, FILES[:2])
        assert summary.job_id is None
        assert summary.message == "Bulk preview completed for 2 files"

    @pytest.mark.asyncio
    async def test_bulk_http_failure_is_captured(self, client, api):
        api.bulk_status = 500
        summary = await BulkOpsCoordinator(client).transition(BulkOperation.PREVIEW, FILES)
        assert not summary.ok
        assert summary.message.startswith("preview failed: 500")

    @pytest.mark.asyncio
    async def test_nothing_selected(self, client):
        with pytest.raises(ConfigurationError):
            await BulkOpsCoordinator(client).transition(BulkOperation.PREVIEW, [])
