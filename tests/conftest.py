"""
Shared fixtures for the findreplace test suite.

The content-admin and lifecycle APIs are simulated in memory behind an
``httpx.MockTransport`` so no test touches the network.
"""
import json
from typing import Dict, List, Set, Tuple

import httpx
import pytest
import pytest_asyncio

from findreplace.client.admin import AdminClient
from findreplace.config import Settings

ADMIN_HOST = "admin.da.live"
HELIX_HOST = "admin.hlx.page"


def multipart_field(request: httpx.Request, name: str) -> str:
    """Extract one form field from a multipart request body."""
    content_type = request.headers["content-type"]
    boundary = content_type.split("boundary=")[1].encode()
    for part in request.content.split(b"--" + boundary):
        head, _, body = part.partition(b"\r\n\r\n")
        if f'name="{name}"'.encode() in head:
            return body[: -len(b"\r\n")].decode("utf-8")
    raise KeyError(name)


class FakeAdminApi:
    """In-memory stand-in for the remote content-admin and lifecycle APIs."""

    def __init__(self) -> None:
        self.listings: Dict[str, List[dict]] = {}
        self.sources: Dict[str, str] = {}
        self.source_status: Dict[str, int] = {}
        self.list_failures: Set[str] = set()
        self.versions: Dict[str, List[dict]] = {}
        self.version_contents: Dict[str, str] = {}
        self.backup_failures: Set[str] = set()
        self.write_failures: Set[str] = set()
        self.lifecycle_failures: Set[str] = set()
        self.bulk_response: dict = {}
        self.bulk_status = 200
        self.writes: Dict[str, str] = {}
        self.calls: List[Tuple[str, str]] = []
        self.bulk_payloads: List[dict] = []

    # fixture helpers

    def add_file(self, path: str, content: str, last_modified: int = 1700000000) -> None:
        folder, _, name = path.rpartition("/")
        stem, _, ext = name.rpartition(".")
        self.listings.setdefault(folder, []).append(
            {"name": stem, "path": path, "ext": ext, "lastModified": last_modified}
        )
        self.sources[path] = content

    def add_folder(self, path: str) -> None:
        parent, _, name = path.rpartition("/")
        self.listings.setdefault(parent, []).append({"name": name, "path": path})
        self.listings.setdefault(path, [])

    def add_version(self, path: str, label: str, timestamp: int, content: str) -> dict:
        url = f"/versionsource{path}/v{len(self.version_contents) + 1}"
        record = {"url": url, "label": label, "timestamp": timestamp}
        self.versions.setdefault(path, []).append(record)
        self.version_contents[url] = content
        return record

    # transport

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append((request.method, path))
        if request.url.host == HELIX_HOST:
            return self._lifecycle(request, path)

        endpoint, _, rest = path.lstrip("/").partition("/")
        target = f"/{rest}"
        if endpoint == "list":
            if target in self.list_failures:
                return httpx.Response(500, text="boom")
            return httpx.Response(200, json=self.listings.get(target, []))
        if endpoint == "source" and request.method == "GET":
            status = self.source_status.get(target)
            if status:
                return httpx.Response(status, text="error")
            if target not in self.sources:
                return httpx.Response(404, text="not found")
            return httpx.Response(200, text=self.sources[target])
        if endpoint == "source" and request.method == "POST":
            if target in self.write_failures:
                return httpx.Response(500, text="write failed")
            content = multipart_field(request, "data")
            self.writes[target] = content
            self.sources[target] = content
            return httpx.Response(201)
        if endpoint == "versionsource" and request.method == "POST":
            if target in self.backup_failures:
                return httpx.Response(500, text="no version")
            label = json.loads(request.content)["label"]
            record = self.add_version(target, label, 1800000000000, self.sources.get(target, ""))
            return httpx.Response(201, json=record)
        if endpoint == "versionsource" and request.method == "GET":
            if path not in self.version_contents:
                return httpx.Response(404)
            return httpx.Response(200, text=self.version_contents[path])
        if endpoint == "versionlist":
            return httpx.Response(200, json=self.versions.get(target, []))
        return httpx.Response(404)

    def _lifecycle(self, request: httpx.Request, path: str) -> httpx.Response:
        # /{preview|live}/{org}/{site}/{branch}{path}
        parts = path.lstrip("/").split("/", 4)
        resource = "/" + parts[4] if len(parts) > 4 else "/"
        if resource == "/*":
            self.bulk_payloads.append(json.loads(request.content))
            return httpx.Response(self.bulk_status, json=self.bulk_response)
        if resource in self.lifecycle_failures:
            return httpx.Response(502, text="bad gateway")
        return httpx.Response(200, json={})

    def lifecycle_calls(self) -> List[Tuple[str, str]]:
        return [c for c in self.calls if c[1].startswith(("/preview/", "/live/"))]


@pytest.fixture
def settings(tmp_path):
    return Settings(org="org", site="site", token="secret", ref="feature", workdir=tmp_path)


@pytest.fixture
def api():
    return FakeAdminApi()


@pytest_asyncio.fixture
async def client(settings, api):
    admin = AdminClient(settings, transport=httpx.MockTransport(api.handler))
    yield admin
    await admin.close()
