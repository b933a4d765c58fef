"""
Pytest configuration and fixtures for the Markdown renderer tests.

Collaborator services are faked in-process with ``httpx.MockTransport``.
"""

import json
import os
import re

import httpx
import pytest
from fastapi.testclient import TestClient

# Set service URLs before importing the app
os.environ["API_URL"] = "http://api.test"
os.environ["PANDOC_SERVICE_URL"] = "http://pandoc.test"
os.environ["RENDERER_BOT_ID"] = "bot-markdown-renderer"

from manuscript_renderer.main import app  # noqa: E402
from manuscript_renderer.templates import BuiltInTemplateCache  # noqa: E402

API_URL = "http://api.test"
FILENAME_PATTERN = re.compile(rb'filename="([^"]+)"')


class FakeBackend:
    """In-memory stand-in for the file store, bot config storage and pandoc service."""

    def __init__(self):
        self.files = []
        self.downloads = {}
        self.metadata = {"title": "Test Manuscript", "authors": ["John Doe", "Jane Smith"]}
        self.config_files = {}
        self.config_listing = []
        self.convert_status = 200
        self.convert_body = b"<html><body>rendered</body></html>"
        self.convert_error = "Unknown error"
        self.requests = []
        self.uploads = []
        self.config_uploads = []
        self.convert_requests = []
        self.failures = {}

    def add_file(self, file_id, name, file_type, content=b"", **extra):
        download_url = f"/api/files/{file_id}/download"
        record = {
            "id": file_id,
            "originalName": name,
            "fileType": file_type,
            "downloadUrl": download_url,
            **extra,
        }
        self.files.append(record)
        self.downloads[download_url] = content
        return record

    def handler(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        path = request.url.path

        if path in self.failures:
            return httpx.Response(self.failures[path], json={"error": "unavailable"})

        if request.url.host == "pandoc.test" and path == "/convert":
            self.convert_requests.append(json.loads(request.content))
            if self.convert_status != 200:
                return httpx.Response(self.convert_status, json={"error": self.convert_error})
            return httpx.Response(200, content=self.convert_body)

        if path == "/api/files" and request.method == "GET":
            return httpx.Response(200, json={"files": self.files})

        if path == "/api/files" and request.method == "POST":
            match = FILENAME_PATTERN.search(request.content)
            filename = match.group(1).decode() if match else "upload"
            self.uploads.append(filename)
            file_id = f"rendered-{len(self.uploads)}"
            return httpx.Response(
                200,
                json={"files": [{"id": file_id, "filename": filename, "downloadUrl": f"/api/files/{file_id}/download"}]},
            )

        if path.startswith("/api/manuscripts/"):
            return httpx.Response(200, json=self.metadata)

        if path.startswith("/api/bot-config-files/") and path.endswith("/content"):
            file_id = path.split("/")[3]
            if file_id not in self.config_files:
                return httpx.Response(404, json={"error": "not found"})
            return httpx.Response(200, text=self.config_files[file_id])

        if path.startswith("/api/bot-config-files/") and path.endswith("/files"):
            if request.method == "POST":
                match = FILENAME_PATTERN.search(request.content)
                self.config_uploads.append(match.group(1).decode() if match else "upload")
                return httpx.Response(201, json={"file": {"id": f"cfg-{len(self.config_uploads)}"}})
            return httpx.Response(200, json={"files": self.config_listing})

        if path in self.downloads:
            return httpx.Response(200, content=self.downloads[path])

        return httpx.Response(404, json={"error": "not found"})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def paths(self, method=None):
        return [r.url.path for r in self.requests if method is None or r.method == method]


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def template_cache():
    """A fresh cache over the bundled templates."""
    return BuiltInTemplateCache()


@pytest.fixture
def client():
    """Create a test client for the FastAPI app."""
    return TestClient(app)


@pytest.fixture
def markdown_manuscript(backend):
    """Manuscript with one Markdown source and the image it references."""
    backend.add_file(
        "src-1",
        "paper.md",
        "SOURCE",
        b"# Results\n\n![chart](chart.png)\n\nSee the data.",
        mimetype="text/markdown",
    )
    backend.add_file("asset-1", "chart.png", "ASSET", b"\x89PNG\r\n\x1a\nfake", mimetype="image/png")
    return backend
