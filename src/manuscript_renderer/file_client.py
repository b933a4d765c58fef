"""
Client for the manuscript file-storage service.

Lists and downloads the files attached to a manuscript, fetches manuscript
metadata and uploads rendered outputs back as RENDERED files. Every call
authenticates with the bot service token in the ``x-bot-token`` header.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Sequence

import httpx

from .configuration import get_api_url, get_bot_id
from .errors import CollaboratorError
from .http_client import auth_headers, client_scope
from .models import FileType, ManuscriptFile, OutputType, RenderOutput
from .utils import resolve_url

logger = logging.getLogger(__name__)

MARKDOWN_EXTENSION = re.compile(r"\.(md|markdown)$", re.IGNORECASE)
BIBLIOGRAPHY_EXTENSION = re.compile(r"\.(bib|bibtex)$", re.IGNORECASE)


def _raise_for_status(response: httpx.Response, action: str) -> None:
    if response.is_success:
        return
    raise CollaboratorError(f"Failed to {action}: {response.reason_phrase or response.status_code}", response.status_code)


async def get_manuscript_files(
    manuscript_id: str,
    service_token: str,
    api_url: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> List[ManuscriptFile]:
    base = api_url or get_api_url()
    async with client_scope(client) as http:
        response = await http.get(
            f"{base}/api/files",
            params={"manuscriptId": manuscript_id},
            headers=auth_headers(service_token, json_body=True),
        )
    _raise_for_status(response, "fetch manuscript files")

    payload = response.json()
    raw_files = payload.get("files", []) if isinstance(payload, dict) else payload
    return [ManuscriptFile.model_validate(item) for item in raw_files or []]


def _looks_like_markdown(file: ManuscriptFile) -> bool:
    return (
        "markdown" in (file.mimetype or "")
        or bool(MARKDOWN_EXTENSION.search(file.original_name))
        or file.detected_format == "markdown"
    )


def find_markdown_file(files: Sequence[ManuscriptFile]) -> Optional[ManuscriptFile]:
    """
    Pick the manuscript's primary Markdown source.

    SOURCE files that look like Markdown win, then any file that looks like
    Markdown, then any file with a .md/.markdown extension.
    """
    for candidates in (
        (f for f in files if f.file_type == FileType.SOURCE.value and _looks_like_markdown(f)),
        (f for f in files if _looks_like_markdown(f)),
        (f for f in files if MARKDOWN_EXTENSION.search(f.original_name)),
    ):
        found = next(candidates, None)
        if found is not None:
            return found
    return None


def find_bibliography_file(files: Sequence[ManuscriptFile]) -> Optional[ManuscriptFile]:
    return next(
        (f for f in files if BIBLIOGRAPHY_EXTENSION.search(f.original_name) or f.detected_format == "bibtex"),
        None,
    )


async def download_bytes(
    download_url: str,
    service_token: str,
    api_url: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> bytes:
    full_url = resolve_url(download_url, api_url or get_api_url())
    async with client_scope(client) as http:
        response = await http.get(full_url, headers=auth_headers(service_token))
    _raise_for_status(response, "download file")
    return response.content


async def download_file(
    download_url: str,
    service_token: str,
    api_url: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    """Download a text file; bytes that are not valid UTF-8 become U+FFFD."""
    content = await download_bytes(download_url, service_token, api_url, client)
    return content.decode("utf-8", errors="replace")


async def get_manuscript_metadata(
    manuscript_id: str,
    service_token: str,
    api_url: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, Any]:
    base = api_url or get_api_url()
    async with client_scope(client) as http:
        response = await http.get(
            f"{base}/api/manuscripts/{manuscript_id}",
            headers=auth_headers(service_token, json_body=True),
        )
    _raise_for_status(response, "fetch manuscript metadata")
    return response.json()


async def upload_rendered_file(
    manuscript_id: str,
    filename: str,
    content: bytes,
    output_type: OutputType,
    service_token: str,
    api_url: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> RenderOutput:
    """
    Upload a rendered document back to the manuscript as a RENDERED file.

    Returns:
        RenderOutput describing the stored file, with an absolute download URL
    """
    base = api_url or get_api_url()
    mimetype = "text/html" if output_type == OutputType.HTML else "application/pdf"

    async with client_scope(client) as http:
        response = await http.post(
            f"{base}/api/files",
            headers=auth_headers(service_token),
            files={"files": (filename, content, mimetype)},
            data={
                "manuscriptId": manuscript_id,
                "fileType": FileType.RENDERED.value,
                "renderedBy": get_bot_id(),
            },
        )
    _raise_for_status(response, "upload rendered file")

    stored = response.json()["files"][0]
    logger.info(f"Uploaded {filename} ({len(content)} bytes) for manuscript {manuscript_id}")
    return RenderOutput(
        type=output_type,
        id=stored.get("id"),
        filename=stored.get("filename") or filename,
        size=len(content),
        download_url=resolve_url(stored.get("downloadUrl", ""), base),
    )
