"""
Asset handling for Markdown manuscripts.

Two jobs live here:
- rewriting image and link references so they resolve against the file store,
  followed by Markdown to sanitized HTML conversion
- collecting the binary assets a document references, base64-encoded, so they
  can travel inside a stateless conversion request
"""

from __future__ import annotations

import base64
import logging
import re
from typing import List, Optional, Sequence

import httpx
import markdown
from bs4 import BeautifulSoup

from .errors import CollaboratorError
from .file_client import download_bytes
from .models import AssetFile, FileType, ManuscriptFile, ProcessedContent
from .utils import clean_asset_reference, with_inline_flag

logger = logging.getLogger(__name__)

# Group 1/2 capture an image, group 3/4 a plain link
ASSET_REFERENCE_PATTERN = re.compile(r"!\[([^\]]*)\]\(([^)]+)\)|(?<!!)\[([^\]]*)\]\(([^)]+)\)")
IMAGE_PATTERN = re.compile(r"!\[([^\]]*)\]\(([^)]+)\)")

# GitHub-flavoured additions: ~~strikethrough~~ and bare URL autolinks
MARKDOWN_EXTENSIONS = ["extra", "sane_lists", "nl2br", "pymdownx.tilde", "pymdownx.magiclink"]

FORBIDDEN_TAGS = [
    "script",
    "style",
    "iframe",
    "frame",
    "frameset",
    "object",
    "embed",
    "applet",
    "form",
    "input",
    "button",
    "textarea",
    "select",
    "link",
    "meta",
    "base",
    "noscript",
]
URL_ATTRIBUTES = {"href", "src", "action", "formaction", "xlink:href", "background", "poster"}
UNSAFE_SCHEMES = ("javascript:", "vbscript:")
CONTROL_CHARACTERS = re.compile(r"[\x00-\x20]+")


def find_asset_file(files: Sequence[ManuscriptFile], filename: str) -> Optional[ManuscriptFile]:
    """Match a Markdown reference against the manuscript's ASSET files."""
    clean_name = clean_asset_reference(filename)
    for file in files:
        if file.file_type != FileType.ASSET.value:
            continue
        if (
            file.original_name == clean_name
            or file.original_name.endswith("/" + clean_name)
            or (file.path or "").endswith(clean_name)
        ):
            return file
    return None


def _is_unsafe_url(value: str, tag_name: str) -> bool:
    normalized = CONTROL_CHARACTERS.sub("", value).lower()
    if normalized.startswith(UNSAFE_SCHEMES):
        return True
    return normalized.startswith("data:") and tag_name != "img"


def sanitize_html(html: str) -> str:
    """
    Remove executable content from rendered HTML.

    Drops script-capable elements entirely, strips ``on*`` event handler
    attributes and removes javascript:/vbscript: URLs. ``data:`` URLs are
    kept only on images.
    """
    soup = BeautifulSoup(html, "html.parser")
    for element in soup.find_all(FORBIDDEN_TAGS):
        if not element.decomposed:
            element.decompose()

    for element in soup.find_all(True):
        for attribute in list(element.attrs):
            name = attribute.lower()
            value = element.attrs[attribute]
            if name.startswith("on") or name == "srcdoc":
                del element.attrs[attribute]
            elif name in URL_ATTRIBUTES and isinstance(value, str) and _is_unsafe_url(value, element.name):
                del element.attrs[attribute]
    return str(soup)


def render_html(content: str) -> str:
    """Convert Markdown to sanitized HTML with line-break-sensitive paragraphs."""
    html = markdown.markdown(content, extensions=MARKDOWN_EXTENSIONS, output_format="html")
    return sanitize_html(html)


def process_markdown_content(
    content: str,
    manuscript_files: Sequence[ManuscriptFile],
    include_assets: bool,
) -> ProcessedContent:
    """
    Rewrite asset references and render the document to HTML.

    Args:
        content: Markdown source of the manuscript
        manuscript_files: Files attached to the manuscript
        include_assets: Whether image and link references should be rewritten

    Returns:
        ProcessedContent with sanitized HTML, rewritten Markdown, the number of
        references resolved to assets and a warning per missing image

    Note:
        A missing image never aborts rendering; the reference is left as-is.
        Unmatched plain links are expected (external URLs) and produce no warning.
    """
    warnings: List[str] = []
    processed_assets = 0

    def rewrite(match: re.Match[str]) -> str:
        nonlocal processed_assets
        image_alt, image_url, link_text, link_url = match.groups()

        if image_alt is not None:
            asset = find_asset_file(manuscript_files, image_url)
            if asset is None:
                warnings.append(f"Image not found: {image_url}")
                return match.group(0)
            processed_assets += 1
            return f"![{image_alt}]({with_inline_flag(asset.download_url)})"

        asset = find_asset_file(manuscript_files, link_url)
        if asset is None:
            return match.group(0)
        processed_assets += 1
        return f"[{link_text}]({asset.download_url})"

    if include_assets:
        content = ASSET_REFERENCE_PATTERN.sub(rewrite, content)

    return ProcessedContent(
        html=render_html(content),
        markdown=content,
        processed_assets=processed_assets,
        warnings=warnings,
    )


async def collect_asset_files(
    markdown_content: str,
    manuscript_files: Sequence[ManuscriptFile],
    service_token: str,
    api_url: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> List[AssetFile]:
    """
    Download and base64-encode every image asset the document references.

    Assets that cannot be matched or downloaded are skipped with a warning so
    the conversion can still run with whatever was collected.
    """
    assets: List[AssetFile] = []
    seen: set[str] = set()

    for match in IMAGE_PATTERN.finditer(markdown_content):
        clean_name = clean_asset_reference(match.group(2))
        if clean_name in seen:
            continue

        asset = find_asset_file(manuscript_files, clean_name)
        if asset is None:
            continue
        seen.add(clean_name)

        try:
            content = await download_bytes(asset.download_url, service_token, api_url, client)
        except (CollaboratorError, httpx.HTTPError) as exc:
            logger.warning(f"Failed to download asset {clean_name}: {exc}")
            continue

        assets.append(
            AssetFile(
                filename=clean_name,
                content=base64.b64encode(content).decode("ascii"),
                encoding="base64",
            )
        )

    return assets
