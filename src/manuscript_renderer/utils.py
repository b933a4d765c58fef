"""
Utility functions for URL handling, filenames and report formatting.

This module provides helper functions for:
- Normalizing asset references written inside Markdown documents
- Resolving download URLs returned by the file-storage service
- Deriving output filenames and human-readable sizes
- Describing bundled template files for upload
"""

from __future__ import annotations

import re
from pathlib import PurePosixPath

# Leading "./" or "/" in an asset reference
LEADING_PATH_PATTERN = re.compile(r"^\.?/")

MARKDOWN_SUFFIX_PATTERN = re.compile(r"\.(md|markdown)$", re.IGNORECASE)

TEMPLATE_MIMETYPES = {
    ".html": "text/html",
    ".tex": "application/x-tex",
    ".typ": "text/plain",
    ".json": "application/json",
    ".css": "text/css",
}


def clean_asset_reference(reference: str) -> str:
    """
    Strip a single leading "./" or "/" from an asset reference.

    Example:
        >>> clean_asset_reference("./figures/chart.png")
        "figures/chart.png"
        >>> clean_asset_reference("/chart.png")
        "chart.png"
    """
    return LEADING_PATH_PATTERN.sub("", reference.strip(), count=1)


def resolve_url(url: str, api_url: str) -> str:
    """
    Turn a download URL returned by the file-storage service into an absolute URL.

    Args:
        url: Absolute URL or a path relative to the API root
        api_url: Base URL of the API

    Returns:
        The URL unchanged when it is already absolute, otherwise prefixed with api_url
    """
    if url.startswith("http://") or url.startswith("https://"):
        return url
    return f"{api_url.rstrip('/')}{url}"


def with_inline_flag(url: str) -> str:
    """
    Append ``inline=true`` so the file store serves the asset without authentication.

    Example:
        >>> with_inline_flag("/files/abc")
        "/files/abc?inline=true"
        >>> with_inline_flag("/files/abc?v=2")
        "/files/abc?v=2&inline=true"
    """
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}inline=true"


def base_filename(filename: str) -> str:
    """Drop a .md/.markdown suffix from a manuscript source filename."""
    return MARKDOWN_SUFFIX_PATTERN.sub("", filename)


def format_size(size: int) -> str:
    return f"{size / 1024:.1f} KB"


def title_from_name(name: str) -> str:
    """
    Build a display title from a template directory name.

    Example:
        >>> title_from_name("academic-standard")
        "Academic Standard"
    """
    return " ".join(word[:1].upper() + word[1:] for word in name.split("-"))


def template_mimetype(filename: str) -> str:
    return TEMPLATE_MIMETYPES.get(PurePosixPath(filename).suffix.lower(), "application/octet-stream")


def describe_template_file(upload_filename: str) -> str:
    """
    Describe a bundled template file uploaded as ``<template>/<filename>``.

    Returns:
        A one-line description shown in the bot configuration UI
    """
    path = PurePosixPath(upload_filename)
    suffix = path.suffix.lower()
    template_name = path.parts[0] if len(path.parts) > 1 else path.stem

    descriptions = {
        ".html": f"HTML template for {template_name}",
        ".tex": f"LaTeX template for {template_name}",
        ".typ": f"Typst template for {template_name}",
        ".json": f"Metadata configuration for {template_name}",
        ".css": f"Styling for {template_name}",
    }
    return descriptions.get(suffix, f"Template file: {upload_filename}")
