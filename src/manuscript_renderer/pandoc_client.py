"""
Client for the document conversion (pandoc) service.

The service is stateless: each request carries the Markdown, the template
body for the chosen engine, the variables the template expects, the
bibliography and every referenced asset inlined as base64.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, Sequence

import httpx

from .assets import collect_asset_files
from .authors import author_payloads
from .configuration import get_pandoc_service_url
from .errors import ConversionError
from .http_client import client_scope
from .models import (
    CitationHover,
    Engine,
    HtmlMetadata,
    HtmlPdfVariables,
    ManuscriptFile,
    RenderedTemplate,
    TemplateVariables,
    TypesetPdfVariables,
)

logger = logging.getLogger(__name__)


def citation_hover_settings(template: RenderedTemplate) -> Optional[CitationHover]:
    """
    Read the citation-hover feature declared by a template.

    ``features.citationHover`` may be ``true`` (enabled with the default
    links) or an explicit ``{enabled, links, customLinks}`` object.
    """
    features = template.metadata.get("features") or {}
    declared = features.get("citationHover")
    if not declared:
        return None
    if isinstance(declared, bool):
        return CitationHover(enabled=True)
    return CitationHover.model_validate(declared)


def _single_quoted_json(value: Any) -> str:
    # Embedded inside HTML attributes by the templates
    return json.dumps(value).replace('"', "'")


def build_html_metadata(variables: TemplateVariables, template: RenderedTemplate) -> Dict[str, Any]:
    hover = citation_hover_settings(template)
    metadata = HtmlMetadata(
        title=variables.title,
        authors=variables.authors,
        abstract=variables.abstract,
        journal_name=variables.journal_name,
        keywords=variables.keywords,
        doi=variables.doi,
        submitted_date=variables.submitted_date,
        render_date=variables.render_date,
        published_date=variables.published_date,
        volume=variables.volume,
        issue=variables.issue,
        elocation_id=variables.elocation_id,
        issn=variables.issn,
        pdf_url=variables.pdf_url,
        citation_hover=hover.enabled if hover else False,
        citation_hover_links=_single_quoted_json(hover.links if hover else []),
        citation_hover_custom_links=_single_quoted_json(hover.custom_links if hover else {}),
        author_list=author_payloads(variables.author_list) if variables.author_list else None,
        corresponding_author=variables.corresponding_author.to_payload() if variables.corresponding_author else None,
    )
    return metadata.model_dump(by_alias=True, exclude_none=True)


def build_pdf_variables(variables: TemplateVariables, engine: Engine | str) -> Dict[str, Any]:
    """Shape template variables for the engine that will typeset the PDF."""
    if Engine(engine) == Engine.HTML:
        html_variables = HtmlPdfVariables(
            title=variables.title,
            author=[author.name for author in variables.author_list] or [variables.authors],
            abstract=variables.abstract,
            date=variables.submitted_date,
            journal=variables.journal_name,
            customcss=variables.custom_css,
        )
        return html_variables.model_dump(by_alias=True)

    typeset_variables = TypesetPdfVariables(
        title=variables.title,
        authors=variables.authors,
        abstract=variables.abstract,
        submitted_date=variables.submitted_date,
        render_date=variables.render_date,
        journal_name=variables.journal_name,
        author_list=author_payloads(variables.author_list),
        doi=variables.doi,
        keywords=variables.keywords,
        volume=variables.volume,
        issue=variables.issue,
        issn=variables.issn,
    )
    return typeset_variables.model_dump(by_alias=True)


def _error_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and payload.get("error"):
        return str(payload["error"])
    return response.reason_phrase or f"HTTP {response.status_code}"


async def _convert(body: Dict[str, Any], label: str, client: Optional[httpx.AsyncClient]) -> httpx.Response:
    url = f"{get_pandoc_service_url()}/convert"
    try:
        async with client_scope(client) as http:
            response = await http.post(url, json=body)
    except httpx.HTTPError as exc:
        logger.error(f"Failed to generate {label} via conversion service: {exc}")
        raise ConversionError(f"{label} generation failed: {exc}") from exc

    if not response.is_success:
        detail = _error_detail(response)
        logger.error(f"Conversion service rejected {label} request ({response.status_code}): {detail}")
        raise ConversionError(f"{label} generation failed: Pandoc service error: {detail}", response.status_code)
    return response


async def generate_pandoc_html(
    markdown_content: str,
    template: RenderedTemplate,
    variables: TemplateVariables,
    bibliography: str = "",
    manuscript_files: Sequence[ManuscriptFile] = (),
    service_token: str = "",
    api_url: Optional[str] = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> bytes:
    """
    Render a self-contained HTML document.

    Raises:
        ConversionError: If the conversion service fails or is unreachable
    """
    assets = await collect_asset_files(markdown_content, manuscript_files, service_token, api_url, client)

    body = {
        "markdown": markdown_content,
        "engine": Engine.HTML.value,
        "template": template.html_template or "",
        "variables": {},
        "metadata": build_html_metadata(variables, template),
        "outputFormat": "html",
        "bibliography": bibliography,
        "assets": [asset.model_dump() for asset in assets],
        "selfContained": True,
    }
    response = await _convert(body, "HTML", client)
    return response.text.encode("utf-8")


async def generate_pandoc_pdf(
    markdown_content: str,
    template: RenderedTemplate,
    engine: Engine | str,
    variables: TemplateVariables,
    bibliography: str = "",
    manuscript_files: Sequence[ManuscriptFile] = (),
    service_token: str = "",
    api_url: Optional[str] = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> bytes:
    """
    Render a PDF with the requested engine.

    Raises:
        ConversionError: If the conversion service fails or is unreachable
    """
    engine = Engine(engine)
    assets = await collect_asset_files(markdown_content, manuscript_files, service_token, api_url, client)

    body = {
        "markdown": markdown_content,
        "engine": engine.value,
        "template": template.template_for(engine),
        "variables": build_pdf_variables(variables, engine),
        "outputFormat": "pdf",
        "bibliography": bibliography,
        "assets": [asset.model_dump() for asset in assets],
    }
    response = await _convert(body, "PDF", client)
    return response.content
