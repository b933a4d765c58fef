"""
Template resolution for the rendering pipeline.

A template name plus an engine is resolved by trying an ordered list of
strategies, stopping at the first one that produces a template:

1. the journal's file-ID registry (template files uploaded to bot config storage)
2. templates bundled with this package
3. legacy ``file:<name>`` templates uploaded as bot config files
4. legacy custom templates stored inline in the journal configuration

When every strategy misses, a hard-coded fallback template is returned so the
resolver never comes back empty-handed. Storage failures inside a strategy are
logged and treated as a miss.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence

import httpx
from pydantic import ValidationError

from .configuration import get_api_url, get_bot_id
from .errors import CollaboratorError, TemplateError
from .http_client import client_scope
from .models import BotConfig, Engine, RenderedTemplate

logger = logging.getLogger(__name__)

BUILTIN_TEMPLATES_DIR = Path(__file__).resolve().parent / "builtin_templates"
DEFAULT_TEMPLATE_NAME = "academic-standard"
FILE_TEMPLATE_PREFIX = "file:"

# RenderedTemplate field -> file inside a bundled template directory
TEMPLATE_BODY_FILES = {
    "html_template": "template.html",
    "latex_template": "template.tex",
    "typst_template": "template.typ",
    "css_template": "template.css",
}

FALLBACK_HTML = (
    "<!DOCTYPE html>\n"
    "<html>\n"
    "<head><meta charset=\"utf-8\"><title>$title$</title></head>\n"
    "<body>\n"
    "<h1>$title$</h1>\n"
    "<main>\n$body$\n</main>\n"
    "</body>\n"
    "</html>\n"
)
FALLBACK_LATEX = (
    "\\documentclass{article}\n"
    "\\title{$title$}\n"
    "\\author{$authors$}\n"
    "\\begin{document}\n"
    "\\maketitle\n"
    "$body$\n"
    "\\end{document}\n"
)
FALLBACK_TYPST = '#set page(paper: "a4")\n#set text(size: 12pt)\n= $title$\n\n$body$\n'


def load_builtin_templates(templates_dir: Path = BUILTIN_TEMPLATES_DIR) -> Dict[str, RenderedTemplate]:
    """
    Load every bundled template directory.

    Each directory is one template; ``template.json`` carries its metadata and
    is required. Engine bodies (``template.html``/``.tex``/``.typ``) and an
    optional stylesheet are read when present. A directory that fails to load
    is skipped with a warning.
    """
    templates: Dict[str, RenderedTemplate] = {}
    if not templates_dir.is_dir():
        logger.warning(f"Built-in templates directory not found: {templates_dir}")
        return templates

    for template_dir in sorted(path for path in templates_dir.iterdir() if path.is_dir()):
        metadata_path = template_dir / "template.json"
        if not metadata_path.exists():
            continue
        try:
            data: Dict[str, Any] = json.loads(metadata_path.read_text(encoding="utf-8"))
            data.setdefault("name", template_dir.name)
            for field_name, filename in TEMPLATE_BODY_FILES.items():
                body_path = template_dir / filename
                if body_path.exists():
                    data[field_name] = body_path.read_text(encoding="utf-8")
            templates[template_dir.name] = RenderedTemplate.model_validate(data)
        except (OSError, ValueError, ValidationError) as exc:
            logger.warning(f"Failed to load template {template_dir.name}: {exc}")

    return templates


class BuiltInTemplateCache:
    """
    Read-through cache of the bundled templates, populated at most once.

    Loading is pure and idempotent, so the lock only avoids duplicate work
    when several renders hit a cold cache together. Tests can point an
    instance at another directory or call ``reset``.
    """

    def __init__(
        self,
        templates_dir: Path = BUILTIN_TEMPLATES_DIR,
        loader: Callable[[Path], Dict[str, RenderedTemplate]] = load_builtin_templates,
    ) -> None:
        self.templates_dir = templates_dir
        self._loader = loader
        self._templates: Optional[Dict[str, RenderedTemplate]] = None
        self._lock = Lock()

    def get(self) -> Dict[str, RenderedTemplate]:
        if self._templates is None:
            with self._lock:
                if self._templates is None:
                    self._templates = self._loader(self.templates_dir)
        return self._templates

    def lookup(self, name: str) -> Optional[RenderedTemplate]:
        template = self.get().get(name)
        return template.model_copy(deep=True) if template is not None else None

    def reset(self) -> None:
        with self._lock:
            self._templates = None


_default_cache = BuiltInTemplateCache()


def default_template_cache() -> BuiltInTemplateCache:
    return _default_cache


def fallback_template() -> RenderedTemplate:
    return RenderedTemplate(
        name="fallback",
        title="Fallback Template",
        description="Basic fallback template",
        html_template=FALLBACK_HTML,
        latex_template=FALLBACK_LATEX,
        typst_template=FALLBACK_TYPST,
        engines=[engine.value for engine in Engine],
        default_engine=Engine.HTML.value,
        metadata={"type": "fallback"},
    )


def _minimal_html_template() -> RenderedTemplate:
    return RenderedTemplate(
        name="fallback",
        title="Fallback Template",
        description="Basic fallback template",
        html_template=FALLBACK_HTML,
        css_template="",
        metadata={"type": "basic"},
    )


def _config_file_content(response: httpx.Response) -> str:
    """Bot config file content is served raw, or wrapped as ``{"file": {"content": ...}}``."""
    if "application/json" in response.headers.get("content-type", ""):
        payload = response.json()
        if isinstance(payload, dict) and isinstance(payload.get("file"), dict):
            return str(payload["file"].get("content", ""))
    return response.text


async def fetch_template_content_by_id(
    file_id: str,
    api_url: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    base = api_url or get_api_url()
    async with client_scope(client) as http:
        response = await http.get(f"{base}/api/bot-config-files/{file_id}/content")
    if not response.is_success:
        raise CollaboratorError(
            f"Failed to fetch template content: {response.reason_phrase or response.status_code}",
            response.status_code,
        )
    return _config_file_content(response)


@dataclass
class TemplateRequest:
    name: str
    engine: Engine
    config: BotConfig
    api_url: str
    cache: BuiltInTemplateCache
    client: Optional[httpx.AsyncClient] = None


TemplateStrategy = Callable[[TemplateRequest], Awaitable[Optional[RenderedTemplate]]]


async def resolve_registry_template(request: TemplateRequest) -> Optional[RenderedTemplate]:
    definition = request.config.templates.get(request.name)
    if definition is None:
        return None

    template_file = definition.file_for(request.engine)
    if template_file is None:
        logger.debug(f"Template {request.name} has no {request.engine.value} file registered")
        return None

    try:
        content = await fetch_template_content_by_id(template_file.file_id, request.api_url, request.client)
    except (CollaboratorError, httpx.HTTPError, ValueError) as exc:
        logger.warning(f"Failed to load template file {template_file.file_id} for {request.name}: {exc}")
        return None

    template = RenderedTemplate(
        name=definition.name,
        title=definition.title,
        description=definition.description,
        engines=[item.engine.value for item in definition.files],
        default_engine=definition.default_engine.value,
        metadata=dict(definition.metadata),
    )
    setattr(template, f"{request.engine.value}_template", content)
    return template


async def resolve_builtin_template(request: TemplateRequest) -> Optional[RenderedTemplate]:
    template = request.cache.lookup(request.name)
    if template is None:
        return None
    if template.engines and request.engine.value not in template.engines:
        logger.warning(f"Template {request.name} does not support engine {request.engine.value}")
    return template


async def _load_file_template(file_name: str, api_url: str, client: Optional[httpx.AsyncClient]) -> RenderedTemplate:
    listing_url = f"{api_url}/api/bot-config-files/{get_bot_id()}/files"
    async with client_scope(client) as http:
        response = await http.get(listing_url, params={"category": "template"})
        if not response.is_success:
            raise CollaboratorError(f"Failed to fetch template files: {response.reason_phrase}", response.status_code)
        files = response.json().get("files", [])

        template_file = next(
            (item for item in files if item.get("filename") in (file_name, f"{file_name}.html")),
            None,
        )
        if template_file is None:
            raise TemplateError(f"Template file '{file_name}' not found")

        content = await fetch_template_content_by_id(str(template_file["id"]), api_url, http)

        css_content = ""
        css_file = next(
            (
                item
                for item in files
                if item.get("category") == "css"
                and (item.get("filename") == f"{file_name}.css" or str(item.get("filename", "")).startswith(file_name))
            ),
            None,
        )
        if css_file is not None:
            try:
                css_content = await fetch_template_content_by_id(str(css_file["id"]), api_url, http)
            except CollaboratorError as exc:
                logger.warning(f"Ignoring stylesheet for template '{file_name}': {exc}")

    return RenderedTemplate(
        name=file_name,
        title=template_file.get("description") or file_name,
        description=f"Custom template: {file_name}",
        engines=[Engine.HTML.value],
        default_engine=Engine.HTML.value,
        html_template=content,
        css_template=css_content,
        metadata={"type": "custom", "source": "file", "uploadedAt": template_file.get("uploadedAt")},
    )


async def resolve_file_template(request: TemplateRequest) -> Optional[RenderedTemplate]:
    if not request.name.startswith(FILE_TEMPLATE_PREFIX):
        return None

    file_name = request.name[len(FILE_TEMPLATE_PREFIX):]
    try:
        return await _load_file_template(file_name, request.api_url, request.client)
    except (CollaboratorError, TemplateError, httpx.HTTPError, ValueError, KeyError, AttributeError) as exc:
        logger.error(f"Failed to load file-based template '{file_name}': {exc}")
        return request.cache.lookup(DEFAULT_TEMPLATE_NAME) or _minimal_html_template()


async def resolve_custom_template(request: TemplateRequest) -> Optional[RenderedTemplate]:
    custom = request.config.custom_templates.get(request.name)
    if custom is None:
        return None
    try:
        return RenderedTemplate.model_validate({"name": request.name, **custom})
    except ValidationError as exc:
        logger.warning(f"Ignoring malformed custom template {request.name}: {exc}")
        return None


DEFAULT_STRATEGIES: Sequence[TemplateStrategy] = (
    resolve_registry_template,
    resolve_builtin_template,
    resolve_file_template,
    resolve_custom_template,
)


async def get_template(
    template_name: str,
    engine: Engine | str,
    journal_config: Optional[BotConfig] = None,
    api_url: Optional[str] = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
    cache: Optional[BuiltInTemplateCache] = None,
    strategies: Sequence[TemplateStrategy] = DEFAULT_STRATEGIES,
) -> RenderedTemplate:
    """
    Resolve a template name and engine into template source.

    Args:
        template_name: Registry, built-in, ``file:<name>`` or custom template name
        engine: Engine the caller wants a body for
        journal_config: The journal's bot configuration
        api_url: Base URL of the bot-config file service
        client: Optional shared HTTP client
        cache: Built-in template cache (the process-wide one by default)
        strategies: Resolution tiers, tried in order

    Returns:
        The first template a strategy produces, or the fallback template
    """
    request = TemplateRequest(
        name=template_name,
        engine=Engine(engine),
        config=journal_config or BotConfig(),
        api_url=api_url or get_api_url(),
        cache=cache or default_template_cache(),
        client=client,
    )

    for strategy in strategies:
        template = await strategy(request)
        if template is not None:
            return template

    logger.info(f"No template named {template_name}; using fallback template")
    return fallback_template()
