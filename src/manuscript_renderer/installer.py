"""
Template installation for a newly installed bot.

Uploads every bundled template file to the bot-config file service and builds
the journal's template registry from the returned file IDs, so later renders
resolve templates by file ID instead of from the package.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

import httpx

from .configuration import build_bot_config, get_api_url, get_bot_id
from .errors import CollaboratorError
from .http_client import auth_headers, client_scope
from .models import BotConfig, Engine, TemplateDefinition, TemplateFile
from .templates import BUILTIN_TEMPLATES_DIR, DEFAULT_TEMPLATE_NAME
from .utils import describe_template_file, template_mimetype, title_from_name

logger = logging.getLogger(__name__)

ENGINE_BY_SUFFIX = {
    ".html": Engine.HTML,
    ".tex": Engine.LATEX,
    ".typ": Engine.TYPST,
}


async def upload_config_file(
    filename: str,
    content: bytes,
    description: str,
    service_token: str,
    api_url: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> str:
    """Upload one file to the bot's config storage and return its file ID."""
    base = api_url or get_api_url()
    async with client_scope(client) as http:
        response = await http.post(
            f"{base}/api/bot-config-files/{get_bot_id()}/files",
            headers=auth_headers(service_token),
            files={"file": (filename, content, template_mimetype(filename))},
            data={"category": "template", "description": description},
        )
    if not response.is_success:
        raise CollaboratorError(f"Failed to upload {filename}: {response.reason_phrase}", response.status_code)
    payload = response.json()
    stored = payload.get("file", payload)
    return str(stored["id"])


def _read_definition(template_dir: Path) -> TemplateDefinition:
    definition = TemplateDefinition(
        name=template_dir.name,
        title=title_from_name(template_dir.name),
        description=f"Template for {template_dir.name} format",
        default_engine=Engine.TYPST,
    )

    metadata_path = template_dir / "template.json"
    if metadata_path.exists():
        try:
            metadata = json.loads(metadata_path.read_text(encoding="utf-8"))
            definition.title = metadata.get("title") or definition.title
            definition.description = metadata.get("description") or definition.description
            definition.default_engine = Engine(metadata.get("defaultEngine") or definition.default_engine)
            definition.metadata = {**definition.metadata, **(metadata.get("metadata") or {})}
        except ValueError as exc:
            logger.warning(f"Failed to parse metadata for {template_dir.name}/template.json: {exc}")

    return definition


async def install_builtin_templates(
    service_token: str,
    api_url: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
    templates_dir: Path = BUILTIN_TEMPLATES_DIR,
) -> BotConfig:
    """
    Upload the bundled templates and return the resulting bot configuration.

    Every file in a template directory is uploaded as ``<template>/<filename>``;
    only engine bodies are registered in the template's file list. A file that
    fails to upload is logged and left out of the registry.
    """
    templates: Dict[str, TemplateDefinition] = {}
    uploaded = 0

    if not templates_dir.is_dir():
        logger.warning(f"No bundled templates to install at {templates_dir}")
        return build_bot_config()

    async with client_scope(client) as http:
        for template_dir in sorted(path for path in templates_dir.iterdir() if path.is_dir()):
            definition = _read_definition(template_dir)

            for file_path in sorted(path for path in template_dir.iterdir() if path.is_file()):
                upload_name = f"{template_dir.name}/{file_path.name}"
                try:
                    file_id = await upload_config_file(
                        upload_name,
                        file_path.read_bytes(),
                        describe_template_file(upload_name),
                        service_token,
                        api_url,
                        http,
                    )
                except (CollaboratorError, httpx.HTTPError, OSError) as exc:
                    logger.warning(f"Failed to upload template {upload_name}: {exc}")
                    continue

                engine = ENGINE_BY_SUFFIX.get(file_path.suffix.lower())
                if engine is None:
                    continue
                definition.files.append(
                    TemplateFile(
                        file_id=file_id,
                        filename=upload_name,
                        engine=engine,
                        metadata={
                            "uploadedAt": datetime.now(timezone.utc).isoformat(),
                            "source": "built-in",
                        },
                    )
                )
                uploaded += 1

            templates[template_dir.name] = definition

    logger.info(f"Installed {uploaded} template files across {len(templates)} templates")
    config = build_bot_config({"templateName": DEFAULT_TEMPLATE_NAME, "outputFormats": ["pdf"]})
    config.templates = templates
    return config
