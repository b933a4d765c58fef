"""
Bot commands exposed by the Markdown renderer.

- ``render``: the rendering pipeline, from manuscript files to uploaded outputs
- ``templates``: lists the templates a journal can render with
- ``upload-template``: explains how to upload a custom template

Every command returns a CommandResult carrying one chat message; failures are
reported through that message and never raised to the caller.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Protocol

import httpx

from .assets import process_markdown_content
from .authors import prepare_author_data
from .configuration import get_api_url, get_bot_id
from .file_client import (
    download_file,
    find_bibliography_file,
    find_markdown_file,
    get_manuscript_files,
    get_manuscript_metadata,
    upload_rendered_file,
)
from .http_client import client_scope
from .models import (
    AuthorData,
    BotAction,
    BotManifest,
    BotMessage,
    CommandContext,
    CommandInfo,
    CommandParameter,
    CommandResult,
    Engine,
    OutputType,
    ProcessedContent,
    RenderOutput,
    TemplateVariables,
)
from .pandoc_client import generate_pandoc_html, generate_pandoc_pdf
from .templates import BuiltInTemplateCache, default_template_cache, get_template
from .utils import base_filename, format_size

logger = logging.getLogger(__name__)

DEFAULT_JOURNAL_NAME = "Colloquium Journal"


class BotCommand(Protocol):
    info: CommandInfo

    async def execute(self, params: Mapping[str, str], context: CommandContext) -> CommandResult: ...


def _format_date(value: Any) -> str:
    if not value:
        return ""
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        logger.warning(f"Ignoring unparseable date {value!r}")
        return ""


def _join_keywords(value: Any) -> str:
    if isinstance(value, list):
        return ", ".join(str(item) for item in value)
    return str(value or "")


def build_template_variables(
    metadata: Mapping[str, Any],
    author_data: AuthorData,
    processed: ProcessedContent,
    journal_settings: Mapping[str, Any],
) -> TemplateVariables:
    return TemplateVariables(
        title=metadata.get("title") or "Untitled Manuscript",
        authors=author_data.authors_string,
        author_list=author_data.author_list,
        author_count=author_data.author_count,
        corresponding_author=author_data.corresponding_author,
        abstract=metadata.get("abstract") or "",
        content=processed.html,
        keywords=_join_keywords(metadata.get("keywords")),
        submitted_date=_format_date(metadata.get("submittedAt")),
        render_date=date.today().isoformat(),
        published_date=_format_date(metadata.get("publishedAt")),
        journal_name=journal_settings.get("name") or DEFAULT_JOURNAL_NAME,
        doi=str(metadata.get("doi") or ""),
        volume=str(metadata.get("volume") or ""),
        issue=str(metadata.get("issue") or ""),
        elocation_id=str(metadata.get("elocationId") or ""),
        issn=journal_settings.get("issn") or journal_settings.get("eissn") or "",
    )


def compose_success_message(
    source_name: str,
    template_title: str,
    engine: Engine,
    outputs: List[RenderOutput],
    processed: ProcessedContent,
) -> str:
    lines = [
        "✅ **Markdown Rendered Successfully**",
        "",
        f"**Source:** {source_name}",
        f"**Template:** {template_title}",
        f"**Engine:** {engine.value.upper()}",
    ]

    if len(outputs) == 1:
        lines.append(f"**Output:** {outputs[0].filename}")
        lines.append(f"**Size:** {format_size(outputs[0].size)}")
    else:
        lines.append("**Outputs Generated:**")
        lines.extend(f"• {output.type.value}: {output.filename} ({format_size(output.size)})" for output in outputs)
    lines.append("")

    if processed.processed_assets > 0:
        lines.append(f"📎 **Assets Processed:** {processed.processed_assets} files linked")

    if processed.warnings:
        lines.append("")
        lines.append("⚠️ **Warnings:**")
        lines.extend(f"• {warning}" for warning in processed.warnings)

    lines.append("")
    if len(outputs) == 1:
        lines.append(f"🔗 **[View Rendered File]({outputs[0].download_url})**")
    else:
        lines.append("**Download Links:**")
        lines.extend(f"🔗 [{output.type.value}]({output.download_url})" for output in outputs)

    return "\n".join(lines)


class RenderCommand:
    """
    Render the manuscript's Markdown source to PDF and/or HTML.

    The pipeline runs linearly with no retries: locate the Markdown source,
    resolve the template, rewrite assets, load the bibliography and metadata,
    then convert and upload once per requested output format.
    """

    info = CommandInfo(
        name="render",
        description="Render Markdown files to PDF or HTML using journal templates",
        usage="@bot-markdown-renderer render [output=pdf|html] [template=name] [engine=typst|latex|html]",
        parameters=[
            CommandParameter(name="output", description="Output format(s)", enum_values=["pdf", "html", "pdf,html"]),
            CommandParameter(name="template", description="Template to use"),
            CommandParameter(
                name="engine",
                description="Rendering engine for PDF generation",
                enum_values=[engine.value for engine in Engine],
            ),
        ],
        examples=[
            "@bot-markdown-renderer render",
            "@bot-markdown-renderer render output=html",
            "@bot-markdown-renderer render output=pdf engine=typst",
            "@bot-markdown-renderer render template=academic-standard output=html",
        ],
        permissions=["read_manuscript_files", "upload_files"],
    )

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        template_cache: Optional[BuiltInTemplateCache] = None,
    ) -> None:
        self.client = client
        self.template_cache = template_cache

    async def execute(self, params: Mapping[str, str], context: CommandContext) -> CommandResult:
        config = context.config
        api_url = config.api_url or get_api_url()
        template_name = params.get("template") or config.template_name
        output_formats = [item.strip() for item in params["output"].split(",")] if params.get("output") else config.output_formats

        if not context.service_token:
            return CommandResult(
                messages=[
                    BotMessage(
                        content="❌ **Authentication Error**\n\n"
                        "Bot service token not available. Please contact system administrator."
                    )
                ],
                errors=["Bot service token not available"],
            )

        try:
            engine = Engine(params.get("engine") or config.pdf_engine)
            async with client_scope(self.client) as http:
                return await self._render(
                    context, context.service_token, api_url, template_name, engine, output_formats, http
                )
        except Exception as exc:  # noqa: BLE001
            logger.error(f"Markdown rendering failed for manuscript {context.manuscript_id}: {exc}")
            return CommandResult(
                messages=[
                    BotMessage(
                        content="❌ **Rendering Failed**\n\n"
                        f"An error occurred while rendering the Markdown file:\n```\n{exc}\n```"
                    )
                ]
            )

    async def _render(
        self,
        context: CommandContext,
        token: str,
        api_url: str,
        template_name: str,
        engine: Engine,
        output_formats: List[str],
        http: httpx.AsyncClient,
    ) -> CommandResult:
        manuscript_id = context.manuscript_id
        files = await get_manuscript_files(manuscript_id, token, api_url, http)

        markdown_file = find_markdown_file(files)
        if markdown_file is None:
            return CommandResult(
                messages=[
                    BotMessage(
                        content="❌ **No Markdown File Found**\n\n"
                        "I couldn't find any Markdown files (.md, .markdown) in this manuscript. "
                        "Please upload a Markdown file to render."
                    )
                ]
            )

        template = await get_template(
            template_name, engine, context.config, api_url, client=http, cache=self.template_cache
        )

        markdown_content = await download_file(markdown_file.download_url, token, api_url, http)
        processed = process_markdown_content(markdown_content, files, include_assets=True)

        bibliography = ""
        bibliography_file = find_bibliography_file(files)
        if bibliography_file is not None:
            bibliography = await download_file(bibliography_file.download_url, token, api_url, http)

        metadata = await get_manuscript_metadata(manuscript_id, token, api_url, http)
        author_data = prepare_author_data(metadata)
        variables = build_template_variables(metadata, author_data, processed, context.journal_settings)

        base_name = base_filename(markdown_file.original_name)
        outputs: List[RenderOutput] = []

        for output_format in output_formats:
            if output_format == "html":
                html_template = await get_template(
                    template_name, Engine.HTML, context.config, api_url, client=http, cache=self.template_cache
                )
                content = await generate_pandoc_html(
                    markdown_content, html_template, variables, bibliography, files, token, api_url, client=http
                )
                output_type, filename = OutputType.HTML, f"{base_name}.html"
            elif output_format == "pdf":
                pdf_template = await get_template(
                    template_name, engine, context.config, api_url, client=http, cache=self.template_cache
                )
                content = await generate_pandoc_pdf(
                    markdown_content, pdf_template, engine, variables, bibliography, files, token, api_url, client=http
                )
                output_type, filename = OutputType.PDF, f"{base_name}.pdf"
            else:
                logger.warning(f"Ignoring unsupported output format {output_format!r}")
                continue

            outputs.append(
                await upload_rendered_file(manuscript_id, filename, content, output_type, token, api_url, http)
            )

        if not outputs:
            return CommandResult(
                messages=[
                    BotMessage(
                        content="❌ **Nothing Rendered**\n\n"
                        f"No supported output format requested (got: {', '.join(output_formats) or 'none'})."
                    )
                ]
            )

        message = compose_success_message(markdown_file.original_name, template.title, engine, outputs, processed)
        return CommandResult(
            messages=[BotMessage(content=message)],
            actions=[
                BotAction(
                    type="FILE_UPLOADED",
                    data={
                        "file_id": output.id,
                        "filename": output.filename,
                        "type": "RENDERED",
                        "format": output.type.value.lower(),
                    },
                )
                for output in outputs
            ],
        )


class ListTemplatesCommand:
    info = CommandInfo(
        name="templates",
        description="List available journal templates",
        usage="@bot-markdown-renderer templates",
        examples=["@bot-markdown-renderer templates"],
    )

    def __init__(self, template_cache: Optional[BuiltInTemplateCache] = None) -> None:
        self.template_cache = template_cache

    async def execute(self, params: Mapping[str, str], context: CommandContext) -> CommandResult:
        config = context.config
        lines = ["📝 **Available Journal Templates**", ""]

        if config.templates:
            lines.append("**Configured Templates:**")
            for name, definition in config.templates.items():
                lines.append(f"• **{definition.title}** (`{name}`)")
                lines.append(f"  {definition.description}")
                lines.append(f"  Default Engine: {definition.default_engine.value}")
                if definition.files:
                    lines.append("  Files:")
                    lines.extend(
                        f"    - {item.filename} ({item.engine.value}) - File ID: `{item.file_id}`"
                        for item in definition.files
                    )
                lines.append("")

        builtin = (self.template_cache or default_template_cache()).get()
        if builtin:
            lines.append("**Built-in Templates:**")
            for template in builtin.values():
                lines.append(f"• **{template.title}** (`{template.name}`)")
                lines.append(f"  {template.description}")
                lines.append("")

        if config.custom_templates:
            lines.append("**Custom Templates (Legacy):**")
            for name, template in config.custom_templates.items():
                lines.append(f"• **{template.get('title') or name}** (`{name}`)")
                if template.get("description"):
                    lines.append(f"  {template['description']}")
            lines.append("")

        lines.extend(
            [
                "💡 **Usage Examples:**",
                '• `@bot-markdown-renderer render template="academic-standard"` - Built-in template',
                '• `@bot-markdown-renderer render template="file:my-template"` - File-based template',
                '• `@bot-markdown-renderer render template="minimal" output="pdf"` - Generate PDF',
            ]
        )
        return CommandResult(messages=[BotMessage(content="\n".join(lines))])


UPLOAD_TEMPLATE_INSTRUCTIONS = """📤 **Upload Custom Journal Templates**

Custom templates are uploaded through the bot configuration system.

**Step 1: Prepare Your Template Files**
• Create a pandoc HTML template (e.g., `my-template.html`)
• Optionally create a CSS file (e.g., `my-template.css`)
• Use pandoc variables: `$title$`, `$authors$`, `$abstract$`, `$body$`

**Step 2: Upload Files**
• Go to Bot Management → Markdown Renderer → Configuration
• Upload your HTML file with category "template"
• Upload your CSS file with category "css" (if applicable)

**Step 3: Use Your Template**
• `@bot-markdown-renderer render template="file:my-template"`
• The name must match your uploaded HTML file (without extension)

**Available Template Variables:**
• `$title$` - Manuscript title
• `$authors$` - Author list (comma-separated)
• `$abstract$` - Manuscript abstract
• `$body$` - Rendered manuscript content
• `$submittedDate$` / `$renderDate$` - Submission and render dates
• `$journalName$` - Journal name

💡 **Tip:** Start from one of the built-in templates and modify it for your needs!"""


class UploadTemplateCommand:
    info = CommandInfo(
        name="upload-template",
        description="Instructions for uploading custom journal templates",
        usage="@bot-markdown-renderer upload-template",
        examples=["@bot-markdown-renderer upload-template"],
    )

    async def execute(self, params: Mapping[str, str], context: CommandContext) -> CommandResult:
        return CommandResult(messages=[BotMessage(content=UPLOAD_TEMPLATE_INSTRUCTIONS)])


def build_commands(
    client: Optional[httpx.AsyncClient] = None,
    template_cache: Optional[BuiltInTemplateCache] = None,
) -> Dict[str, BotCommand]:
    commands: List[BotCommand] = [
        RenderCommand(client=client, template_cache=template_cache),
        ListTemplatesCommand(template_cache=template_cache),
        UploadTemplateCommand(),
    ]
    return {command.info.name: command for command in commands}


def build_manifest() -> BotManifest:
    return BotManifest(
        id=get_bot_id(),
        name="Markdown Renderer",
        description=(
            "Renders Markdown manuscripts into professional PDFs using configurable journal "
            "templates and multiple rendering engines"
        ),
        version="1.0.0",
        commands=[command.info for command in build_commands().values()],
        keywords=["markdown", "render", "template", "pdf", "latex", "typst", "academic"],
        permissions=["read_manuscript_files", "upload_files"],
    )
