from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field


class FileType(str, Enum):
    SOURCE = "SOURCE"
    ASSET = "ASSET"
    BIBLIOGRAPHY = "BIBLIOGRAPHY"
    RENDERED = "RENDERED"
    OTHER = "OTHER"


class Engine(str, Enum):
    HTML = "html"
    LATEX = "latex"
    TYPST = "typst"


class OutputType(str, Enum):
    HTML = "HTML"
    PDF = "PDF"


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class _CamelModel(BaseModel):
    """Accepts both the collaborators' camelCase keys and snake_case field names."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)


class ManuscriptFile(_CamelModel):
    id: Optional[str] = None
    original_name: str = Field("", alias="originalName")
    mimetype: Optional[str] = None
    file_type: Optional[str] = Field(None, alias="fileType")
    detected_format: Optional[str] = Field(None, alias="detectedFormat")
    download_url: str = Field("", alias="downloadUrl")
    path: Optional[str] = None


class TemplateFile(_CamelModel):
    file_id: str = Field(alias="fileId")
    filename: str
    engine: Engine
    metadata: Dict[str, Any] = Field(default_factory=dict)


class TemplateDefinition(_CamelModel):
    name: str
    title: str
    description: str = ""
    default_engine: Engine = Field(Engine.TYPST, alias="defaultEngine")
    files: List[TemplateFile] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def file_for(self, engine: Engine | str) -> Optional[TemplateFile]:
        engine_value = Engine(engine)
        return next((item for item in self.files if item.engine == engine_value), None)


class RenderedTemplate(_CamelModel):
    name: str
    title: str = ""
    description: str = ""
    engines: List[str] = Field(default_factory=list)
    default_engine: Optional[str] = Field(None, alias="defaultEngine")
    html_template: Optional[str] = Field(None, alias="htmlTemplate")
    latex_template: Optional[str] = Field(None, alias="latexTemplate")
    typst_template: Optional[str] = Field(None, alias="typstTemplate")
    css_template: Optional[str] = Field(None, alias="cssTemplate")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def template_for(self, engine: Engine | str) -> str:
        value = engine.value if isinstance(engine, Engine) else engine
        if value == Engine.LATEX.value:
            return self.latex_template or ""
        if value == Engine.TYPST.value:
            return self.typst_template or ""
        return self.html_template or ""


class NameParts(NamedTuple):
    given_names: str
    surname: str


class AuthorRecord(BaseModel):
    id: Optional[str] = None
    name: str
    given_names: str = ""
    surname: str = ""
    email: Optional[str] = None
    orcid: Optional[str] = None
    orcid_id: Optional[str] = None
    affiliation: Optional[str] = None
    bio: Optional[str] = None
    website: Optional[str] = None
    is_corresponding: bool = False
    order: int = 0
    is_registered: bool = False

    def to_payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "givenNames": self.given_names,
            "surname": self.surname,
            "email": self.email,
            "orcid": self.orcid,
            "orcidId": self.orcid_id,
            "affiliation": self.affiliation,
            "bio": self.bio,
            "website": self.website,
            "isCorresponding": self.is_corresponding,
            "order": self.order,
            "isRegistered": self.is_registered,
        }


class AuthorData(BaseModel):
    authors_string: str = ""
    author_list: List[AuthorRecord] = Field(default_factory=list)
    author_count: int = 0
    corresponding_author: Optional[AuthorRecord] = None


class TemplateVariables(BaseModel):
    title: str = "Untitled Manuscript"
    authors: str = ""
    author_list: List[AuthorRecord] = Field(default_factory=list)
    author_count: int = 0
    corresponding_author: Optional[AuthorRecord] = None
    abstract: str = ""
    content: str = ""
    keywords: str = ""
    submitted_date: str = ""
    render_date: str = ""
    published_date: str = ""
    journal_name: str = ""
    doi: str = ""
    volume: str = ""
    issue: str = ""
    elocation_id: str = ""
    issn: str = ""
    pdf_url: str = ""
    custom_css: str = ""


class AssetFile(BaseModel):
    filename: str
    content: str
    encoding: str = "base64"


class ProcessedContent(BaseModel):
    html: str
    markdown: str
    processed_assets: int = 0
    warnings: List[str] = Field(default_factory=list)


class RenderOutput(BaseModel):
    type: OutputType
    id: Optional[str] = None
    filename: str
    size: int
    download_url: str


class BotConfig(_CamelModel):
    template_name: str = Field("academic-standard", alias="templateName")
    output_formats: List[str] = Field(default_factory=lambda: ["pdf"], alias="outputFormats")
    pdf_engine: Engine = Field(Engine.TYPST, alias="pdfEngine")
    # Stored with the journal settings; rendering always uses a bibliography file when one is attached
    require_separate_bibliography: bool = Field(False, alias="requireSeparateBibliography")
    templates: Dict[str, TemplateDefinition] = Field(default_factory=dict)
    custom_templates: Dict[str, Dict[str, Any]] = Field(default_factory=dict, alias="customTemplates")
    api_url: Optional[str] = Field(None, alias="apiUrl")


class CommandContext(BaseModel):
    manuscript_id: str
    config: BotConfig = Field(default_factory=BotConfig)
    service_token: Optional[str] = None
    journal_settings: Dict[str, Any] = Field(default_factory=dict)


class BotMessage(BaseModel):
    content: str


class BotAction(BaseModel):
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)


class CommandResult(BaseModel):
    messages: List[BotMessage] = Field(default_factory=list)
    actions: List[BotAction] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)

    @property
    def message(self) -> str:
        return "\n\n".join(item.content for item in self.messages)


class CommandParameter(BaseModel):
    name: str
    description: str
    type: str = "string"
    required: bool = False
    enum_values: List[str] = Field(default_factory=list)


class CommandInfo(BaseModel):
    name: str
    description: str
    usage: str
    parameters: List[CommandParameter] = Field(default_factory=list)
    examples: List[str] = Field(default_factory=list)
    permissions: List[str] = Field(default_factory=list)


class BotManifest(BaseModel):
    id: str
    name: str
    description: str
    version: str
    commands: List[CommandInfo]
    keywords: List[str]
    permissions: List[str]
    supports_file_uploads: bool = True


class CommandRequest(BaseModel):
    manuscript_id: str = ""
    params: Dict[str, str] = Field(default_factory=dict)
    config: Dict[str, Any] = Field(default_factory=dict)
    journal_settings: Dict[str, Any] = Field(default_factory=dict)


class JobEvent(BaseModel):
    timestamp: datetime
    message: str


class JobSummary(BaseModel):
    id: str
    manuscript_id: str
    status: JobStatus
    created_at: datetime
    updated_at: datetime
    output_formats: List[str] = Field(default_factory=list)


class JobDetail(JobSummary):
    params: Dict[str, str]
    message: Optional[str] = None
    actions: List[BotAction] = Field(default_factory=list)
    events: List[JobEvent]
    error: Optional[str] = None


class ConfigMetadata(BaseModel):
    defaults: Dict[str, Any]
    services: Dict[str, Any]
    engines: List[str]
    output_formats: List[str]
    notes: Dict[str, str]


class CitationHover(_CamelModel):
    enabled: bool = False
    links: List[str] = Field(default_factory=lambda: ["doi", "googleScholar"])
    custom_links: Dict[str, Any] = Field(default_factory=dict, alias="customLinks")


class HtmlMetadata(_CamelModel):
    """Metadata block sent with HTML conversions."""

    title: str = ""
    authors: str = ""
    abstract: str = ""
    journal_name: str = Field("", alias="journalName")
    keywords: str = ""
    doi: str = ""
    submitted_date: str = Field("", alias="submittedDate")
    render_date: str = Field("", alias="renderDate")
    published_date: str = Field("", alias="publishedDate")
    volume: str = ""
    issue: str = ""
    elocation_id: str = Field("", alias="elocationId")
    issn: str = ""
    pdf_url: str = Field("", alias="pdfUrl")
    citation_hover: bool = Field(False, alias="citationHover")
    citation_hover_links: str = Field("[]", alias="citationHoverLinks")
    citation_hover_custom_links: str = Field("{}", alias="citationHoverCustomLinks")
    author_list: Optional[List[Dict[str, Any]]] = Field(None, alias="authorList")
    corresponding_author: Optional[Dict[str, Any]] = Field(None, alias="correspondingAuthor")


class HtmlPdfVariables(_CamelModel):
    """Pandoc variables for PDFs produced by the html engine."""

    title: str = ""
    author: List[str] = Field(default_factory=list)
    abstract: str = ""
    date: str = ""
    journal: str = ""
    customcss: str = ""


class TypesetPdfVariables(_CamelModel):
    """Pandoc variables for PDFs produced by the latex and typst engines."""

    title: str = ""
    authors: str = ""
    abstract: str = ""
    submitted_date: str = Field("", alias="submittedDate")
    render_date: str = Field("", alias="renderDate")
    journal_name: str = Field("", alias="journalName")
    author_list: List[Dict[str, Any]] = Field(default_factory=list, alias="authorList")
    doi: str = ""
    keywords: str = ""
    volume: str = ""
    issue: str = ""
    issn: str = ""
