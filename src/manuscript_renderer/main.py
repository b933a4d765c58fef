from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from .commands import BotCommand, build_commands, build_manifest
from .configuration import build_bot_config, build_config_metadata, get_max_workers
from .installer import install_builtin_templates
from .job_manager import RenderJobManager
from .models import (
    BotConfig,
    BotManifest,
    CommandContext,
    CommandRequest,
    CommandResult,
    ConfigMetadata,
    JobDetail,
    JobSummary,
)
from .templates import default_template_cache

app = FastAPI(title="Markdown Renderer Bot", version="1.0.0")

allowed_origins = ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

job_manager = RenderJobManager(max_workers=get_max_workers())
commands = build_commands()


def get_job_manager() -> RenderJobManager:
    return job_manager


def get_commands() -> Dict[str, BotCommand]:
    return commands


def _build_context(request: CommandRequest, service_token: Optional[str]) -> CommandContext:
    try:
        config = build_bot_config(request.config)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid bot config: {exc}") from exc
    return CommandContext(
        manuscript_id=request.manuscript_id,
        config=config,
        service_token=service_token,
        journal_settings=request.journal_settings,
    )


@app.get("/healthz")
def healthcheck() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/bot", response_model=BotManifest)
def get_bot_manifest() -> BotManifest:
    return build_manifest()


@app.get("/config/defaults", response_model=ConfigMetadata)
def get_config_defaults() -> ConfigMetadata:
    return build_config_metadata()


@app.get("/templates")
def list_builtin_templates() -> list[Dict[str, Any]]:
    return [
        {
            "name": template.name,
            "title": template.title,
            "description": template.description,
            "engines": template.engines,
            "defaultEngine": template.default_engine,
        }
        for template in default_template_cache().get().values()
    ]


@app.post("/commands/{name}", response_model=CommandResult)
async def run_command(
    name: str,
    request: CommandRequest,
    x_bot_token: Optional[str] = Header(None),
    available: Dict[str, BotCommand] = Depends(get_commands),
) -> CommandResult:
    command = available.get(name)
    if command is None:
        raise HTTPException(status_code=404, detail=f"Unknown command: {name}")
    context = _build_context(request, x_bot_token)
    return await command.execute(request.params, context)


@app.get("/jobs", response_model=list[JobSummary])
def list_jobs(manager: RenderJobManager = Depends(get_job_manager)) -> list[JobSummary]:
    return manager.list_jobs()


@app.post("/jobs", response_model=JobSummary)
def create_job(
    request: CommandRequest,
    x_bot_token: Optional[str] = Header(None),
    manager: RenderJobManager = Depends(get_job_manager),
) -> JobSummary:
    if not x_bot_token:
        raise HTTPException(status_code=401, detail="Bot service token required")
    if not request.manuscript_id:
        raise HTTPException(status_code=400, detail="manuscript_id is required")
    return manager.create_job(_build_context(request, x_bot_token), request.params)


@app.get("/jobs/{job_id}", response_model=JobDetail)
def get_job(job_id: str, manager: RenderJobManager = Depends(get_job_manager)) -> JobDetail:
    job = manager.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


@app.post("/install", response_model=BotConfig)
async def install_templates(x_bot_token: Optional[str] = Header(None)) -> BotConfig:
    if not x_bot_token:
        raise HTTPException(status_code=401, detail="Bot service token required")
    return await install_builtin_templates(x_bot_token)
