from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Mapping

from dotenv import load_dotenv
from omegaconf import DictConfig, OmegaConf

from .models import BotConfig, ConfigMetadata, Engine

# Load environment variables from .env file before any interpolation is resolved
load_dotenv()

CONFIG_PATH = Path(__file__).resolve().parent / "config" / "config.yaml"

OUTPUT_FORMATS: List[str] = ["pdf", "html", "pdf,html"]

NOTES = {
    "templateName": "Looked up in the journal template registry first, then built-in templates, then legacy custom templates.",
    "pdfEngine": "Engine used for PDF output; HTML output always uses the html template.",
    "outputFormats": "Any combination of 'pdf' and 'html'.",
    "api_url": "Base URL of the file-storage and bot-config services (API_URL).",
    "pandoc_service_url": "Base URL of the document conversion service (PANDOC_SERVICE_URL).",
}


@lru_cache(maxsize=1)
def _load_default_config() -> DictConfig:
    if not CONFIG_PATH.exists():
        raise FileNotFoundError(f"Default config not found at {CONFIG_PATH}")
    return OmegaConf.load(CONFIG_PATH)


def get_default_config_container(resolve: bool = False) -> Dict[str, Any]:
    config = _load_default_config()
    return OmegaConf.to_container(config, resolve=resolve, enum_to_str=True)  # type: ignore[return-value]


def _service_settings() -> Dict[str, Any]:
    return get_default_config_container(resolve=True)["service"]


def get_api_url() -> str:
    return str(_service_settings()["api_url"]).rstrip("/")


def get_pandoc_service_url() -> str:
    return str(_service_settings()["pandoc_service_url"]).rstrip("/")


def get_bot_id() -> str:
    return str(_service_settings()["bot_id"])


def get_http_timeout() -> float:
    return float(_service_settings()["http_timeout"])


def get_max_workers() -> int:
    return int(_service_settings()["max_workers"])


def _to_aliases(overrides: Mapping[str, Any]) -> Dict[str, Any]:
    normalized = dict(overrides)
    for name, field in BotConfig.model_fields.items():
        if field.alias and name in normalized and field.alias not in normalized:
            normalized[field.alias] = normalized.pop(name)
    return normalized


def build_bot_config(overrides: Mapping[str, Any] | None = None) -> BotConfig:
    """Build a journal's bot configuration from the packaged defaults.

    Overrides may use either the camelCase keys stored by the journal
    settings service or the snake_case field names. Journal values are
    applied over the resolved defaults as plain data and never pass through
    OmegaConf, so template text containing ``${...}`` is kept verbatim.
    """
    container = get_default_config_container(resolve=True)["bot"]
    container.update(_to_aliases(overrides or {}))
    return BotConfig.model_validate(container)


def build_config_metadata() -> ConfigMetadata:
    defaults = get_default_config_container(resolve=True)
    return ConfigMetadata(
        defaults=defaults["bot"],
        services={key: value for key, value in defaults["service"].items() if key != "max_workers"},
        engines=[engine.value for engine in Engine],
        output_formats=OUTPUT_FORMATS,
        notes=NOTES,
    )
