"""
Tests for configuration loading and bot config overrides.
"""

import pytest
from pydantic import ValidationError

from manuscript_renderer.configuration import (
    build_bot_config,
    get_api_url,
    get_bot_id,
    get_http_timeout,
    get_pandoc_service_url,
)
from manuscript_renderer.models import Engine


class TestServiceSettings:
    def test_environment_overrides(self):
        """Service URLs come from the environment when set."""
        assert get_api_url() == "http://api.test"
        assert get_pandoc_service_url() == "http://pandoc.test"
        assert get_bot_id() == "bot-markdown-renderer"

    def test_timeout_default(self):
        assert get_http_timeout() == 120.0


class TestBuildBotConfig:
    def test_defaults(self):
        config = build_bot_config()

        assert config.template_name == "academic-standard"
        assert config.output_formats == ["pdf"]
        assert config.pdf_engine == Engine.TYPST
        assert config.templates == {}

    def test_camel_case_overrides(self):
        config = build_bot_config({"templateName": "minimal", "outputFormats": ["html"], "pdfEngine": "latex"})

        assert config.template_name == "minimal"
        assert config.output_formats == ["html"]
        assert config.pdf_engine == Engine.LATEX

    def test_snake_case_overrides(self):
        config = build_bot_config({"template_name": "minimal", "api_url": "http://files.internal"})

        assert config.template_name == "minimal"
        assert config.api_url == "http://files.internal"

    def test_invalid_engine_rejected(self):
        with pytest.raises(ValidationError):
            build_bot_config({"pdfEngine": "word"})

    def test_template_text_is_not_interpolated(self):
        """Pandoc ${var} syntax in journal templates survives unchanged."""
        body = "<h1>${title}</h1>${body}"
        config = build_bot_config(
            {
                "customTemplates": {"mine": {"htmlTemplate": body, "description": "Uses ${journalName}"}},
                "templates": {"house": {"name": "house", "title": "House", "metadata": {"footer": "${doi}"}}},
            }
        )

        assert config.custom_templates["mine"]["htmlTemplate"] == body
        assert config.custom_templates["mine"]["description"] == "Uses ${journalName}"
        assert config.templates["house"].metadata == {"footer": "${doi}"}

    def test_separate_bibliography_flag_round_trips(self):
        assert build_bot_config().require_separate_bibliography is False
        assert build_bot_config({"requireSeparateBibliography": True}).require_separate_bibliography is True
