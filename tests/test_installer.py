"""
Tests for bundled template installation.
"""

import asyncio
import json

from manuscript_renderer.installer import install_builtin_templates
from manuscript_renderer.models import Engine


def install(backend, templates_dir=None):
    async def scenario():
        async with backend.client() as http:
            if templates_dir is None:
                return await install_builtin_templates("secret", "http://api.test", http)
            return await install_builtin_templates("secret", "http://api.test", http, templates_dir)

    return asyncio.run(scenario())


class TestInstallBuiltinTemplates:
    """Uploading bundled templates and building the registry."""

    def test_registers_engine_files(self, backend):
        config = install(backend)

        academic = config.templates["academic-standard"]
        assert academic.title == "Academic Standard"
        assert academic.default_engine == Engine.TYPST
        assert {item.engine for item in academic.files} == {Engine.HTML, Engine.LATEX, Engine.TYPST}
        assert all(item.filename.startswith("academic-standard/") for item in academic.files)

        minimal = config.templates["minimal"]
        assert minimal.default_engine == Engine.HTML
        assert minimal.file_for(Engine.LATEX) is None

        assert "academic-standard/template.json" in backend.config_uploads
        assert config.template_name == "academic-standard"
        assert config.output_formats == ["pdf"]

    def test_failed_upload_is_skipped(self, backend, tmp_path):
        template_dir = tmp_path / "house"
        template_dir.mkdir()
        (template_dir / "template.json").write_text(json.dumps({"title": "House"}))
        (template_dir / "template.html").write_text("<html>$body$</html>")
        backend.failures["/api/bot-config-files/bot-markdown-renderer/files"] = 500

        config = install(backend, tmp_path)

        assert config.templates["house"].title == "House"
        assert config.templates["house"].files == []

    def test_directory_without_metadata(self, backend, tmp_path):
        template_dir = tmp_path / "plain-report"
        template_dir.mkdir()
        (template_dir / "template.typ").write_text("= $title$")

        config = install(backend, tmp_path)

        definition = config.templates["plain-report"]
        assert definition.title == "Plain Report"
        assert definition.files[0].engine == Engine.TYPST
        assert definition.files[0].metadata["source"] == "built-in"
