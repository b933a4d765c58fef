"""
Tests for asset reference rewriting, HTML sanitizing and asset collection.
"""

import asyncio
import base64

from manuscript_renderer.assets import (
    collect_asset_files,
    find_asset_file,
    process_markdown_content,
    sanitize_html,
)
from manuscript_renderer.models import ManuscriptFile


def make_files():
    return [
        ManuscriptFile(original_name="paper.md", file_type="SOURCE", download_url="/files/src"),
        ManuscriptFile(original_name="chart.png", file_type="ASSET", download_url="/files/abc"),
        ManuscriptFile(original_name="figures/map.png", file_type="ASSET", download_url="/files/map?v=2"),
        ManuscriptFile(original_name="data.csv", file_type="ASSET", download_url="/files/csv"),
        ManuscriptFile(original_name="logo.png", file_type="SOURCE", download_url="/files/logo"),
    ]


class TestFindAssetFile:
    """Matching Markdown references against ASSET files."""

    def test_exact_and_leading_dot_slash(self):
        files = make_files()

        assert find_asset_file(files, "chart.png").download_url == "/files/abc"
        assert find_asset_file(files, "./chart.png").download_url == "/files/abc"
        assert find_asset_file(files, "/chart.png").download_url == "/files/abc"

    def test_suffix_match(self):
        """A reference may name only the last path segment."""
        assert find_asset_file(make_files(), "map.png").original_name == "figures/map.png"

    def test_only_asset_files_match(self):
        """Non-ASSET files are never used for references."""
        assert find_asset_file(make_files(), "logo.png") is None


class TestProcessMarkdownContent:
    """Tests for process_markdown_content."""

    def test_image_is_rewritten_with_inline_flag(self):
        processed = process_markdown_content("![Chart](chart.png)", make_files(), include_assets=True)

        assert processed.markdown == "![Chart](/files/abc?inline=true)"
        assert processed.processed_assets == 1
        assert processed.warnings == []
        assert 'src="/files/abc?inline=true"' in processed.html

    def test_inline_flag_appended_to_existing_query(self):
        processed = process_markdown_content("![Map](figures/map.png)", make_files(), include_assets=True)

        assert processed.markdown == "![Map](/files/map?v=2&inline=true)"

    def test_link_to_asset_is_rewritten(self):
        """Plain links resolve to the download URL without the inline flag."""
        processed = process_markdown_content("[raw data](data.csv)", make_files(), include_assets=True)

        assert processed.markdown == "[raw data](/files/csv)"
        assert processed.processed_assets == 1

    def test_external_link_is_untouched(self):
        """Unmatched links are expected and produce no warning."""
        content = "[docs](https://example.org/guide)"
        processed = process_markdown_content(content, make_files(), include_assets=True)

        assert processed.markdown == content
        assert processed.processed_assets == 0
        assert processed.warnings == []

    def test_missing_image_warns(self):
        content = "![Gone](missing.png)"
        processed = process_markdown_content(content, make_files(), include_assets=True)

        assert processed.markdown == content
        assert processed.warnings == ["Image not found: missing.png"]
        assert processed.processed_assets == 0

    def test_assets_disabled(self):
        content = "![Chart](chart.png)"
        processed = process_markdown_content(content, make_files(), include_assets=False)

        assert processed.markdown == content
        assert processed.processed_assets == 0

    def test_line_breaks_are_preserved(self):
        processed = process_markdown_content("first line\nsecond line", [], include_assets=True)

        assert "<br" in processed.html

    def test_strikethrough_and_bare_urls(self):
        processed = process_markdown_content("~~draft~~ see https://example.org", [], include_assets=True)

        assert "<del>draft</del>" in processed.html
        assert '<a href="https://example.org"' in processed.html

    def test_script_is_removed_from_html(self):
        processed = process_markdown_content("Hello\n\n<script>alert(1)</script>", [], include_assets=True)

        assert "<script" not in processed.html
        assert "alert(1)" not in processed.html


class TestSanitizeHtml:
    """Tests for sanitize_html."""

    def test_event_handlers_removed(self):
        html = sanitize_html('<img src="a.png" onerror="alert(1)">')

        assert "onerror" not in html
        assert 'src="a.png"' in html

    def test_javascript_urls_removed(self):
        html = sanitize_html('<a href=" javascript:alert(1)">x</a>')

        assert "javascript" not in html
        assert ">x</a>" in html

    def test_data_urls_only_on_images(self):
        html = sanitize_html('<img src="data:image/png;base64,AAAA"><a href="data:text/html,hi">x</a>')

        assert 'src="data:image/png;base64,AAAA"' in html
        assert "data:text/html" not in html

    def test_nested_forbidden_tags(self):
        html = sanitize_html("<form><input name=a><button>go</button></form><p>kept</p>")

        assert html == "<p>kept</p>"


class TestCollectAssetFiles:
    """Tests for collect_asset_files."""

    def test_collects_referenced_images_once(self, markdown_manuscript):
        files = [ManuscriptFile.model_validate(item) for item in markdown_manuscript.files]
        content = "![a](chart.png)\n![b](./chart.png)\n![c](missing.png)"

        async def scenario():
            async with markdown_manuscript.client() as http:
                return await collect_asset_files(content, files, "secret", "http://api.test", http)

        assets = asyncio.run(scenario())

        assert [asset.filename for asset in assets] == ["chart.png"]
        assert base64.b64decode(assets[0].content) == b"\x89PNG\r\n\x1a\nfake"
        assert markdown_manuscript.paths() == ["/api/files/asset-1/download"]

    def test_failed_download_is_skipped(self, markdown_manuscript):
        """A failing download drops the asset without failing the batch."""
        markdown_manuscript.failures["/api/files/asset-1/download"] = 404
        files = [ManuscriptFile.model_validate(item) for item in markdown_manuscript.files]

        async def scenario():
            async with markdown_manuscript.client() as http:
                return await collect_asset_files("![a](chart.png)", files, "secret", "http://api.test", http)

        assert asyncio.run(scenario()) == []
