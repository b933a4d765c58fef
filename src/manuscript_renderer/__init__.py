"""
Markdown Renderer Bot - manuscript rendering service

This package turns a manuscript's Markdown source, bibliography and asset
files into publication-quality HTML and PDF through an external pandoc
conversion service. It provides:

- Template resolution across the journal's template registry, bundled
  templates, legacy file-based and inline custom templates
- Asset reference rewriting and base64 asset collection
- Author metadata normalization for template variables
- The ``render``, ``templates`` and ``upload-template`` bot commands
- A FastAPI service exposing the commands and queued render jobs

Key Components:
    - main: FastAPI application and HTTP endpoint definitions
    - commands: Bot commands and the render pipeline
    - templates: Template resolution strategies and built-in template cache
    - assets: Markdown asset rewriting, HTML sanitizing, asset collection
    - authors: Author normalization and name parsing
    - pandoc_client: Conversion service requests per engine
    - file_client: File-storage service client
    - installer: Upload of bundled templates at bot install time
    - job_manager: Background render jobs
    - configuration: Config loading and journal config merging

Usage:
    Run the API server with:
        uvicorn manuscript_renderer.main:app --reload --host 0.0.0.0 --port 8000
"""
