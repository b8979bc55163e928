"""Reporting package — multi-format output generation."""

from .text_report import NO_CYCLES_MESSAGE, export_text, render_text
from .json_export import export_json
from .csv_export import export_csv
from .markdown_report import export_markdown, render_markdown

__all__ = [
    "NO_CYCLES_MESSAGE",
    "export_text",
    "render_text",
    "export_json",
    "export_csv",
    "export_markdown",
    "render_markdown",
]
