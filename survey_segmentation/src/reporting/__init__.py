"""Markdown report rendering."""

from __future__ import annotations

from .render import DataSummary, render_report

__all__ = ["DataSummary", "render_report"]
