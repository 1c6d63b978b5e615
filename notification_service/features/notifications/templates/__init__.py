"""Notification template rendering."""

from __future__ import annotations

from .renderer import RenderedTemplate, TemplateRenderer

__all__ = ["RenderedTemplate", "TemplateRenderer"]
