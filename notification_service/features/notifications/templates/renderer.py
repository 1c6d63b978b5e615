"""Jinja2 rendering of notification templates.

Templates are plain text: ``subject`` becomes the notification title and
``body`` the message. Rendering runs in a SandboxedEnvironment with
StrictUndefined, so templates cannot reach Python internals and a missing
variable is an error rather than an empty string.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from jinja2 import StrictUndefined, TemplateError, TemplateSyntaxError, UndefinedError, meta
from jinja2.sandbox import SandboxedEnvironment

from notification_service.features.notifications.exceptions import (
    TemplateNotFoundError,
    TemplateRenderError,
)
from notification_service.infra.logging import get_lazy_logger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from notification_service.features.notifications.models import NotificationTemplate
    from notification_service.features.notifications.repository import (
        NotificationTemplateRepository,
    )

_lazy = get_lazy_logger(__name__)


@dataclass(frozen=True, slots=True)
class RenderedTemplate:
    """Rendered title and message."""

    title: str | None
    message: str


class TemplateRenderer:
    """Sandboxed Jinja2 renderer for NotificationTemplate rows."""

    def __init__(self, templates: NotificationTemplateRepository) -> None:
        """Initialize with a template repository.

        Args:
            templates: Repository used to look templates up by slug
        """
        self._templates = templates
        self._env = SandboxedEnvironment(
            autoescape=False,
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._env.filters["json"] = json.dumps

    async def render_slug(
        self,
        session: AsyncSession,
        slug: str,
        params: dict[str, Any] | None = None,
    ) -> RenderedTemplate:
        """Look up an active template by slug and render it.

        Raises:
            TemplateNotFoundError: If no active template has this slug
            TemplateRenderError: If rendering fails
        """
        template = await self._templates.get_by_slug(session, slug)
        if template is None:
            raise TemplateNotFoundError(slug)
        return self.render(template, params)

    def render(
        self,
        template: NotificationTemplate,
        params: dict[str, Any] | None = None,
    ) -> RenderedTemplate:
        """Render a template with its defaults overlaid by ``params``.

        Raises:
            TemplateRenderError: On syntax errors or undefined variables
        """
        context = {**(template.default_params or {}), **(params or {})}

        missing = self._missing_variables(template, context)
        if missing:
            msg = f"Missing variables for template {template.slug}: {', '.join(missing)}"
            raise TemplateRenderError(msg, template_slug=template.slug, missing_vars=missing)

        try:
            title = self._render_string(template.subject, context) if template.subject else None
            message = self._render_string(template.body, context)
        except UndefinedError as exc:
            msg = f"Missing variable in template {template.slug}: {exc}"
            raise TemplateRenderError(msg, template_slug=template.slug) from exc
        except TemplateError as exc:
            msg = f"Failed to render template {template.slug}: {exc}"
            raise TemplateRenderError(msg, template_slug=template.slug) from exc

        _lazy.debug(lambda: f"Rendered template {template.slug}")
        return RenderedTemplate(title=title, message=message)

    def _render_string(self, source: str, context: dict[str, Any]) -> str:
        return self._env.from_string(source).render(**context)

    def _missing_variables(
        self,
        template: NotificationTemplate,
        context: dict[str, Any],
    ) -> list[str]:
        """Top-level variables referenced by the template but absent from context."""
        names: set[str] = set()
        for source in (template.subject, template.body):
            if not source:
                continue
            try:
                names |= meta.find_undeclared_variables(self._env.parse(source))
            except TemplateSyntaxError as exc:
                msg = f"Syntax error in template {template.slug}: {exc}"
                raise TemplateRenderError(msg, template_slug=template.slug) from exc
        return sorted(n for n in names if n not in context and n not in self._env.globals)
