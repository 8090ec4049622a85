"""
Template service for rendering the invoice email body with Jinja2.

WHAT: Renders a named template with a model (the Buy) to an HTML string.

WHY: Keeping the email body in a template lets the design change without
touching the sending code, and the TemplateRenderer protocol lets tests swap
in a renderer that returns canned HTML.

HOW: Jinja2 environment with FileSystemLoader over one or more search
directories, autoescaping and async rendering. A missing template raises
TemplateNotFoundError listing every location that was searched.
"""

import logging
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence, Union

from jinja2 import Environment, FileSystemLoader, select_autoescape, TemplateNotFound

from invoice_mailer.core.config import settings
from invoice_mailer.core.exceptions import TemplateNotFoundError


logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_DIR = Path(__file__).parent.parent / "templates" / "emails"


class TemplateRenderer(Protocol):
    """Renders a named template with a model to HTML."""

    async def render(self, template_name: str, model: Any) -> str:
        ...


def format_currency(amount: Any) -> str:
    """
    Format amount as currency.

    Args:
        amount: Amount to format (Decimal, float, int, or None)

    Returns:
        Formatted currency string (e.g., "$1,234.56")
    """
    if amount is None:
        return "$0.00"

    try:
        value = Decimal(str(amount))
    except (ArithmeticError, ValueError, TypeError):
        return "$0.00"
    return f"${value:,.2f}"


class JinjaTemplateRenderer:
    """
    Jinja2 implementation of TemplateRenderer.

    Example:
        renderer = JinjaTemplateRenderer()
        html = await renderer.render("invoice.html", buy)
    """

    def __init__(
        self,
        template_dirs: Optional[Sequence[Union[str, Path]]] = None,
        company_name: Optional[str] = None,
    ):
        """
        Initialize template renderer.

        Args:
            template_dirs: Directories to search, in order (defaults to the
                bundled templates/emails)
            company_name: Name shown in the email header and footer
        """
        if not template_dirs:
            template_dirs = [DEFAULT_TEMPLATE_DIR]

        self._template_dirs = [Path(d) for d in template_dirs]
        self._company_name = company_name or settings.COMPANY_NAME
        self._env = self._create_environment()

    def _create_environment(self) -> Environment:
        env = Environment(
            loader=FileSystemLoader([str(d) for d in self._template_dirs]),
            autoescape=select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
            enable_async=True,
        )
        env.filters["currency"] = format_currency
        return env

    @property
    def template_dirs(self) -> List[Path]:
        return list(self._template_dirs)

    def searched_locations(self, template_name: str) -> List[str]:
        """Every path the loader tries for template_name, in search order."""
        return [str(d / template_name) for d in self._template_dirs]

    def _get_base_context(self) -> Dict[str, Any]:
        return {
            "year": datetime.utcnow().year,
            "company_name": self._company_name,
        }

    async def render(self, template_name: str, model: Any) -> str:
        """
        Render a template with the model bound as `model`.

        Args:
            template_name: Name of template file (e.g., "invoice.html")
            model: Object exposed to the template

        Returns:
            Rendered HTML string

        Raises:
            TemplateNotFoundError: If no search directory holds the template
        """
        try:
            template = self._env.get_template(template_name)
        except TemplateNotFound:
            searched = self.searched_locations(template_name)
            logger.error(
                f"Template {template_name} not found. Searched locations:\n" + "\n".join(searched),
                extra={"template": template_name, "searched_locations": searched},
            )
            raise TemplateNotFoundError(template_name, searched)

        context = {**self._get_base_context(), "model": model}
        return await template.render_async(**context)


_template_renderer: Optional[JinjaTemplateRenderer] = None


def get_template_renderer() -> JinjaTemplateRenderer:
    """
    Get or create the global template renderer.

    Returns:
        JinjaTemplateRenderer instance
    """
    global _template_renderer

    if _template_renderer is None:
        template_dirs = [settings.INVOICE_TEMPLATE_DIR] if settings.INVOICE_TEMPLATE_DIR else None
        _template_renderer = JinjaTemplateRenderer(template_dirs=template_dirs)

    return _template_renderer
