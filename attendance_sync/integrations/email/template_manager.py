"""Email template rendering with Jinja2."""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader, TemplateError, TemplateNotFound, select_autoescape

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"


class EmailTemplateManager:
    """Renders the packaged sync email templates."""

    def __init__(self, template_dir: Optional[Path] = None):
        self.template_dir = Path(template_dir) if template_dir else TEMPLATE_DIR
        self.jinja_env = self._initialize_jinja_env()

    def _initialize_jinja_env(self) -> Environment:
        env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        env.filters["format_date"] = self._format_date_filter
        return env

    def _format_date_filter(self, value, format="%d %b %Y"):
        """Render ``YYYYMMDD`` strings and date objects as readable dates."""
        if hasattr(value, "strftime"):
            return value.strftime(format)
        text = str(value)
        if len(text) == 8 and text.isdigit():
            return f"{text[6:8]}-{text[4:6]}-{text[0:4]}"
        return text

    async def render_template(self, template_id: str, context: Dict[str, Any]) -> Dict[str, Any]:
        """
        Render ``{template_id}.html`` (and ``{template_id}.txt`` when present).

        Returns:
            Dictionary with rendered content or error information
        """
        try:
            html_content = self.jinja_env.get_template(f"{template_id}.html").render(**context)
        except TemplateNotFound:
            logger.error(f"Email template not found: {template_id}")
            return {"success": False, "error": f"Template {template_id} not found", "template_id": template_id}
        except TemplateError as e:
            logger.error(f"Error rendering template {template_id}: {e}")
            return {"success": False, "error": str(e), "template_id": template_id}

        text_content = None
        try:
            text_content = self.jinja_env.get_template(f"{template_id}.txt").render(**context)
        except TemplateNotFound:
            pass

        return {
            "success": True,
            "subject": context.get("subject"),
            "html_content": html_content,
            "text_content": text_content,
        }
