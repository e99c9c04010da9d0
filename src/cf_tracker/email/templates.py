"""Reminder email templates."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Final, List, Mapping, Optional

from loguru import logger

from ..database.models import Student


class TemplateError(Exception):
    """Base class for reminder template failures."""
    pass


class TemplateNotFoundError(TemplateError):
    """Raised when neither the templates directory nor the built-ins have a template."""
    pass


class TemplateRenderError(TemplateError):
    """Raised when a template cannot be filled in."""
    pass


DEFAULT_TEMPLATE: Final[str] = "inactivity_reminder"
TEMPLATE_ALIASES: Final[Dict[str, str]] = {"default": DEFAULT_TEMPLATE}
FORMAT_TYPES: Final[tuple[str, str]] = ("html", "text")


@dataclass(frozen=True)
class ReminderContext:
    """Context data for rendering a reminder to one student."""
    student: Student
    days: int
    reminder_number: int
    subject: str
    send_timestamp: datetime
    client_url: str = "http://localhost:3000"
    app_name: str = "Student Progress Tracker"

    @property
    def unsubscribe_link(self) -> str:
        return f"{self.client_url.rstrip('/')}/unsubscribe?id={self.student.id}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for template rendering."""
        return {
            "name": self.student.name,
            "handle": self.student.handle,
            "email": self.student.email,
            "days": self.days,
            "current_rating": self.student.current_rating,
            "max_rating": self.student.max_rating,
            "reminder_count": self.reminder_number,
            "unsubscribe_link": self.unsubscribe_link,
            "current_date": self.send_timestamp.strftime("%Y-%m-%d"),
            "subject": self.subject,
            "app_name": self.app_name,
        }


class SimpleTemplateEngine:
    """Fills ``{{name}}`` and ``{{a.b}}`` placeholders from a context mapping.

    Values are inserted verbatim (no HTML escaping). Placeholders with no
    matching value are left in the output as ``{{ name }}``.
    """

    PLACEHOLDER: re.Pattern[str] = re.compile(r"\{\{\s*([^{}]+?)\s*\}\}")

    def render(self, template: str, context: Mapping[str, Any]) -> str:
        """Return ``template`` with every resolvable placeholder substituted.

        Raises:
            TemplateRenderError: If a value cannot be converted to text.
        """
        def substitute(match: re.Match[str]) -> str:
            path: str = match.group(1)
            value: Any = self._resolve(context, path)
            if value is None:
                return f"{{{{ {path} }}}}"
            return str(value)

        try:
            return self.PLACEHOLDER.sub(substitute, template)
        except Exception as e:
            logger.error(f"Could not render template: {e}")
            raise TemplateRenderError(f"Could not render template: {e}") from e

    @staticmethod
    def _resolve(context: Mapping[str, Any], path: str) -> Any:
        value: Any = context
        for part in path.split("."):
            if isinstance(value, Mapping):
                value = value.get(part)
            elif isinstance(value, (list, tuple)) and part.isdigit() and int(part) < len(value):
                value = value[int(part)]
            else:
                return None
            if value is None:
                return None
        return value


BUILTIN_HTML_TEMPLATE: Final[str] = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>{{subject}}</title>
  <style>
    body { font-family: Arial, sans-serif; line-height: 1.6; color: #333; }
    .container { max-width: 600px; margin: 0 auto; padding: 20px; }
    .header { background-color: #4a69bd; color: white; padding: 10px 20px; text-align: center; }
    .content { padding: 20px; background-color: #f8f9fa; }
    .stats { margin: 20px 0; padding: 15px; background-color: #e9ecef; border-radius: 4px; }
    .footer { font-size: 12px; color: #666; text-align: center; margin-top: 20px; }
  </style>
</head>
<body>
  <div class="container">
    <div class="header">
      <h1>Coding Practice Reminder</h1>
    </div>
    <div class="content">
      <p>Hello {{name}},</p>
      <p>We noticed you haven't solved any Codeforces problems in the last <strong>{{days}} days</strong>.
      Regular practice is important for improving your programming skills and maintaining your rating.</p>
      <div class="stats">
        <p><strong>Your Codeforces Stats:</strong></p>
        <ul>
          <li>Handle: {{handle}}</li>
          <li>Current Rating: {{current_rating}}</li>
          <li>Max Rating: {{max_rating}}</li>
        </ul>
      </div>
      <p><a href="https://codeforces.com/problemset">Solve a problem today</a></p>
      <p>Keep coding!<br>{{app_name}}</p>
    </div>
    <div class="footer">
      <p>This is reminder #{{reminder_count}} about your inactivity.</p>
      <p>To stop receiving these reminders, <a href="{{unsubscribe_link}}">unsubscribe here</a>.</p>
      <p>Sent on: {{current_date}}</p>
    </div>
  </div>
</body>
</html>
"""

BUILTIN_TEXT_TEMPLATE: Final[str] = """Hi {{name}},

We noticed you haven't solved any Codeforces problems in the last {{days}} days. Regular practice is important for improving your programming skills.

Your current rating: {{current_rating}}
Your max rating: {{max_rating}}

Keep coding!

This is reminder #{{reminder_count}}.
To unsubscribe from these reminders, visit: {{unsubscribe_link}}
"""


class ReminderTemplateManager:
    """Looks templates up in ``templates_dir`` first, then among the built-ins.

    A custom template is a pair of files, ``<name>.html`` and ``<name>.text``;
    either file may be missing if a built-in of the same name supplies it.
    """

    BUILTIN_TEMPLATES: Final[Dict[str, Dict[str, str]]] = {
        DEFAULT_TEMPLATE: {"html": BUILTIN_HTML_TEMPLATE, "text": BUILTIN_TEXT_TEMPLATE},
    }

    def __init__(self, templates_dir: Optional[Path] = None) -> None:
        self.templates_dir: Optional[Path] = templates_dir
        self.engine: SimpleTemplateEngine = SimpleTemplateEngine()
        logger.info(f"Reminder templates: {templates_dir or 'built-in only'}")

    def render(self, template_name: str, context: ReminderContext, format_type: str = "html") -> str:
        """Render a reminder template.

        Args:
            template_name: Template name; ``default`` resolves to the built-in reminder.
            context: Student and reminder details.
            format_type: ``html`` or ``text``.

        Raises:
            ValueError: If ``format_type`` is not supported.
            TemplateNotFoundError: If the template does not exist.
            TemplateRenderError: If rendering fails.
        """
        if format_type not in FORMAT_TYPES:
            raise ValueError(f"Unsupported template format {format_type!r}, expected one of {FORMAT_TYPES}")

        name: str = TEMPLATE_ALIASES.get(template_name, template_name)
        source: str = self._read_source(name, format_type)
        logger.debug(f"Rendering {name}.{format_type} for {context.student.handle}")
        return self.engine.render(source, context.to_dict())

    def available_templates(self) -> List[str]:
        names: set[str] = set(self.BUILTIN_TEMPLATES)
        if self.templates_dir is not None and self.templates_dir.is_dir():
            names.update(path.stem for path in self.templates_dir.glob("*.html"))
        return sorted(names)

    def _read_source(self, name: str, format_type: str) -> str:
        if self.templates_dir is not None:
            custom: Path = self.templates_dir / f"{name}.{format_type}"
            if custom.is_file():
                try:
                    return custom.read_text(encoding="utf-8")
                except OSError as e:
                    logger.warning(f"Ignoring unreadable template {custom}: {e}")

        builtin: Optional[Dict[str, str]] = self.BUILTIN_TEMPLATES.get(name)
        if builtin is None:
            raise TemplateNotFoundError(f"No reminder template named '{name}'")
        return builtin[format_type]

    def create_custom_template_files(self, template_dir: Path) -> None:
        """Copy the built-in reminder into ``template_dir`` for editing."""
        template_dir.mkdir(parents=True, exist_ok=True)
        for format_type, source in self.BUILTIN_TEMPLATES[DEFAULT_TEMPLATE].items():
            (template_dir / f"{DEFAULT_TEMPLATE}.{format_type}").write_text(source, encoding="utf-8")
        logger.info(f"Wrote editable copies of {DEFAULT_TEMPLATE} to {template_dir}")
