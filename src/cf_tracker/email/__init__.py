"""Email package for reminder delivery."""

from .service import AuthenticationError, EmailConfig, EmailError, EmailService
from .templates import (
    DEFAULT_TEMPLATE,
    ReminderContext,
    ReminderTemplateManager,
    SimpleTemplateEngine,
    TemplateError,
    TemplateNotFoundError,
    TemplateRenderError,
)

__all__ = [
    # Service
    "AuthenticationError",
    "EmailConfig",
    "EmailError",
    "EmailService",
    # Templates
    "DEFAULT_TEMPLATE",
    "ReminderContext",
    "ReminderTemplateManager",
    "SimpleTemplateEngine",
    "TemplateError",
    "TemplateNotFoundError",
    "TemplateRenderError",
]
