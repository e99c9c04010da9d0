"""SMTP delivery of reminder emails."""

from __future__ import annotations

import smtplib
import ssl
from contextlib import contextmanager
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate, make_msgid
from typing import Iterator

from loguru import logger

from ..config.settings import SmtpSettings
from ..utils.validation_utils import validate_email


class EmailError(Exception):
    """Raised when an email cannot be delivered."""
    pass


class AuthenticationError(EmailError):
    """Raised when the SMTP server rejects the configured credentials."""
    pass


@dataclass(frozen=True)
class EmailConfig:
    """SMTP connection details and sender identity."""
    smtp_server: str
    smtp_port: int
    username: str
    password: str
    from_email: str
    from_name: str
    use_ssl: bool = False
    timeout_seconds: int = 30

    def __post_init__(self) -> None:
        for label, value in (
            ("SMTP server", self.smtp_server),
            ("SMTP username", self.username),
            ("SMTP password", self.password),
        ):
            if not value.strip():
                raise ValueError(f"{label} is required")
        if not 0 < self.smtp_port < 65536:
            raise ValueError(f"Invalid SMTP port: {self.smtp_port}")
        if not validate_email(self.from_email):
            raise ValueError(f"Invalid sender address: {self.from_email}")
        if self.timeout_seconds <= 0:
            raise ValueError("SMTP timeout must be positive")

    @classmethod
    def from_settings(cls, smtp: SmtpSettings) -> EmailConfig:
        """Build a config from application SMTP settings.

        Raises:
            ValueError: If credentials are missing or invalid.
        """
        return cls(
            smtp_server=smtp.host,
            smtp_port=smtp.port,
            username=smtp.username,
            password=smtp.password,
            from_email=smtp.from_email,
            from_name=smtp.from_name,
            use_ssl=smtp.use_ssl,
            timeout_seconds=smtp.timeout_seconds,
        )


class EmailService:
    """Sends multipart emails, opening a fresh SMTP session for each one.

    Delivery is attempted once; callers decide whether a failure is retried.
    """

    def __init__(self, config: EmailConfig) -> None:
        self.config: EmailConfig = config
        logger.info(
            f"SMTP delivery via {config.smtp_server}:{config.smtp_port} as {config.from_email}"
        )

    def _open_connection(self) -> smtplib.SMTP:
        """Connect, secure and log in.

        Raises:
            AuthenticationError: If the login is rejected.
            EmailError: If the server cannot be reached or refuses the session.
        """
        context: ssl.SSLContext = ssl.create_default_context()
        host, port = self.config.smtp_server, self.config.smtp_port

        try:
            server: smtplib.SMTP
            if self.config.use_ssl:
                server = smtplib.SMTP_SSL(host, port, timeout=self.config.timeout_seconds, context=context)
            else:
                server = smtplib.SMTP(host, port, timeout=self.config.timeout_seconds)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Cannot reach SMTP server {host}:{port}: {e}")
            raise EmailError(f"Cannot reach SMTP server {host}:{port}: {e}") from e

        try:
            if not self.config.use_ssl:
                server.starttls(context=context)
            server.login(self.config.username, self.config.password)
        except smtplib.SMTPAuthenticationError as e:
            server.close()
            logger.error(f"SMTP login rejected for {self.config.username}: {e}")
            raise AuthenticationError(f"SMTP login rejected for {self.config.username}: {e}") from e
        except (smtplib.SMTPException, OSError) as e:
            server.close()
            logger.error(f"SMTP session setup with {host} failed: {e}")
            raise EmailError(f"SMTP session setup with {host} failed: {e}") from e

        logger.debug(f"SMTP session open with {host}:{port}")
        return server

    @contextmanager
    def connection(self) -> Iterator[smtplib.SMTP]:
        """Yield an authenticated SMTP session and always close it afterwards."""
        server: smtplib.SMTP = self._open_connection()
        try:
            yield server
        finally:
            try:
                server.quit()
            except (smtplib.SMTPException, OSError) as e:
                logger.warning(f"SMTP session did not close cleanly: {e}")

    def _build_message(self, to_email: str, subject: str, text_content: str, html_content: str) -> MIMEMultipart:
        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = formataddr((self.config.from_name, self.config.from_email))
        message["To"] = to_email
        message["Date"] = formatdate(localtime=False)
        message["Message-ID"] = make_msgid(domain=self.config.from_email.split("@")[-1])

        if text_content.strip():
            message.attach(MIMEText(text_content, "plain", "utf-8"))
        if html_content.strip():
            message.attach(MIMEText(html_content, "html", "utf-8"))
        return message

    def send_email(self, to_email: str, subject: str, text_content: str, html_content: str) -> None:
        """Send one text/HTML email.

        Raises:
            ValueError: If the recipient or subject is invalid, or both bodies are empty.
            AuthenticationError: If the SMTP login is rejected.
            EmailError: If the server refuses the message.
        """
        if not validate_email(to_email.strip()):
            raise ValueError(f"Invalid recipient address: {to_email}")
        if not subject.strip():
            raise ValueError("Subject is required")
        if not (text_content.strip() or html_content.strip()):
            raise ValueError("Email body is empty")

        message: MIMEMultipart = self._build_message(to_email, subject, text_content, html_content)

        with self.connection() as server:
            try:
                server.sendmail(self.config.from_email, [to_email], message.as_string())
            except smtplib.SMTPException as e:
                logger.error(f"SMTP server refused email to {to_email}: {e}")
                raise EmailError(f"SMTP server refused email to {to_email}: {e}") from e

        logger.info(f"Email '{subject}' delivered to {to_email}")

    def test_connection(self) -> bool:
        """Return True if an authenticated SMTP session can be opened."""
        try:
            with self.connection():
                pass
        except EmailError as e:
            logger.error(f"SMTP connection check failed: {e}")
            return False

        logger.info("SMTP connection check passed")
        return True
