#!/usr/bin/env python3
"""
Notification stage.

Renders the selected entries (and any failed sources) into an HTML email with
Jinja2 and delivers it over SMTP to the configured sender address.

A custom template can replace the default one (EMAIL_TEMPLATE_FILE). Templates
receive ``successes`` and ``failures``, both lists of CanonicalFeed, and can
use the ``format_time`` and ``format_layout_time`` filters. Entry content is
already HTML and must be marked ``|safe``.
"""

import smtplib
from datetime import datetime
from email.mime.text import MIMEText
from typing import List, Optional

from jinja2 import Environment, TemplateError, select_autoescape

from config import Config, get_logger
from dates import format_layout_time, format_time
from errors import NotificationError
from models import CanonicalFeed

logger = get_logger("notifier")

_BOX_STYLE = "border: 1px solid #acb0bf; border-radius: 3px; background: #f4f4f4; padding: 1em; margin: 1.6em 0;"
_LINK_STYLE = "text-decoration: none; color: RoyalBlue; "

DEFAULT_TEMPLATE = """
{% for feed in successes %}
<h1 style="{{ box_style }}"><a href="{{ feed.link }}" style="{{ link_style }}">{{ feed.title }}</a></h1>
  {% for entry in feed.entries %}
  <h2 style="{{ box_style }}"><a href="{{ entry.link }}" style="{{ link_style }}">{{ entry.title }}</a><span style="font-size:0.75rem;margin-left:1rem;">{{ entry.updated | format_time }}</span></h2>
  <div>
    {{ entry.content | safe }}
  </div>
  {% endfor %}
{% endfor %}

<br />
<hr />
<br />

{% for feed in failures %}
<h1 style="{{ box_style }}"><a href="{{ feed.link }}" style="{{ link_style }}">{{ feed.title }}</a></h1>
Failed to process feed: {{ feed.failure }}
{% endfor %}
"""

# Titles and failure messages are escaped; entry content is passed through with |safe
env = Environment(autoescape=select_autoescape(default_for_string=True, default=True))
env.filters['format_time'] = format_time
env.filters['format_layout_time'] = lambda dt, layout: format_layout_time(layout, dt)


def load_template(file_path: Optional[str]) -> str:
    """Return the custom template text, or the default when no file is configured.

    Raises:
        NotificationError: The configured file cannot be read.
    """
    if not file_path:
        return DEFAULT_TEMPLATE
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            return f.read()
    except OSError as e:
        raise NotificationError(f"failed to read email template file {file_path!r} err={e}") from e


def render_body(
    successes: List[CanonicalFeed],
    failures: List[CanonicalFeed],
    template_text: Optional[str] = None,
) -> str:
    """Render the notification body.

    Raises:
        NotificationError: The template does not parse or fails to render.
    """
    try:
        template = env.from_string(template_text or DEFAULT_TEMPLATE)
        return template.render(
            successes=successes,
            failures=failures,
            box_style=_BOX_STYLE,
            link_style=_LINK_STYLE,
        )
    except TemplateError as e:
        raise NotificationError(f"failed to render email template err={e}") from e


class EmailNotifier:
    """Sends notifications to the configured address over SMTP.

    Messages go from ``from_addr`` to ``from_addr``: the notifier mails its
    own operator.
    """

    def __init__(
        self,
        from_addr: str,
        smtp_host: str,
        smtp_port: int = 587,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
        use_starttls: bool = True,
        timeout: int = 30,
    ):
        self.from_addr = from_addr
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.use_starttls = use_starttls
        self.timeout = timeout

    @classmethod
    def from_config(cls, cfg: Config) -> "EmailNotifier":
        return cls(
            from_addr=cfg.EMAIL_FROM,
            smtp_host=cfg.SMTP_HOST,
            smtp_port=cfg.SMTP_PORT,
            smtp_user=cfg.SMTP_USER,
            smtp_password=cfg.SMTP_PASS,
            use_starttls=cfg.SMTP_STARTTLS,
            timeout=cfg.HTTP_TIMEOUT,
        )

    def _deliver(self, msg: MIMEText) -> None:
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.timeout) as server:
            if self.use_starttls:
                server.starttls()
            if self.smtp_user and self.smtp_password:
                server.login(self.smtp_user, self.smtp_password)
            server.send_message(msg)

    def _message(self, subject: str, body: str, subtype: str) -> MIMEText:
        msg = MIMEText(body, subtype, "utf-8")
        msg["Subject"] = subject
        msg["From"] = self.from_addr
        msg["To"] = self.from_addr
        return msg

    def send(self, html_body: str, subject: Optional[str] = None) -> None:
        """Send the HTML notification.

        Raises:
            NotificationError: Delivery failed.
        """
        subject = subject or f"feed-notifier update: {datetime.now().strftime('%Y-%m-%d %H:%M')}"
        try:
            self._deliver(self._message(subject, html_body, "html"))
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"failed to send email via {self.smtp_host}:{self.smtp_port} err={e}") from e
        logger.info(f"sent email to {self.from_addr}")

    def send_failure(self, error: BaseException) -> bool:
        """Best-effort plain-text failure notice. Returns whether it was sent."""
        try:
            self._deliver(self._message("feed-notifier failure", str(error), "plain"))
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"tried to send failure email err={e}")
            return False
        logger.info("sent failure email")
        return True
