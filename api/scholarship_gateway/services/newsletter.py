"""
Newsletter fan-out for newly published posts.

The message body is rendered once per post and personalised per recipient by
substituting ``RECIPIENT_TOKEN`` in the unsubscribe link.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime
from functools import lru_cache
from pathlib import Path
from typing import Any
from urllib.parse import quote

from jinja2 import Environment, FileSystemLoader, select_autoescape
from markupsafe import Markup, escape
from opentelemetry import metrics, trace

from scholarship_gateway.core.config import get_settings
from scholarship_gateway.services.mailer import MailTransport

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

RECIPIENT_TOKEN = "{{EMAIL}}"
DEFAULT_FEATURED_IMAGE = "https://images.unsplash.com/photo-1523050854058-8df90110c9f1?w=800&h=400&fit=crop"
TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"


@dataclass(slots=True)
class DispatchResult:
    sent: int = 0
    failed: int = 0
    total: int = 0


class NewsletterRenderer:
    """
    Renders the new-post announcement email with Jinja2.

    Usage:
        renderer = NewsletterRenderer(brand_name="Scholarship Gateway")
        html = renderer.render(post, frontend_url="https://scholarshipgateway.com")
    """

    def __init__(self, templates_dir: Path | None = None, *, brand_name: str = "Scholarship Gateway") -> None:
        self.brand_name = brand_name
        self.env = Environment(
            loader=FileSystemLoader(str(templates_dir or TEMPLATES_DIR)),
            autoescape=select_autoescape(["html", "xml", "jinja2"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["nl2br"] = _nl2br

    def render(self, post: dict[str, Any], *, frontend_url: str) -> str:
        base_url = frontend_url.rstrip("/")
        template = self.env.get_template("newsletter_post.html.jinja2")
        return template.render(
            post=post,
            post_url=f"{base_url}/blog/{post.get('slug') or ''}",
            frontend_url=base_url,
            featured_image=post.get("featured_image") or DEFAULT_FEATURED_IMAGE,
            funding_type=_funding_type_label(post),
            deadline=format_deadline(post.get("application_deadline")),
            brand_name=self.brand_name,
            recipient_token=RECIPIENT_TOKEN,
        )

    @staticmethod
    def subject_for(post: dict[str, Any]) -> str:
        return f"New Scholarship: {post.get('title') or 'Untitled'}"


def personalize(html: str, email: str) -> str:
    return html.replace(RECIPIENT_TOKEN, quote(email, safe="@"))


def format_deadline(value: Any) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return value
    if isinstance(value, (datetime, date)):
        return f"{value:%B} {value.day}, {value.year}"
    return str(value)


class NewsletterDispatcher:
    def __init__(
        self,
        transport: MailTransport,
        renderer: NewsletterRenderer,
        *,
        frontend_url: str,
        batch_size: int = 10,
        batch_delay_seconds: float = 1.0,
        meter: metrics.Meter | None = None,
    ) -> None:
        self.transport = transport
        self.renderer = renderer
        self.frontend_url = frontend_url
        self.batch_size = max(1, batch_size)
        self.batch_delay_seconds = max(0.0, batch_delay_seconds)
        self._deliveries = (meter or metrics.get_meter(__name__)).create_counter(
            "newsletter.deliveries",
            unit="{message}",
            description="Newsletter messages handed to the mail transport, by outcome",
        )

    async def dispatch(self, post: dict[str, Any], subscriber_emails: list[str]) -> DispatchResult:
        post_id = post.get("id")
        if not subscriber_emails:
            logger.info("newsletter skipped post_id=%s: no active subscribers", post_id)
            return DispatchResult()

        html = self.renderer.render(post, frontend_url=self.frontend_url)
        subject = self.renderer.subject_for(post)
        result = DispatchResult(total=len(subscriber_emails))

        with tracer.start_as_current_span("newsletter.dispatch") as span:
            span.set_attribute("post.id", str(post_id))
            span.set_attribute("newsletter.recipients", result.total)
            for start in range(0, result.total, self.batch_size):
                batch = subscriber_emails[start : start + self.batch_size]
                with tracer.start_as_current_span("newsletter.batch") as batch_span:
                    batch_span.set_attribute("newsletter.batch_start", start)
                    outcomes = await asyncio.gather(
                        *(self._send_one(post_id, email, subject, html) for email in batch)
                    )
                delivered = sum(1 for ok in outcomes if ok)
                result.sent += delivered
                result.failed += len(batch) - delivered
                self._deliveries.add(delivered, {"outcome": "sent"})
                self._deliveries.add(len(batch) - delivered, {"outcome": "failed"})

                if start + self.batch_size < result.total and self.batch_delay_seconds > 0:
                    await _pause(self.batch_delay_seconds)

            span.set_attribute("newsletter.sent", result.sent)
            span.set_attribute("newsletter.failed", result.failed)

        logger.info(
            "newsletter dispatched post_id=%s sent=%s failed=%s total=%s",
            post_id,
            result.sent,
            result.failed,
            result.total,
        )
        return result

    async def _send_one(self, post_id: Any, email: str, subject: str, html: str) -> bool:
        try:
            await self.transport.send(email, subject, personalize(html, email))
        except Exception as exc:
            logger.warning("newsletter delivery failed post_id=%s recipient=%s: %s", post_id, email, exc)
            return False
        return True


async def _pause(seconds: float) -> None:
    await asyncio.sleep(seconds)


def _nl2br(value: Any) -> Markup:
    return Markup("<br>").join(escape(str(value)).split("\n"))


def _funding_type_label(post: dict[str, Any]) -> str | None:
    funding_type = post.get("funding_type")
    if isinstance(funding_type, dict) and funding_type.get("name"):
        return str(funding_type["name"])
    funding_type_id = post.get("funding_type_id")
    return str(funding_type_id) if funding_type_id else None


@lru_cache
def get_newsletter_renderer() -> NewsletterRenderer:
    return NewsletterRenderer(brand_name=get_settings().mail_from_name)
