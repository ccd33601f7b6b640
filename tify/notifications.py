"""Outbound email notifications for purchases and transfers.

Delivery is a mock: messages are logged and kept in ``OUTBOX`` instead of
being handed to an SMTP relay. Callers schedule notifications through
``dispatch`` after their transaction commits; a failed delivery is logged and
never reaches the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Iterable

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .config import settings
from .utils import to_money, utcnow

logger = logging.getLogger("uvicorn.error")

_env = Environment(
    loader=FileSystemLoader(Path(__file__).parent / "templates"),
    autoescape=select_autoescape(["html"]),
)


def _money(value: Decimal | float | str | None) -> str:
    if value is None:
        return "0.00"
    return f"{to_money(value):,.2f}"


_env.filters["money"] = _money


@dataclass
class SentEmail:
    to: str
    subject: str
    html: str
    sender: str
    sent_at: datetime = field(default_factory=utcnow)


OUTBOX: list[SentEmail] = []


def send_email(to: str, subject: str, html: str) -> bool:
    """Deliver one message."""
    message = SentEmail(to=to, subject=subject, html=html, sender=settings.email_sender)
    OUTBOX.append(message)
    logger.info("Email to %s: %s", to, subject)
    return True


def render(template_name: str, **context: Any) -> str:
    return _env.get_template(template_name).render(**context)


def notify_purchase(email: str, purchase: dict, tickets: Iterable[Any]) -> bool:
    html = render("email/purchase.html", purchase=purchase, tickets=list(tickets))
    return send_email(email, "Purchase confirmation - Tify Events", html)


def notify_transfer(email: str, ticket: Any, sender_name: str) -> bool:
    html = render("email/transfer.html", ticket=ticket, sender_name=sender_name)
    return send_email(email, "A ticket was transferred to you - Tify Events", html)


def dispatch(func: Callable[..., Any], *args: Any) -> None:
    """Run a notification, logging instead of raising when it fails."""
    try:
        func(*args)
    except Exception:
        logger.exception("Notification %s failed", getattr(func, "__name__", func))
