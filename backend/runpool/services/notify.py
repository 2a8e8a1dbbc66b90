from __future__ import annotations
import asyncio
from html import escape
from typing import Iterable, Sequence

import structlog

from runpool.config import settings
from runpool.errors import EmailDeliveryError
from runpool.repositories.records import ChallengeRecord, GroupRecord, ProfileRecord
from runpool.schemas.leaderboard import LeaderboardRow
from runpool.schemas.recap import DeliveryFailure, Recap, RecapDelivery
from runpool.services.email import EmailSender

log = structlog.get_logger()

NO_RECIPIENTS = "No recipients (set WEEKLY_RECAP_TEST_TO or use ?to=)"
_PLACES = {1: "1st place", 2: "2nd place", 3: "3rd place"}


def parse_recipients(raw: str | Iterable[str] | None) -> list[str]:
    if raw is None:
        return []
    parts = raw.split(",") if isinstance(raw, str) else list(raw)
    seen: list[str] = []
    for p in parts:
        p = p.strip()
        if p and p not in seen:
            seen.append(p)
    return seen


def period_label(week_start, week_end) -> str:
    return f"{week_start.isoformat()} - {week_end.isoformat()}"


def render_recap_email(recap: Recap) -> tuple[str, str]:
    group_name = recap.group.name if recap.group else settings.app_display_name
    period = period_label(recap.challenge.week_start, recap.challenge.week_end)
    top = "".join(
        f"<li>#{r.rank} {escape(r.name)}: {r.miles:.1f} miles</li>" for r in recap.top3
    )
    html = (
        '<div style="font-family: system-ui, sans-serif; line-height:1.5; color:#111">'
        f'<h2 style="margin:0 0 8px 0">{escape(group_name)} Weekly Recap</h2>'
        f'<div style="color:#555; margin-bottom:12px">{period}</div>'
        '<div style="margin:12px 0">'
        f"<strong>Participants:</strong> {recap.summary.participants}<br/>"
        f"<strong>Total miles:</strong> {recap.summary.total_miles:.1f}<br/>"
        f"<strong>Average miles:</strong> {recap.summary.avg_miles:.1f}<br/>"
        f"<strong>Pot:</strong> {recap.pot:.2f}"
        "</div>"
        f"<div><strong>Top 3</strong><ol>{top}</ol></div>"
        "</div>"
    )
    return f"{group_name} Weekly Recap ({period})", html


async def send_to_each(sender: EmailSender, recipients: Sequence[str], subject: str, html: str, label: str) -> RecapDelivery:
    """Independent sends, gathered; a failed recipient never stops the others."""
    results = await asyncio.gather(
        *(sender.send(r, subject, html) for r in recipients), return_exceptions=True
    )
    delivery = RecapDelivery(group=label, ok=True)
    for rcpt, res in zip(recipients, results):
        if isinstance(res, Exception):
            reason = res.reason if isinstance(res, EmailDeliveryError) else f"{type(res).__name__}: {res}"
            delivery.failures.append(DeliveryFailure(recipient=rcpt, error=reason))
            log.warning("email.failed", to=rcpt, error=reason, label=label)
        elif isinstance(res, BaseException):
            # cancellation and interpreter exits are not delivery failures
            raise res
        else:
            delivery.message_ids.append(res)
    delivery.successful = len(delivery.message_ids)
    delivery.failed = len(delivery.failures)
    delivery.ok = delivery.failed == 0
    return delivery


async def dispatch_recap_emails(sender: EmailSender | None, recaps: Sequence[Recap], recipients: Iterable[str] | str | None) -> list[RecapDelivery]:
    """
    Send one email per recap to an explicit allow-list.
    Group members are never resolved here; `sender` is only used when there are recipients.
    """
    to = parse_recipients(recipients)
    out: list[RecapDelivery] = []
    for recap in recaps:
        label = recap.group.name if recap.group else settings.app_display_name
        if not to:
            out.append(RecapDelivery(group=label, ok=False, error=NO_RECIPIENTS))
            continue
        subject, html = render_recap_email(recap)
        out.append(await send_to_each(sender, to, subject, html, label))
    log.info(
        "recap.dispatched",
        recaps=len(recaps), recipients=len(to),
        failed=sum(d.failed for d in out),
    )
    return out


def render_top_performer_email(name: str, group_name: str, rank: int, miles: float, period: str, url: str) -> tuple[str, str]:
    place = _PLACES.get(rank, f"#{rank}")
    html = (
        '<div style="font-family: system-ui, sans-serif; line-height:1.5; color:#111">'
        f"<h2>You're in the top 3, {escape(name)}!</h2>"
        f"<p>You moved into <strong>{place}</strong> in {escape(group_name)} ({period}) "
        f"with {miles:.1f} miles.</p>"
        f'<p><a href="{escape(url)}">View the leaderboard</a></p>'
        "</div>"
    )
    return f"You're {place} in {group_name}!", html


async def notify_top_performers(
    sender: EmailSender,
    group: GroupRecord,
    challenge: ChallengeRecord,
    joiners: Sequence[LeaderboardRow],
    profiles: dict,
) -> list[RecapDelivery]:
    out = []
    period = period_label(challenge.week_start, challenge.week_end)
    url = f"{settings.site_url.rstrip('/')}/group/{group.id}"
    for row in joiners:
        profile: ProfileRecord | None = profiles.get(row.user_id)
        if not profile or not profile.email:
            log.info("notify.top3_skipped", user_id=str(row.user_id), reason="no_email")
            continue
        subject, html = render_top_performer_email(row.name, group.name, row.rank, row.miles, period, url)
        out.append(await send_to_each(sender, [profile.email], subject, html, group.name))
    return out
