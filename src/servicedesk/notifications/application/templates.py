"""
Notification Templates
======================

Subjects and HTML bodies for outbound e-mail.
"""

from html import escape
from typing import Tuple

from servicedesk.config import NotificationType
from servicedesk.tickets.domain import Ticket

_HEADINGS = {
    NotificationType.TICKET_CREATED: "New ticket created",
    NotificationType.TICKET_ASSIGNED: "Ticket assigned",
    NotificationType.TICKET_UPDATED: "Ticket updated",
    NotificationType.TICKET_ESCALATED: "Ticket escalated",
    NotificationType.SLA_BREACH: "SLA breached",
    NotificationType.APPROVAL_REQUESTED: "Approval requested",
    NotificationType.CSAT_REQUEST: "How did we do?",
}


def render_subject(ticket: Ticket, message: str) -> str:
    return f"[ServiceDesk] {ticket.code} - {message}"


def render_body(notification_type: NotificationType, ticket: Ticket, message: str) -> str:
    due = ticket.due_at.strftime("%Y-%m-%d %H:%M UTC") if ticket.due_at else "-"
    return f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2>{escape(_HEADINGS.get(notification_type, "Ticket notification"))}</h2>
  <p>{escape(message)}</p>
  <div style="background-color: #f8fafc; padding: 16px; border-radius: 8px; margin: 16px 0;">
    <p><strong>Ticket:</strong> {escape(ticket.code)}</p>
    <p><strong>Subject:</strong> {escape(ticket.subject)}</p>
    <p><strong>Priority:</strong> {ticket.priority.value}</p>
    <p><strong>Status:</strong> {ticket.status.value}</p>
    <p><strong>Due:</strong> {due}</p>
  </div>
  <hr>
  <p style="color: #64748b; font-size: 12px;">ServiceDesk - automated message</p>
</div>
""".strip()


def render_csat_email(ticket: Ticket, survey_url: str) -> Tuple[str, str]:
    """Subject and body of the satisfaction survey e-mail."""
    subject = f"How did we do? - Ticket {ticket.code}"
    body = f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: #2563eb;">How did we do?</h2>
  <p>Hello!</p>
  <p>We would like your opinion on how this ticket was handled:</p>
  <div style="background-color: #f8fafc; padding: 16px; border-radius: 8px; margin: 16px 0;">
    <p><strong>Ticket:</strong> {escape(ticket.code)}</p>
    <p><strong>Subject:</strong> {escape(ticket.subject)}</p>
  </div>
  <p>Your rating helps us improve our service.</p>
  <p style="text-align: center; margin: 24px 0;">
    <a href="{escape(survey_url, quote=True)}"
       style="background-color: #2563eb; color: white; padding: 12px 24px; border-radius: 6px; text-decoration: none;">
      Rate this ticket
    </a>
  </p>
  <p style="color: #64748b; font-size: 12px;">It takes less than a minute.</p>
</div>
""".strip()
    return subject, body
