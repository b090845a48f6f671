# Overview: Text shown in the bot chat for donation alerts and review outcomes.

from __future__ import annotations

from ..models.donations import STATUS_APPROVED

APPROVE_BUTTON = "✅ Approve"
REJECT_BUTTON = "❌ Reject"

# Callback acknowledgements (shown as an alert on the reviewer's phone)
ACK_APPROVED = "✅ Donation approved"
ACK_REJECTED = "❌ Donation rejected"
ACK_ALREADY_PROCESSED = "⚠️ This donation was already processed"
ACK_NOT_FOUND = "❌ Donation not found"
ACK_MALFORMED = "❌ Invalid request data"
ACK_ERROR = "❌ Something went wrong, please try again"


def escape_markdown(text) -> str:
    """Escape Telegram legacy-Markdown control characters outside entities."""
    value = str(text)
    for ch in ("\\", "_", "*", "`", "["):
        value = value.replace(ch, "\\" + ch)
    return value


def _boxes_label(boxes) -> str:
    return str(boxes) if boxes else "not specified"


def _details(donation, currency: str) -> str:
    return (
        f"💰 *Amount:* {donation.amount:,} {escape_markdown(currency)}\n"
        f"📦 *Boxes:* {_boxes_label(donation.boxes)}\n"
        f"💳 *Payment method:* {escape_markdown(donation.payment_method)}\n"
        f"🆔 *Donation:* `{donation.id}`"
    )


def new_donation_text(donation, *, currency: str) -> str:
    return (
        "🆕 *New donation*\n\n"
        f"{_details(donation, currency)}\n\n"
        "⏳ *Status:* awaiting review"
    )


def receipt_fallback_text(donation, *, currency: str) -> str:
    """Used when the receipt photo could not be attached."""
    text = new_donation_text(donation, currency=currency)
    if donation.receipt_url:
        text += f"\n\n📷 *Receipt:* {escape_markdown(donation.receipt_url)}"
    return text


def decision_text(donation, *, currency: str) -> str:
    approved = donation.status == STATUS_APPROVED
    header = "✅ *Approved*" if approved else "❌ *Rejected*"
    footer = (
        "✅ Approved and added to the counter"
        if approved
        else "❌ Donation rejected"
    )
    reviewer = f"\n👤 Reviewed by {escape_markdown(donation.reviewed_by)}" if donation.reviewed_by else ""
    return f"{header}\n\n{_details(donation, currency)}\n\n{footer}{reviewer}"


def acknowledgement_for(status: str) -> str:
    return ACK_APPROVED if status == STATUS_APPROVED else ACK_REJECTED
