import re
from dataclasses import dataclass

# any run of 8+ digits, optionally split once and prefixed by country/area codes
PHONE_REGEX = re.compile(
    r"(\+?\d{1,4}[-.\s]?)?(\(?\d{1,4}\)?[-.\s]?)?\d{4,}[-.\s]?\d{4,}"
)
WHATSAPP_REGEX = re.compile(r"whatsapp|wa\.me|chat\.whatsapp\.com", re.IGNORECASE)

BLOCKED_PLACEHOLDER = "[BLOCKED MESSAGE]"
WARNING_MESSAGE = "Sharing personal numbers is strictly prohibited."


@dataclass(frozen=True)
class ChatModerationResult:
    allowed: bool
    flagged_reason: str | None = None


def moderate_chat_message(text: str) -> ChatModerationResult:
    """Keeps buyers and sellers from moving the deal off the platform."""
    if PHONE_REGEX.search(text):
        return ChatModerationResult(False, "Contains phone number")
    if WHATSAPP_REGEX.search(text):
        return ChatModerationResult(False, "Contains WhatsApp reference")
    return ChatModerationResult(True)
