"""Automatic moderation of resale listings.

Listings are checked when they are created or edited. A clean listing is
published right away, anything suspicious stays ``pending`` with the found
issues stored as moderation notes for an administrator.
"""

import logging
import re
from decimal import Decimal

from app.core.config import config
from app.models.enums.listing_status import ListingStatus
from app.models.listing_model import Listing
from app.schemas.moderation_schema import ModerationResult

logger = logging.getLogger(__name__)

# the longer words are caught inside compounds, "ass" and "hell" only as whole words
# so that "hello" or "class" pass
PROFANITY_REGEX = re.compile(
    r"\b(?:\w*fuck\w*|\w*shit\w*|damn\w*|\w*bitch\w*|ass|hell)\b", re.IGNORECASE
)
# indian mobile numbers, optionally prefixed with the country code
PHONE_REGEX = re.compile(r"(\+?91[\-\s]?)?[6-9]\d{9}")
EMAIL_REGEX = re.compile(r"[\w.-]+@[\w.-]+\.\w+")

ISSUE_PROFANITY = "Contains inappropriate language"
ISSUE_CONTACT_INFO = "Contains contact information (use in-app chat instead)"
ISSUE_PRICE_RANGE = "Price is outside acceptable range"


def contains_profanity(text: str) -> bool:
    return PROFANITY_REGEX.search(text or "") is not None


def contains_contact_info(text: str) -> bool:
    text = text or ""
    return PHONE_REGEX.search(text) is not None or EMAIL_REGEX.search(text) is not None


def moderate_listing(
    title: str,
    description: str | None,
    price: Decimal,
    min_price: Decimal | None = None,
    max_price: Decimal | None = None,
) -> ModerationResult:
    min_price = config.min_listing_price if min_price is None else min_price
    max_price = config.max_listing_price if max_price is None else max_price

    issues: list[str] = []
    if contains_profanity(title) or contains_profanity(description):
        issues.append(ISSUE_PROFANITY)
    if contains_contact_info(title) or contains_contact_info(description):
        issues.append(ISSUE_CONTACT_INFO)
    if price < min_price or price > max_price:
        issues.append(ISSUE_PRICE_RANGE)

    return ModerationResult(approved=not issues, issues=issues)


def apply_auto_moderation(listing: Listing) -> ModerationResult:
    """Run the checks and move the listing to ``active`` or keep it ``pending``."""
    result = moderate_listing(listing.title, listing.description, listing.price)
    if result.approved:
        listing.status = ListingStatus.ACTIVE
        listing.moderation_notes = None
    else:
        listing.status = ListingStatus.PENDING
        listing.moderation_notes = result.notes
        logger.info(
            "Listing %r flagged for manual review: %s", listing.title, result.notes
        )
    return result
