import logging
from datetime import datetime, timedelta, timezone
from typing import List

from sqlalchemy import select

from app.core.config import config
from app.db.database import async_session
from app.models.enums.transaction_event_type import TransactionEventType
from app.models.enums.transaction_status import TransactionStatus
from app.models.transaction_event_model import TransactionEvent
from app.models.transaction_model import Transaction

logger = logging.getLogger(__name__)


async def expire_unpaid_transactions(
    session_maker=async_session, now: datetime | None = None
) -> int:
    """
    Cancels escrow transactions whose payment was never captured.

    The listing stays active so other buyers can check it out again.
    Returns the number of cancelled transactions.
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(minutes=config.unpaid_transaction_timeout_minutes)

    async with session_maker() as session:
        result = await session.execute(
            select(Transaction).where(
                Transaction.status == TransactionStatus.ESCROW,
                Transaction.paid_at.is_(None),
                Transaction.created_at < cutoff,
            )
        )
        expired: List[Transaction] = result.scalars().all()

        for transaction in expired:
            transaction.status = TransactionStatus.CANCELLED
            transaction.cancelled_at = now
            session.add(transaction)
            session.add(
                TransactionEvent(
                    transaction_id=transaction.id,
                    event_type=TransactionEventType.PAYMENT_EXPIRED,
                    notes=f"No payment within {config.unpaid_transaction_timeout_minutes} minutes",
                    created_at=now,
                )
            )

        await session.commit()

    if expired:
        logger.info(
            "Expired %s unpaid transactions: %s",
            len(expired),
            [transaction.id for transaction in expired],
        )
    return len(expired)
