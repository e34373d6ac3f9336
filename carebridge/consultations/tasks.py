import logging

from celery import shared_task

from carebridge.wallets.services import SettlementError
from carebridge.wallets.services import settle_consultation

logger = logging.getLogger(__name__)


@shared_task(
    name="consultations.settle_payment",
    autoretry_for=(SettlementError,),
    retry_backoff=True,
    retry_backoff_max=600,
    max_retries=5,
)
def settle_consultation_payment(session_id: str) -> dict:
    """Settle a completed consultation, retrying with backoff on failure."""

    try:
        return settle_consultation(session_id)
    except SettlementError as exc:
        logger.warning("Settlement for consultation %s failed: %s", session_id, exc)
        raise
