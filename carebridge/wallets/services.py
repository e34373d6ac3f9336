from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from django.db import transaction

from carebridge.consultations.models import ConsultationSession
from carebridge.notifications.models import Notification
from carebridge.notifications.services import notify
from carebridge.wallets.models import Wallet
from carebridge.wallets.models import WalletTransaction

logger = logging.getLogger(__name__)

PaymentStatus = ConsultationSession.PaymentStatus


class SettlementError(Exception):
    """Consultation payment could not be settled."""


def settle_consultation(session_id) -> dict[str, Any]:
    """Move the consultation fee from the patient's wallet to the physician's.

    Runs in one transaction with both wallets locked. Already-paid sessions
    are left untouched. On failure the session is marked ``failed`` after the
    transaction rolled back and ``SettlementError`` is re-raised so the caller
    can retry.
    """

    try:
        return _settle(session_id)
    except SettlementError:
        ConsultationSession.objects.filter(pk=session_id).exclude(
            payment_status=PaymentStatus.PAID,
        ).update(payment_status=PaymentStatus.FAILED)
        raise


def _apply(wallet: Wallet, kind: str, amount: Decimal, session_id: str) -> None:
    if kind == WalletTransaction.Type.DEBIT:
        wallet.balance -= amount
        description = f"Consultation payment {session_id}"
    else:
        wallet.balance += amount
        description = f"Consultation earnings {session_id}"
    wallet.save(update_fields=["balance", "updated_at"])
    WalletTransaction.objects.create(
        wallet=wallet,
        transaction_type=kind,
        amount=amount,
        balance_after=wallet.balance,
        description=description,
        reference_id=session_id,
    )


@transaction.atomic
def _settle(session_id) -> dict[str, Any]:
    session = ConsultationSession.objects.select_for_update().filter(pk=session_id).first()
    if session is None:
        msg = f"Consultation {session_id} does not exist"
        raise SettlementError(msg)

    reference = str(session.pk)
    if session.payment_status == PaymentStatus.PAID:
        logger.info("Consultation %s already settled", reference)
        return {"sessionId": reference, "status": "already_paid"}
    if session.status != ConsultationSession.Status.COMPLETED:
        msg = f"Consultation {reference} is not completed"
        raise SettlementError(msg)

    fee = Decimal(session.fee or 0)
    if fee <= 0:
        session.payment_status = PaymentStatus.PAID
        session.save(update_fields=["payment_status", "updated_at"])
        return {"sessionId": reference, "status": "paid", "amount": "0.00"}

    # Lock in primary-key order so concurrent settlements cannot deadlock
    wallets = {
        w.user_id: w
        for w in Wallet.objects.select_for_update()
        .filter(user_id__in=[session.patient_id, session.physician_id])
        .order_by("pk")
    }
    patient_wallet = wallets.get(session.patient_id)
    physician_wallet = wallets.get(session.physician_id)
    if patient_wallet is None or physician_wallet is None:
        msg = f"Wallet missing for consultation {reference}"
        raise SettlementError(msg)
    if patient_wallet.balance < fee:
        msg = f"Insufficient wallet balance for consultation {reference}"
        raise SettlementError(msg)

    _apply(patient_wallet, WalletTransaction.Type.DEBIT, fee, reference)
    _apply(physician_wallet, WalletTransaction.Type.CREDIT, fee, reference)

    session.payment_status = PaymentStatus.PAID
    session.save(update_fields=["payment_status", "updated_at"])

    amount = f"{fee:.2f}"
    notify(
        session.patient_id,
        title="Consultation payment",
        message=f"{amount} {patient_wallet.currency} was charged for your consultation.",
        notification_type=Notification.Type.PAYMENT,
        data={"sessionId": reference, "amount": amount},
    )
    notify(
        session.physician_id,
        title="Consultation earnings",
        message=f"{amount} {physician_wallet.currency} was credited for your consultation.",
        notification_type=Notification.Type.PAYMENT,
        data={"sessionId": reference, "amount": amount},
    )
    logger.info("Consultation %s settled for %s", reference, amount)
    return {"sessionId": reference, "status": "paid", "amount": amount}
