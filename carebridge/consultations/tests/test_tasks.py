from decimal import Decimal

import pytest

from carebridge.consultations.models import ConsultationSession
from carebridge.consultations.tasks import settle_consultation_payment
from carebridge.wallets.models import Wallet
from tests.factories import create_session
from tests.factories import create_wallet


@pytest.mark.django_db
def test_settle_task_runs_settlement(patient, physician):
    create_wallet(patient, "100.00")
    create_wallet(physician, "0.00")
    session = create_session(patient, physician, fee="25.00")
    ConsultationSession.objects.filter(pk=session.pk).update(
        status=ConsultationSession.Status.COMPLETED,
    )

    result = settle_consultation_payment.delay(str(session.pk))

    assert result.get()["status"] == "paid"
    session.refresh_from_db()
    assert session.payment_status == ConsultationSession.PaymentStatus.PAID
    assert Wallet.objects.get(user=patient).balance == Decimal("75.00")
