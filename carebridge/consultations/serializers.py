from rest_framework import serializers

from carebridge.consultations.models import ConsultationRoom
from carebridge.consultations.models import ConsultationSession


class ConsultationSessionSerializer(serializers.ModelSerializer):
    patientId = serializers.IntegerField(source="patient_id", read_only=True)  # noqa: N815
    physicianId = serializers.IntegerField(source="physician_id", read_only=True)  # noqa: N815
    scheduledFor = serializers.DateTimeField(source="scheduled_for", read_only=True)  # noqa: N815
    startedAt = serializers.DateTimeField(source="started_at", read_only=True)  # noqa: N815
    endedAt = serializers.DateTimeField(source="ended_at", read_only=True)  # noqa: N815
    durationMinutes = serializers.IntegerField(  # noqa: N815
        source="duration_minutes",
        read_only=True,
    )
    paymentStatus = serializers.CharField(source="payment_status", read_only=True)  # noqa: N815
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)  # noqa: N815

    class Meta:
        model = ConsultationSession
        fields = (
            "id",
            "patientId",
            "physicianId",
            "status",
            "scheduledFor",
            "startedAt",
            "endedAt",
            "durationMinutes",
            "fee",
            "paymentStatus",
            "createdAt",
        )


class ConsultationRoomSerializer(serializers.ModelSerializer):
    patientJoined = serializers.BooleanField(source="patient_joined", read_only=True)  # noqa: N815
    physicianJoined = serializers.BooleanField(  # noqa: N815
        source="physician_joined",
        read_only=True,
    )
    roomStatus = serializers.CharField(source="room_status", read_only=True)  # noqa: N815

    class Meta:
        model = ConsultationRoom
        fields = ("patientJoined", "physicianJoined", "roomStatus")
