from __future__ import annotations

from django.contrib.auth import get_user_model
from drf_spectacular.utils import extend_schema
from drf_spectacular.utils import extend_schema_view
from rest_framework import mixins
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.permissions import IsAdminUser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from carebridge.notifications import services
from carebridge.notifications.models import Notification
from carebridge.realtime.events.notifications import build_role_broadcast_payload
from carebridge.realtime.events.notifications import publish_to_role

from .serializers import NotificationCreateSerializer
from .serializers import NotificationSerializer

User = get_user_model()


@extend_schema_view(
    list=extend_schema(tags=["Notifications"]),
    create=extend_schema(tags=["Notifications"]),
    destroy=extend_schema(tags=["Notifications"]),
    mark_read=extend_schema(tags=["Notifications"]),
    mark_all_read=extend_schema(tags=["Notifications"]),
)
class NotificationViewSet(
    mixins.ListModelMixin,
    mixins.DestroyModelMixin,
    GenericViewSet,
):
    """Notifications for the authenticated user.

    - list: shows request.user's notifications
    - create: creates notifications for a user or a role (staff only)
    - destroy: deletes a notification (recipient only)
    - mark_read / mark_all_read
    """

    permission_classes = [IsAuthenticated]
    serializer_class = NotificationSerializer

    def get_queryset(self):
        return Notification.objects.filter(recipient=self.request.user)

    def get_permissions(self):
        if self.action == "create":
            return [IsAuthenticated(), IsAdminUser()]
        return [p() for p in self.permission_classes]

    def create(self, request, *args, **kwargs):
        serializer = NotificationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        fields = {
            "title": data["title"],
            "message": data["message"],
            "notification_type": data["notification_type"],
            "data": data.get("data") or {},
        }

        if "recipient_id" in data:
            if not User.objects.filter(pk=data["recipient_id"]).exists():
                return Response(
                    {"detail": "Unknown recipient_id."},
                    status=status.HTTP_400_BAD_REQUEST,
                )
            notification = services.notify(data["recipient_id"], **fields)
            out = NotificationSerializer(notification, context={"request": request})
            return Response(out.data, status=status.HTTP_201_CREATED)

        created = services.notify_role(data["role"], **fields)
        if not created:
            return Response(
                {"detail": "No recipients resolved from payload."},
                status=status.HTTP_400_BAD_REQUEST,
            )
        publish_to_role(
            data["role"],
            "notification:new",
            build_role_broadcast_payload(data["role"], created[0]),
        )
        out_many = NotificationSerializer(
            created, many=True, context={"request": request}
        ).data
        return Response(out_many, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="mark-read")
    def mark_read(self, request, pk=None):
        notification = self.get_object()
        if not notification.is_read:
            notification.is_read = True
            notification.save(update_fields=["is_read"])
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=False, methods=["post"], url_path="mark-all-read")
    def mark_all_read(self, request):
        services.mark_read(request.user.pk, mark_all=True)
        return Response(status=status.HTTP_204_NO_CONTENT)
