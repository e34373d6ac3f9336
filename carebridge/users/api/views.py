from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter
from drf_spectacular.utils import extend_schema
from drf_spectacular.utils import extend_schema_view
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.mixins import ListModelMixin
from rest_framework.mixins import RetrieveModelMixin
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from carebridge.users.models import User
from carebridge.users.models import UserProfile

from .serializers import UserSerializer


def can_see_directory(user) -> bool:
    if user.is_staff:
        return True
    profile = getattr(user, "profile", None)
    return profile is not None and profile.role in {
        UserProfile.Role.ADMIN,
        UserProfile.Role.AGENT,
    }


@extend_schema_view(
    list=extend_schema(
        tags=["Users"],
        parameters=[
            OpenApiParameter(
                "role",
                OpenApiTypes.STR,
                enum=UserProfile.Role.values,
                description="Only users holding this profile role.",
            ),
        ],
    ),
    retrieve=extend_schema(tags=["Users"]),
    me=extend_schema(tags=["Users"]),
)
class UserViewSet(RetrieveModelMixin, ListModelMixin, GenericViewSet):
    """User directory.

    Staff, admins and support agents see every user (agents need it to open
    support conversations); patients and physicians only see themselves.
    The directory is read-only.
    """

    serializer_class = UserSerializer
    queryset = User.objects.select_related("profile").order_by("pk")
    lookup_field = "username"
    pagination_class = None

    def get_queryset(self, *args, **kwargs):  # type: ignore[override]
        user = self.request.user
        if not can_see_directory(user):
            return self.queryset.filter(pk=user.pk)
        queryset = self.queryset.all()
        role = self.request.query_params.get("role")
        if role:
            queryset = queryset.filter(profile__role=role.upper())
        return queryset

    @action(detail=False)
    def me(self, request):
        serializer = UserSerializer(request.user, context={"request": request})
        return Response(status=status.HTTP_200_OK, data=serializer.data)
