from django.conf import settings
from rest_framework.routers import DefaultRouter
from rest_framework.routers import SimpleRouter

from carebridge.notifications.api.views import NotificationViewSet
from carebridge.users.api.views import UserViewSet

router = DefaultRouter() if settings.DEBUG else SimpleRouter()

router.register("users", UserViewSet)
router.register("notifications", NotificationViewSet, basename="notifications")


app_name = "api"
urlpatterns = router.urls
