from django.contrib import admin
from django.urls import include, path
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from audit.api import AuditEntryViewSet
from bookings.api import BookingViewSet
from campaigns.api import CampaignViewSet
from disputes.api import DisputeViewSet
from payments.api import CampaignPaymentListView, CampaignPayoutListView, PayoutProcessView
from reports.api import FinancialSummaryView
from trips.api import TripViewSet

router = DefaultRouter()
router.register(r"campaigns", CampaignViewSet, basename="campaign")
router.register(r"trips", TripViewSet, basename="trip")
router.register(r"bookings", BookingViewSet, basename="booking")
router.register(r"disputes", DisputeViewSet, basename="dispute")
router.register(r"audit-entries", AuditEntryViewSet, basename="audit-entry")

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/auth/token/", TokenObtainPairView.as_view(), name="auth-token"),
    path("api/auth/refresh/", TokenRefreshView.as_view(), name="auth-refresh"),
    path("api/", include(router.urls)),
    path(
        "api/campaigns/<int:campaign_id>/financial-summary/",
        FinancialSummaryView.as_view(),
        name="campaign-financial-summary",
    ),
    path(
        "api/campaigns/<int:campaign_id>/payments/",
        CampaignPaymentListView.as_view(),
        name="campaign-payments",
    ),
    path(
        "api/campaigns/<int:campaign_id>/payouts/",
        CampaignPayoutListView.as_view(),
        name="campaign-payouts",
    ),
    path(
        "api/payouts/<int:payout_id>/process/",
        PayoutProcessView.as_view(),
        name="payout-process",
    ),
]
