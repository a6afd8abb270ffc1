from django.contrib import admin
from django.urls import include, path

from . import views

urlpatterns = [
    path("", views.health_view, name="health"),
    path("verify-rut", views.verify_rut_view, name="verify_rut"),
    path("admin/", admin.site.urls),
    path("", include("payments.urls")),
]

handler404 = "legalup.views.error_404_view"
handler500 = "legalup.views.error_500_view"
