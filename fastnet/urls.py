"""
URL configuration for FASTNET project
"""

from django.contrib import admin
from django.urls import path, include
from django.http import HttpResponse


def empty_favicon(_request):
    # Captive portal browsers request this constantly
    return HttpResponse(status=204)


urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/", include("billing.urls")),
    path("favicon.ico", empty_favicon),
]
