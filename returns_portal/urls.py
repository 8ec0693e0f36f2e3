"""
Returns Portal URL Configuration

URL Routing:
    /admin/            → Django admin panel (internal ops team)
    /api/v1/returns/   → Customer and administrative return APIs
    /api/schema/       → OpenAPI schema
    /api/docs/         → Swagger UI
"""

from django.contrib import admin
from django.urls import path, include
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/returns/', include('returns.urls')),
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),
    path('api/docs/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),
]
