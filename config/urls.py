"""
URL configuration for the promotions service.
The engine is consumed in-process and through the resolve_promotions command; no HTTP routes are exposed.
"""

from django.urls import URLPattern, URLResolver

urlpatterns: list[URLPattern | URLResolver] = []
