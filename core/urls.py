"""
URL configuration for core project.

The `urlpatterns` list routes URLs to views. For more information please see:
    https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""
from django.contrib import admin
from django.urls import path, include
from core.views import HealthView

urlpatterns = [
    path('admin/', admin.site.urls),
    path('health', HealthView.as_view(), name='health'),
    path("api/v1/auth/", include("config.users.urls")),
    path("api/v1/", include("apps.deposits.urls")),
    path("api/v1/", include("apps.auctions.urls")),
]
