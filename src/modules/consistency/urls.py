"""Consistency URL configuration."""

from __future__ import annotations

from django.urls import path

from modules.consistency.views import AuditView, SweepView

urlpatterns = [
    path("consistency/audit/", AuditView.as_view(), name="consistency-audit"),
    path("consistency/sweep/", SweepView.as_view(), name="consistency-sweep"),
]
