"""Operator API of the consistency core.

Admin-only endpoints to run the auditor and the reservation reaper on
demand.  Both return the same records the periodic tasks log.
"""

from __future__ import annotations

from datetime import timedelta

import structlog
from rest_framework import status
from rest_framework.permissions import IsAdminUser
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from modules.consistency.auditor import build_consistency_auditor
from modules.consistency.reaper import build_reservation_reaper
from modules.consistency.serializers import AuditRequestSerializer, SweepRequestSerializer

logger = structlog.get_logger(__name__)


def _actor_for(request: Request) -> str:
    return f"staff:{request.user.pk}"


class AuditView(APIView):
    """GET runs a read-only audit; POST may also apply auto-fixes."""

    permission_classes = [IsAdminUser]

    def get(self, request: Request) -> Response:
        """GET /api/v1/consistency/audit/"""
        report = build_consistency_auditor().audit(auto_fix=False)
        return Response(self._render(report))

    def post(self, request: Request) -> Response:
        """POST /api/v1/consistency/audit/  body: ``{"auto_fix": true}``"""
        serializer = AuditRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        auto_fix = serializer.validated_data["auto_fix"]

        logger.info("consistency.audit_requested", actor=_actor_for(request), auto_fix=auto_fix)
        report = build_consistency_auditor().audit(auto_fix=auto_fix)
        return Response(self._render(report))

    @staticmethod
    def _render(report):
        payload = report.model_dump(mode="json")
        payload["summary"] = report.summary()
        return payload


class SweepView(APIView):
    """POST runs the reservation reaper once."""

    permission_classes = [IsAdminUser]

    def post(self, request: Request) -> Response:
        """POST /api/v1/consistency/sweep/  body: ``{"ttl_hours": 24}`` (optional)"""
        serializer = SweepRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        overrides = {}
        ttl_hours = serializer.validated_data.get("ttl_hours")
        if ttl_hours is not None:
            overrides["ttl"] = timedelta(hours=ttl_hours)

        logger.info("consistency.sweep_requested", actor=_actor_for(request))
        result = build_reservation_reaper(**overrides).sweep()
        return Response(result.model_dump(mode="json"), status=status.HTTP_200_OK)
