"""Payment API views.

Payment confirmations arrive here (typically from a gateway callback
relayed by staff tooling).  Approving, rejecting or cancelling a payment
also moves its order; see ``PaymentService.update_status``.
"""

from __future__ import annotations

from uuid import UUID

from rest_framework import status
from rest_framework.permissions import IsAdminUser
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.viewsets import ViewSet

from modules.consistency.exceptions import InvalidTransition, TerminalState
from modules.payments.exceptions import PaymentNotFound
from modules.payments.repositories import PaymentDjangoRepository
from modules.payments.serializers import PaymentSerializer, PaymentStatusUpdateSerializer
from modules.payments.services import build_payment_service


class PaymentViewSet(ViewSet):
    """Retrieve payments and drive their status."""

    permission_classes = [IsAdminUser]

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/payments/{pk}/"""
        payment = PaymentDjangoRepository().get_by_id(pk)
        if payment is None:
            return Response({"detail": "Payment not found."}, status=status.HTTP_404_NOT_FOUND)
        return Response(PaymentSerializer(payment).data)

    def partial_update(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/payments/{pk}/  body: ``{"status": "approved"}``"""
        serializer = PaymentStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            payment_id = UUID(str(pk))
        except ValueError:
            return Response(
                {"detail": "Invalid payment ID format."},
                status=status.HTTP_400_BAD_REQUEST,
            )

        try:
            payment = build_payment_service().update_status(
                payment_id,
                serializer.validated_data["status"],
                actor=f"staff:{request.user.pk}",
                notes=serializer.validated_data["notes"],
            )
        except PaymentNotFound:
            return Response({"detail": "Payment not found."}, status=status.HTTP_404_NOT_FOUND)
        except TerminalState as exc:
            return Response(
                {"detail": str(exc), "code": "terminal_state"},
                status=status.HTTP_409_CONFLICT,
            )
        except InvalidTransition as exc:
            return Response(
                {"detail": str(exc), "code": "invalid_transition"},
                status=status.HTTP_400_BAD_REQUEST,
            )
        return Response(PaymentSerializer(payment).data)
