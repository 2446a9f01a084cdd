"""Order API views.

Exposes checkout and order status management via HTTP using a DRF
ViewSet.  Domain exceptions are caught and translated into HTTP status
codes here; services never know about HTTP.
"""

from __future__ import annotations

from uuid import UUID

from rest_framework import status
from rest_framework.decorators import action
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import ViewSet

from modules.consistency.exceptions import (
    DataInvariantViolation,
    InvalidTransition,
    TerminalState,
)
from modules.inventory.exceptions import InsufficientStock, VariantNotFound
from modules.orders.constants import OrderStatus
from modules.orders.dtos import CreateOrderDTO, CreateOrderItemDTO
from modules.orders.exceptions import OrderNotFound
from modules.orders.serializers import (
    CheckoutSerializer,
    OrderSerializer,
    StatusUpdateSerializer,
)
from modules.orders.services import build_checkout_service, build_order_service


def _actor_for(request: Request) -> str:
    return f"user:{request.user.pk}"


class OrderViewSet(ViewSet):
    """Checkout, retrieval and status changes of orders."""

    def get_throttles(self) -> list[BaseThrottle]:
        self.throttle_scope = "order_creation" if self.action == "create" else None
        return super().get_throttles()

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/orders/

        Supports idempotency via the ``Idempotency-Key`` header.
        """
        serializer = CheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        dto = CreateOrderDTO(
            customer_id=data["customer_id"],
            items=[
                CreateOrderItemDTO(variant_id=item["variant_id"], quantity=item["quantity"])
                for item in data["items"]
            ],
            method_id=data["method_id"],
            notes=data.get("notes", ""),
            idempotency_key=request.headers.get("Idempotency-Key"),
            actor=_actor_for(request),
        )

        try:
            order = build_checkout_service().place_order(dto)
        except VariantNotFound as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_404_NOT_FOUND)
        except InsufficientStock as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)
        except DataInvariantViolation as exc:
            return Response(
                {"detail": str(exc), "violation": exc.violation_type},
                status=status.HTTP_409_CONFLICT,
            )

        order = build_order_service().get_order(order.id)
        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)

    # ------------------------------------------------------------------
    # Retrieve
    # ------------------------------------------------------------------

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        try:
            order = build_order_service().get_order(pk)
        except OrderNotFound:
            return Response({"detail": "Order not found."}, status=status.HTTP_404_NOT_FOUND)
        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Status changes
    # ------------------------------------------------------------------

    def partial_update(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/orders/{pk}/  body: ``{"status": ..., "notes": ...}``"""
        serializer = StatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return self._change_status(
            request,
            pk,
            serializer.validated_data["status"],
            serializer.validated_data["notes"],
        )

    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/cancel/

        Cancels an order and releases its reserved stock.
        """
        return self._change_status(
            request, pk, OrderStatus.CANCELLED, request.data.get("notes", "")
        )

    def _change_status(
        self, request: Request, pk: str | None, new_status: str, notes: str
    ) -> Response:
        try:
            order_id = UUID(str(pk))
        except ValueError:
            return Response(
                {"detail": "Invalid order ID format."},
                status=status.HTTP_400_BAD_REQUEST,
            )

        try:
            order = build_order_service().update_status(
                order_id, new_status, actor=_actor_for(request), notes=notes
            )
        except OrderNotFound:
            return Response({"detail": "Order not found."}, status=status.HTTP_404_NOT_FOUND)
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
        return Response(OrderSerializer(order).data)
