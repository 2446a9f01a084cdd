"""Payment DRF serializers."""

from __future__ import annotations

from rest_framework import serializers

from modules.payments.models import Payment


class PaymentStatusUpdateSerializer(serializers.Serializer):
    """Requested payment status; the graph is checked by the service."""

    status = serializers.CharField(max_length=32)
    notes = serializers.CharField(required=False, default="", allow_blank=True)


class PaymentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payment
        fields = [
            "id",
            "order_id",
            "method_id",
            "amount",
            "status",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields
