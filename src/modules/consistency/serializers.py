"""Input serializers of the operator endpoints.

Responses are produced from the pydantic report DTOs directly
(``model_dump(mode="json")``).
"""

from __future__ import annotations

from rest_framework import serializers


class AuditRequestSerializer(serializers.Serializer):
    auto_fix = serializers.BooleanField(required=False, default=False)


class SweepRequestSerializer(serializers.Serializer):
    ttl_hours = serializers.FloatField(required=False, min_value=0.001)
