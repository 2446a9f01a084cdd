from django.apps import AppConfig


class ConsistencyConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.consistency"
    label = "consistency"

    def ready(self) -> None:
        from modules.consistency.handlers import notify_customer_on_cancellation
        from modules.orders.events import OrderCancelled
        from shared.infrastructure.bus import event_bus

        event_bus.subscribe(OrderCancelled, notify_customer_on_cancellation)
