"""Multi-channel notification delivery.

Usage:
    from notification_service.features.notifications import (
        NotificationDispatcher,
        SendNotificationRequest,
    )

    result = await dispatcher.send(
        session,
        SendNotificationRequest(
            user_id="user-1",
            type="order_shipped",
            message="Your order is on its way",
            channels=["email", "in_app"],
            data={"email": "user@example.com"},
        ),
    )
"""

from __future__ import annotations

from .delivery import BackoffPolicy, DeliveryStateTracker
from .dispatcher import NotificationDispatcher
from .enums import (
    AnalyticsEvent,
    Channel,
    DeliveryStatus,
    ErrorKind,
    NotificationStatus,
    Priority,
)
from .exceptions import (
    InvalidDeliveryTransitionError,
    InvalidNotificationError,
    NoProviderAvailableError,
    NotificationError,
    ProviderConfigurationError,
    TemplateNotFoundError,
    TemplateRenderError,
)
from .models import (
    Notification,
    NotificationAnalytics,
    NotificationDelivery,
    NotificationTemplate,
)
from .repository import (
    NotificationAnalyticsRepository,
    NotificationDeliveryRepository,
    NotificationRepository,
    NotificationTemplateRepository,
)
from .schemas import ChannelResult, SendNotificationRequest, SendNotificationResult

__all__ = [
    "AnalyticsEvent",
    "BackoffPolicy",
    "Channel",
    "ChannelResult",
    "DeliveryStateTracker",
    "DeliveryStatus",
    "ErrorKind",
    "InvalidDeliveryTransitionError",
    "InvalidNotificationError",
    "NoProviderAvailableError",
    "Notification",
    "NotificationAnalytics",
    "NotificationAnalyticsRepository",
    "NotificationDelivery",
    "NotificationDeliveryRepository",
    "NotificationDispatcher",
    "NotificationError",
    "NotificationRepository",
    "NotificationStatus",
    "NotificationTemplate",
    "NotificationTemplateRepository",
    "Priority",
    "ProviderConfigurationError",
    "SendNotificationRequest",
    "SendNotificationResult",
    "TemplateNotFoundError",
    "TemplateRenderError",
]
