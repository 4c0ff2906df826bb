"""
Outbound delivery notifications

Messages are posted as template requests to the messaging gateway at
NOTIFICATION_URL. Dispatch runs after the transition has committed, so a
failure here is logged and never reaches the caller.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

import httpx

from deliverylink.config import settings
from deliverylink.models.order import Order, OrderStatus

logger = logging.getLogger(__name__)

TRACKING_TEMPLATE = "deliverytracking"
ISSUE_TEMPLATE = "deliveryissue"

STATUS_PHRASES = {
    OrderStatus.CONFIRMED: "order confirmed",
    OrderStatus.ASSIGNED: "driver assigned",
    OrderStatus.PICKED_UP: "on the way",
    OrderStatus.IN_TRANSIT: "arriving soon",
    OrderStatus.DELIVERED: "successfully delivered",
    OrderStatus.CANCELLED: "order cancelled",
}

ISSUE_PHRASES = {
    "address_not_found": "trouble locating address",
    "recipient_unavailable": "recipient unavailable",
    "package_damaged": "package issue",
    "access_denied": "access issue",
    "weather_delay": "weather delay",
    "vehicle_issue": "vehicle issue",
    "other": "delivery issue",
}


def normalize_phone(phone: str, country_code: Optional[str] = None) -> str:
    """Normalise a local or international number to country-code digits, no '+'"""
    country_code = country_code or settings.DEFAULT_COUNTRY_CODE
    cleaned = re.sub(r"[\s()\-]", "", phone or "")

    if cleaned.startswith("+"):
        return cleaned[1:]
    if cleaned.startswith(country_code):
        return cleaned
    if cleaned.startswith("0"):
        return country_code + cleaned[1:]
    if cleaned.startswith(("7", "1")):
        return country_code + cleaned
    return cleaned


def tracking_url(order: Order) -> str:
    return f"{settings.APP_URL.rstrip('/')}/track/{order.id}"


@dataclass
class Notification:
    """A template message for one recipient"""
    to: str
    template_name: str
    parameters: List[str] = field(default_factory=list)

    def payload(self) -> dict:
        return {
            "to": normalize_phone(self.to),
            "templateName": self.template_name,
            "parameters": [{"type": "text", "text": str(value)} for value in self.parameters],
        }


def delivery_notification(order: Order, status: Optional[str] = None, phrase: Optional[str] = None) -> Notification:
    """Tracking update for the recipient at the dropoff"""
    status = status or order.status
    return Notification(
        to=order.dropoff_contact_phone,
        template_name=TRACKING_TEMPLATE,
        parameters=[
            order.dropoff_contact_name,
            status,
            phrase or STATUS_PHRASES.get(status, status.replace("_", " ")),
            order.route_summary,
            tracking_url(order),
        ],
    )


def otp_notification(order: Order, code: str) -> Notification:
    return Notification(
        to=order.dropoff_contact_phone,
        template_name=TRACKING_TEMPLATE,
        parameters=[
            order.dropoff_contact_name,
            "arriving_soon",
            "awaiting otp",
            f"Your OTP is {code}, Kindly give this to the driver",
            code,
        ],
    )


def issue_notification(order: Order, issue_type: str, description: str) -> Notification:
    return Notification(
        to=order.dropoff_contact_phone,
        template_name=ISSUE_TEMPLATE,
        parameters=[
            order.dropoff_contact_name,
            order.order_number,
            ISSUE_PHRASES.get(issue_type, ISSUE_PHRASES["other"]),
            description,
            tracking_url(order),
        ],
    )


class NotificationDispatcher:
    """Posts notifications to the messaging gateway"""

    def __init__(self, base_url: str, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url
        self.timeout = timeout
        self.transport = transport

    async def dispatch(self, notification: Optional[Notification]) -> bool:
        """Send one notification; returns True when the gateway accepted it"""
        if notification is None:
            return False

        if not self.base_url:
            logger.info(f"Notification URL not configured, skipping '{notification.template_name}' message")
            return False

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.base_url, json=notification.payload())
        except httpx.HTTPError as e:
            logger.error(f"Failed to send '{notification.template_name}' notification: {e}")
            return False

        if response.is_success:
            logger.info(f"Sent '{notification.template_name}' notification")
            return True

        logger.error(
            f"Notification gateway rejected '{notification.template_name}' "
            f"with {response.status_code}: {response.text}"
        )
        return False


notification_dispatcher = NotificationDispatcher(
    settings.NOTIFICATION_URL,
    timeout=settings.NOTIFICATION_TIMEOUT_SECONDS,
)
