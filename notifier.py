"""
Nest Trend Monitor - Notification System

Sends alerts via Pushover (or other providers).
"""

import logging
from enum import Enum

import requests

import config

logger = logging.getLogger(__name__)

PUSHOVER_URL = "https://api.pushover.net/1/messages.json"

# Used when a message is not about a particular thermostat
SYSTEM_DEVICE = "N/A"


class Severity(Enum):
    """Alert severity, valued as the Pushover priority it maps to."""
    INFORMATIONAL = 0
    ELEVATED = 2  # emergency: repeats until acknowledged


class PushoverNotifier:
    """Sends notifications via the Pushover message API."""

    def __init__(self, user: str = None, token: str = None, session: requests.Session = None):
        self.user = user or config.PUSHOVER_USER
        self.token = token or config.PUSHOVER_TOKEN
        self.title = config.PUSHOVER_TITLE
        self._session = session or requests.Session()

        if not self.user or not self.token:
            logger.warning("Pushover not configured - notifications disabled")

    @property
    def is_configured(self) -> bool:
        return bool(self.user and self.token)

    def send(self, device_id: str, message: str, severity: Severity = Severity.INFORMATIONAL) -> bool:
        """
        Send a notification via Pushover.

        Args:
            device_id: Thermostat the message is about, or SYSTEM_DEVICE
            message: The message to send
            severity: Mapped to the Pushover priority

        Returns:
            True if sent successfully
        """
        if not self.is_configured:
            logger.debug("Pushover not configured, skipping notification")
            return False

        payload = {
            "token": self.token,
            "user": self.user,
            "title": self.title,
            "message": f"{device_id}: {message}",
            "priority": str(severity.value),
            "retry": str(config.PUSHOVER_RETRY_SECONDS),
            "expire": str(config.PUSHOVER_EXPIRE_SECONDS),
        }

        try:
            response = self._session.post(PUSHOVER_URL, data=payload, timeout=config.HTTP_TIMEOUT_SECONDS)
            response.raise_for_status()
            logger.info(f"Pushover notification sent for {device_id} ({severity.name.lower()})")
            return True
        except requests.RequestException as e:
            logger.error(f"Failed to send Pushover notification: {e}")
            return False


class NotificationManager:
    """
    Manages notifications across multiple providers.
    Currently supports Pushover, extensible to others.

    Delivery is best-effort: a failing provider is logged and never raises.
    """

    def __init__(self, providers: list = None):
        if providers is None:
            providers = []
            if config.PUSHOVER_ENABLED:
                pushover = PushoverNotifier()
                if pushover.is_configured:
                    providers.append(pushover)
                    logger.info("Pushover notifications enabled")
        self._providers = providers

        if not self._providers:
            logger.warning("No notification providers configured")

    def notify(self, device_id: str, message: str, severity: Severity = Severity.INFORMATIONAL) -> bool:
        """Send a notification through every provider."""
        log = logger.warning if severity is Severity.ELEVATED else logger.info
        log(f"Notify [{severity.name.lower()}] {device_id}: {message}")

        success = False
        for provider in self._providers:
            try:
                if provider.send(device_id, message, severity):
                    success = True
            except Exception as e:
                logger.error(f"Notification provider {type(provider).__name__} failed: {e}")
        return success

    def notify_error(self, error: str) -> bool:
        """Send a system-level error notification."""
        return self.notify(SYSTEM_DEVICE, error, Severity.INFORMATIONAL)
