"""
Real Push Service

Production implementation using:
- Firebase Cloud Messaging (web push to staff devices, one topic per restaurant)
- Twilio for SMS escalation of critical alerts

Both SDKs are blocking, so calls run in a worker thread.
"""

import asyncio
import logging
from typing import Optional

import firebase_admin
from firebase_admin import credentials as fb_credentials
from firebase_admin import exceptions as fb_exceptions
from firebase_admin import messaging
from twilio.base.exceptions import TwilioException
from twilio.rest import Client as TwilioClient

from app.core.config import get_settings
from app.services.notifications.base import (
    BasePushService,
    NotificationResult,
    PushPayload,
)

logger = logging.getLogger(__name__)

VIBRATE_PATTERN = [300, 100, 300, 100, 300]


class RealPushService(BasePushService):
    """Production push service using Firebase Cloud Messaging and Twilio."""

    def __init__(self):
        settings = get_settings()

        # Initialize Firebase
        self._firebase_app: Optional[firebase_admin.App] = None
        try:
            if settings.firebase_credentials_path:
                cred = fb_credentials.Certificate(settings.firebase_credentials_path)
                self._firebase_app = firebase_admin.initialize_app(cred)
            else:
                self._firebase_app = firebase_admin.initialize_app()
            logger.info("Firebase Admin SDK initialized")
        except (ValueError, IOError) as e:
            logger.warning(f"Firebase initialization failed: {e}. Push delivery disabled.")

        # Initialize Twilio
        if settings.twilio_account_sid and settings.twilio_auth_token:
            self.twilio_client = TwilioClient(
                settings.twilio_account_sid,
                settings.twilio_auth_token
            )
            self.twilio_from_number = settings.twilio_phone_number
        else:
            self.twilio_client = None
            logger.warning("Twilio credentials not configured")

        logger.info("RealPushService initialized")

    @property
    def provider_name(self) -> str:
        return "fcm"

    def _build_message(self, topic: str, payload: PushPayload) -> messaging.Message:
        # FCM data values must be strings
        data = {key: "" if value is None else str(value) for key, value in payload.data.items()}
        return messaging.Message(
            topic=topic,
            data=data,
            webpush=messaging.WebpushConfig(
                notification=messaging.WebpushNotification(
                    title=payload.title,
                    body=payload.body,
                    tag=payload.tag,
                    require_interaction=True,
                    vibrate=VIBRATE_PATTERN,
                    actions=[
                        messaging.WebpushNotificationAction(a.action, a.title)
                        for a in payload.actions
                    ],
                ),
                fcm_options=messaging.WebpushFCMOptions(link=data.get("url") or None),
            ),
        )

    async def send_push(self, topic: str, payload: PushPayload) -> NotificationResult:
        """Send a web push to every device subscribed to the topic."""
        if self._firebase_app is None:
            return NotificationResult(
                success=False,
                error_message="Firebase not configured",
                provider="fcm"
            )

        try:
            message = self._build_message(topic, payload)
            message_id = await asyncio.to_thread(messaging.send, message, app=self._firebase_app)

            logger.info(f"Push sent to {topic}: {message_id}")

            return NotificationResult(
                success=True,
                message_id=message_id,
                provider="fcm"
            )

        except (fb_exceptions.FirebaseError, ValueError) as e:
            logger.error(f"FCM error: {e}")
            return NotificationResult(
                success=False,
                error_message=str(e),
                provider="fcm"
            )

    async def send_sms(self, to_phone: str, message: str) -> NotificationResult:
        """Send SMS via Twilio."""
        if not self.twilio_client:
            return NotificationResult(
                success=False,
                error_message="Twilio not configured",
                provider="twilio"
            )

        try:
            result = await asyncio.to_thread(
                self.twilio_client.messages.create,
                body=message,
                from_=self.twilio_from_number,
                to=to_phone,
            )

            logger.info(f"SMS sent to {to_phone}: {result.sid}")

            return NotificationResult(
                success=True,
                message_id=result.sid,
                provider="twilio"
            )

        except TwilioException as e:
            logger.error(f"Twilio error: {e}")
            return NotificationResult(
                success=False,
                error_message=str(e),
                provider="twilio"
            )

    async def health_check(self) -> bool:
        """Push delivery is healthy when Firebase is initialized."""
        return self._firebase_app is not None
