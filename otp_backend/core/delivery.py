import asyncio
import logging
import aiohttp
from .config import settings
from .security import is_phone, mask_identity

logger = logging.getLogger(__name__)

BREVO_SEND_URL = "https://api.brevo.com/v3/smtp/email"


class DeliveryError(Exception):
    """Raised when a provider refuses or fails to accept a message."""


class OTPDelivery:
    """Sends plaintext codes to phones (SMS gateway) or email addresses (Brevo)."""

    def __init__(
        self,
        brevo_api_key: str | None = None,
        sms_api_url: str | None = None,
        sms_api_key: str | None = None,
        timeout: float = 10.0,
    ):
        self.brevo_api_key = settings.BREVO_API_KEY if brevo_api_key is None else brevo_api_key
        self.sms_api_url = settings.SMS_API_URL if sms_api_url is None else sms_api_url
        self.sms_api_key = settings.SMS_API_KEY if sms_api_key is None else sms_api_key
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    async def send(self, identity: str, otp_code: str, expiry_minutes: int):
        if is_phone(identity):
            await self._send_sms(identity, otp_code, expiry_minutes)
        else:
            await self._send_email(identity, otp_code, expiry_minutes)

    def _log_dev_code(self, identity: str, otp_code: str):
        if not settings.is_development:
            raise DeliveryError("No OTP delivery provider configured")
        logger.warning("[DEV MODE] OTP for %s: %s", identity, otp_code)

    async def _send_sms(self, phone: str, otp_code: str, expiry_minutes: int):
        if not self.sms_api_url:
            self._log_dev_code(phone, otp_code)
            return

        payload = {
            "to": phone,
            "from": settings.SMS_SENDER_ID,
            "message": f"Your verification code is {otp_code}. It expires in {expiry_minutes} minutes.",
        }
        headers = {"X-API-KEY": self.sms_api_key, "Content-Type": "application/json"}

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(self.sms_api_url, json=payload, headers=headers) as response:
                    body = await response.text()
                    if response.status not in (200, 201, 202):
                        raise DeliveryError(f"SMS gateway returned {response.status}: {body}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DeliveryError(f"SMS gateway unreachable: {e}") from e

        logger.info("OTP SMS sent to %s", mask_identity(phone))

    async def _send_email(self, to_email: str, otp_code: str, expiry_minutes: int):
        if not self.brevo_api_key:
            self._log_dev_code(to_email, otp_code)
            return

        html_body = f"""
    <!DOCTYPE html>
    <html>
    <head>
        <style>
            body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
            .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
            .otp-box {{ background: white; border: 2px dashed #667eea; padding: 20px; text-align: center; margin: 20px 0; border-radius: 8px; }}
            .otp-code {{ font-size: 32px; font-weight: bold; color: #667eea; letter-spacing: 5px; font-family: 'Courier New', monospace; }}
            .footer {{ text-align: center; color: #888; font-size: 12px; margin-top: 20px; }}
        </style>
    </head>
    <body>
        <div class="container">
            <p>Hello,</p>
            <p>Use the following One-Time Password to verify your account:</p>
            <div class="otp-box">
                <div class="otp-code">{otp_code}</div>
            </div>
            <p><strong>This code will expire in {expiry_minutes} minutes.</strong></p>
            <p>If you did not request this code, you can ignore this email.</p>
            <div class="footer">
                <p>{settings.EMAIL_FROM_NAME}</p>
            </div>
        </div>
    </body>
    </html>
    """

        text_body = f"""
Your verification code is: {otp_code}

This code will expire in {expiry_minutes} minutes.

If you did not request this, please ignore this email.

---
{settings.EMAIL_FROM_NAME}
    """

        headers = {
            "api-key": self.brevo_api_key,
            "Content-Type": "application/json"
        }
        payload = {
            "sender": {
                "name": settings.EMAIL_FROM_NAME,
                "email": settings.EMAIL_FROM_ADDRESS
            },
            "to": [{"email": to_email}],
            "subject": "Your verification code",
            "htmlContent": html_body,
            "textContent": text_body
        }

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(BREVO_SEND_URL, json=payload, headers=headers) as response:
                    try:
                        result = await response.json(content_type=None)
                    except ValueError:
                        result = {"body": await response.text()}
                    if response.status != 201:
                        raise DeliveryError(f"Brevo API error: {result}")
                    message_id = result.get("messageId", "unknown") if isinstance(result, dict) else "unknown"
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DeliveryError(f"Brevo API unreachable: {e}") from e

        logger.info("OTP email sent to %s, message_id=%s", mask_identity(to_email), message_id)
