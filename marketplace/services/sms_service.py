import logging

import httpx

from marketplace.config import settings

logger = logging.getLogger(__name__)

OTP_MESSAGE_TEMPLATES = {
    "registration": "Your verification code is {code}",
    "login": "Your login code is {code}",
    "password_reset": "Your password reset code is {code}",
    "phone_verification": "Your phone verification code is {code}",
}


def _mask(phone_number: str) -> str:
    return f"***{phone_number[-4:]}" if len(phone_number) > 4 else "***"


def send_otp(phone_number: str, code: str, purpose: str = "registration") -> bool:
    """Deliver an OTP over SMS. Never raises; returns whether a gateway accepted it."""
    if not settings.SMS_API_TOKEN:
        logger.info("SMS gateway not configured; OTP for %s (%s) not dispatched", _mask(phone_number), purpose)
        return False

    body = OTP_MESSAGE_TEMPLATES.get(purpose, OTP_MESSAGE_TEMPLATES["registration"]).format(code=code)
    payload = {
        "sender": settings.SMS_SENDER,
        "body": body,
        "recipients": [phone_number.lstrip("+")],
    }
    try:
        with httpx.Client(timeout=10) as client:
            response = client.post(
                settings.SMS_API_URL,
                json=payload,
                headers={"Authorization": f"Bearer {settings.SMS_API_TOKEN}"},
            )
            response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning("SMS dispatch to %s failed: %s", _mask(phone_number), exc)
        return False

    logger.info("OTP SMS dispatched to %s (%s)", _mask(phone_number), purpose)
    return True
