"""
HMAC tokens for provider watch channels.

Google echoes the channel token back in ``X-Goog-Channel-Token`` on every
push; signing the channel id with ``WEBHOOK_CHANNEL_SECRET`` lets the webhook
reject forged pings. No secret configured means no token is issued or checked.
"""

import hashlib
import hmac

from gigsync.config import settings


def sign_channel(channel_id: str, secret: str | None = None) -> str | None:
    secret = secret if secret is not None else settings.WEBHOOK_CHANNEL_SECRET
    if not secret:
        return None
    return hmac.new(secret.encode("utf-8"), channel_id.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_channel(channel_id: str, token: str | None, secret: str | None = None) -> bool:
    expected = sign_channel(channel_id, secret)
    if expected is None:
        return True
    if not token:
        return False
    return hmac.compare_digest(expected, token)
