"""
auth/tokens.py -- Recall token encoding for session and cookie channels.

A recall token carries the (user id, persist code) pair that AuthSession.check()
needs to restore a login. The core treats the token as an opaque string; this
module is the reference encoding.

Security design decisions:
  JWT: python-jose with HS256, signed with the configured secret key. The
       signature stops a client from swapping in another user's id. The
       persist code inside is what actually authenticates the recall -- it is
       re-digested and compared against the stored digest, and rotating it
       (logout, new login) invalidates every outstanding token.

  Expiry: session tokens carry an "exp" claim when the channel has a lifetime.
       "Forever" cookie tokens omit it; their validity ends when the persist
       code is rotated.

Decoding returns None on any failure -- the caller treats that exactly like
an absent token.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

logger = logging.getLogger("gatehouse.auth.tokens")

_ALGORITHM = "HS256"


def encode_recall_token(user_id: int, persist_code: str, secret_key: str, expire_minutes: int | None = None) -> str:
    """Encode a signed recall token for user_id and its raw persist code."""
    payload: dict = {"sub": str(user_id), "code": persist_code}
    if expire_minutes:
        payload["exp"] = datetime.now(timezone.utc) + timedelta(minutes=expire_minutes)
    return jwt.encode(payload, secret_key, algorithm=_ALGORITHM)


def decode_recall_token(token: str, secret_key: str) -> tuple[int, str] | None:
    """Return (user_id, persist_code) from a valid token, or None."""
    if not token:
        return None
    try:
        payload = jwt.decode(token, secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        logger.debug("Rejected recall token: bad signature, format or expiry")
        return None
    sub = payload.get("sub")
    code = payload.get("code")
    if not isinstance(sub, str) or not sub.isdigit() or not isinstance(code, str) or not code:
        return None
    return int(sub), code
