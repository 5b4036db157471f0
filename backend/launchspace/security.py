from __future__ import annotations
import os
from datetime import datetime, timedelta, timezone
from typing import Any
import jwt
from launchspace.config import settings

JWT_ALG = "HS256"
ACCESS_TTL_MIN = int(os.getenv("ACCESS_TTL_MIN", "15"))

# Tokens are issued by the external auth provider; make_access_token exists for
# service-to-service calls and tests.
def make_access_token(sub: str, ttl_min: int = ACCESS_TTL_MIN) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": sub,
        "type": "access",
        "iat": now.timestamp(),
        "exp": int((now + timedelta(minutes=ttl_min)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALG)

def decode_token(token: str) -> dict[str, Any]:
    return jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALG])
