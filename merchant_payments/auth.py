from fastapi import Header, HTTPException
from jose import jwt

from merchant_payments.config import jwt_secret


def current_merchant_id(authorization: str = Header(...)) -> str:
    """Resolve the calling merchant from a bearer JWT (``sub`` claim)."""
    try:
        scheme, token = authorization.split()
        if scheme.lower() != "bearer":
            raise ValueError("unsupported auth scheme")
        claims = jwt.decode(token, jwt_secret(), algorithms=["HS256"])
        merchant_id = claims.get("sub")
        if not merchant_id:
            raise ValueError("token has no subject")
        return str(merchant_id)
    except Exception:
        raise HTTPException(status_code=401, detail="Invalid or missing token")
