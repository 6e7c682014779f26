import os
import logging

import jwt
from dotenv import load_dotenv
from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.utils.env_helper import env_float

load_dotenv()
logger = logging.getLogger(__name__)

security = HTTPBearer()

# Refetch interval for conversations, messages and unread counts (5 seconds)
DEFAULT_REFETCH_INTERVAL = 5.0


def decode_token(token: str) -> dict:
    """Decode a Supabase access token. Raises jwt.InvalidTokenError."""
    return jwt.decode(
        token,
        os.getenv("SUPABASE_JWT_SECRET"),
        algorithms=["HS256"],
        issuer=f"{os.getenv('PUBLIC_SUPABASE_URL')}/auth/v1",
        options={"verify_aud": False},
        leeway=60,
    )


def verify_token(credentials: HTTPAuthorizationCredentials = Depends(security)):
    token = credentials.credentials

    try:
        return decode_token(token)

    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")

    except jwt.InvalidTokenError as e:
        logger.warning(f"jwt_verification_failed error={e}")
        raise HTTPException(status_code=401, detail="Invalid token")


def get_current_user_id(user=Depends(verify_token)) -> str:
    user_id = user.get("sub")

    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid authentication")

    return str(user_id)


def get_refetch_interval() -> float:
    return env_float("CHAT_REFETCH_INTERVAL", DEFAULT_REFETCH_INTERVAL)
