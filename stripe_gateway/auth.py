import logging
import os
from pathlib import Path
from dotenv import load_dotenv
from fastapi import Header, HTTPException
from jose import JWTError, jwt

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

logger = logging.getLogger(__name__)


def verify_token(authorization: str = Header(...)):
    """Require a bearer JWT signed with JWT_SECRET from the host system."""
    try:
        scheme, token = authorization.split()
        if scheme.lower() != "bearer":
            raise ValueError("Unsupported authorization scheme")
        return jwt.decode(token, os.getenv("JWT_SECRET"), algorithms=["HS256"])
    except (ValueError, JWTError) as e:
        logger.info("Rejected request token: %s", e)
        raise HTTPException(status_code=401, detail="Invalid or missing token")
