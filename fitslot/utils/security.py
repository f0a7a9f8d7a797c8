from datetime import datetime, timedelta
from typing import Optional
from jose import jwt, JWTError
from config.config import Config

ALGORITHM = "HS256"


def generate_token(data: dict, expires_delta: timedelta = None, secret_key: str = None) -> str:
    """Generate JWT token"""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=Config.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, secret_key or Config.SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str, secret_key: str = None) -> Optional[dict]:
    """Verify and decode JWT token"""
    try:
        return jwt.decode(token, secret_key or Config.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
