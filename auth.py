# auth.py
from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
import models, database
from config import settings
from errors import Unauthorized

ACCESS = "access"
REFRESH = "refresh"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
# auto_error=False so the cookie fallback below gets a chance
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="api/auth/login", auto_error=False)

def verify_password(plain_password, hashed_password):
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password):
    return pwd_context.hash(password)

def _encode(user: models.User, token_type: str, expires: timedelta) -> str:
    to_encode = {
        "sub": user.email,
        "uid": user.id,
        "is_admin": bool(user.is_admin),
        "type": token_type,
        "exp": datetime.now(timezone.utc) + expires,
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

def create_access_token(user: models.User) -> str:
    return _encode(user, ACCESS, timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))

def create_refresh_token(user: models.User) -> str:
    return _encode(user, REFRESH, timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS))

def decode_token(token: str, expected_type: str = ACCESS) -> dict:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except ExpiredSignatureError:
        raise Unauthorized("Token expired")
    except JWTError:
        raise Unauthorized("Invalid token")
    if payload.get("type") != expected_type or payload.get("sub") is None:
        raise Unauthorized("Invalid token")
    return payload

def user_from_token(db: Session, token: str, expected_type: str = ACCESS) -> models.User:
    payload = decode_token(token, expected_type)
    user = db.query(models.User).filter(models.User.email == payload["sub"]).first()
    if user is None:
        raise Unauthorized("User not found")
    return user

# token from the Authorization header, or the access_token cookie set at login
def get_current_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(database.get_db)
):
    if not token:
        token = request.cookies.get("access_token")
        if token and token.startswith("Bearer "):
            token = token.split(" ", 1)[1]

    if not token:
        raise Unauthorized("Authentication required")

    return user_from_token(db, token, ACCESS)
