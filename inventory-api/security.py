# security.py
import os, time, jwt
from datetime import timedelta
from typing import Optional
from passlib.context import CryptContext

JWT_SECRET = os.getenv("JWT_SECRET") or os.getenv("SECRET_KEY") or "dev-secret-change-me"
JWT_ALGORITHM = "HS256"
JWT_ISSUER = "inventory-api"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24 * 7)))  # default 7d
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=BCRYPT_ROUNDS)

def hash_password(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)

def create_access_token(claims: dict, expires_delta: Optional[timedelta] = None) -> str:
    ttl = expires_delta if expires_delta is not None else timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {**claims, "iss": JWT_ISSUER, "exp": int(time.time() + ttl.total_seconds())}
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)

def decode_token(token: str) -> dict:
    """Raises jwt.PyJWTError on a bad signature, wrong issuer or expiry."""
    return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM], issuer=JWT_ISSUER)

def token_for_user(user) -> str:
    # sub must be a string for PyJWT >= 2.10
    return create_access_token({"sub": str(user.id), "email": user.email, "role": user.role.value})
