# Bearer tokens (PyJWT) and password hashing (passlib)

import jwt
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional
from passlib.context import CryptContext


class JWTManager:
    """
    Issues and verifies signed access tokens
    """

    def __init__(self, secret_key: str, algorithm: str = "HS256",
                 access_token_expire_minutes: int = 1440):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.access_token_expire_minutes = access_token_expire_minutes

    def create_access_token(self, data: Dict[str, Any]) -> str:
        """
        Create an access token

        Args:
            data: claims to encode (user_id, role, ...)

        Returns:
            encoded JWT
        """
        to_encode = data.copy()
        now = datetime.now(timezone.utc)
        to_encode.update({
            "exp": now + timedelta(minutes=self.access_token_expire_minutes),
            "iat": now
        })
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def verify_token(self, token: str) -> Optional[Dict[str, Any]]:
        """
        Decode a token

        Returns:
            claims, or None when the token is expired or invalid
        """
        try:
            return jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None


pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Shadow identities carry no hash and never verify"""
    if not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)
