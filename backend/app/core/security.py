"""Security utilities - JWT access tokens, opaque tokens, password hashing"""

from datetime import datetime, timedelta
from typing import Optional, Dict, Any
from jose import ExpiredSignatureError, JWTError, jwt
import bcrypt
import secrets

from app.config import Settings
from app.core.exceptions import TokenExpiredError, TokenInvalidError

ACCESS_TOKEN_TYPE = "access"
REGISTRATION_TOKEN_TYPE = "registration"

# bcrypt only considers the first 72 bytes of a password.
_BCRYPT_MAX_BYTES = 72


class PasswordHasher:
    """Stateless bcrypt hashing capability"""

    def __init__(self, rounds: int = 12):
        self.rounds = rounds

    @staticmethod
    def _encode(password: str) -> bytes:
        return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]

    def hash(self, password: str) -> str:
        """
        Hash a password using bcrypt

        Args:
            password: Plain text password

        Returns:
            str: Hashed password
        """
        return bcrypt.hashpw(self._encode(password), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, hashed_password: str, candidate: str) -> bool:
        """
        Verify a candidate password against a stored hash

        Args:
            hashed_password: Stored bcrypt hash
            candidate: Plain text password to check

        Returns:
            bool: True if password matches
        """
        if not hashed_password:
            return False
        try:
            return bcrypt.checkpw(self._encode(candidate), hashed_password.encode("utf-8"))
        except ValueError:
            # Stored value is not a bcrypt hash.
            return False


def generate_opaque_token(byte_length: int) -> str:
    """
    Generate a random hex token from a CSPRNG

    Args:
        byte_length: Bytes of entropy (at least 20)

    Returns:
        str: Hex string of 2 * byte_length characters
    """
    if byte_length < 20:
        raise ValueError("Opaque tokens need at least 20 bytes of entropy")
    return secrets.token_hex(byte_length)


class TokenCodec:
    """Signs and verifies short-lived JWT access tokens"""

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        access_token_ttl: timedelta = timedelta(hours=1),
        registration_token_ttl: timedelta = timedelta(hours=24),
    ):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.access_token_ttl = access_token_ttl
        self.registration_token_ttl = registration_token_ttl

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenCodec":
        return cls(
            secret_key=settings.SECRET_KEY,
            algorithm=settings.ALGORITHM,
            access_token_ttl=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
            registration_token_ttl=timedelta(hours=settings.REGISTRATION_TOKEN_EXPIRE_HOURS),
        )

    @staticmethod
    def _claims_for(user) -> Dict[str, Any]:
        return {"sub": str(user.id), "id": user.id, "email": user.email, "role": user.role}

    def encode(self, data: Dict[str, Any], token_type: str, expires_delta: timedelta) -> str:
        """
        Create a signed JWT

        Args:
            data: Claims to embed
            token_type: Value of the ``typ`` claim
            expires_delta: Lifetime from now (negative values yield expired tokens)

        Returns:
            str: Encoded JWT token
        """
        now = datetime.utcnow()
        to_encode = data.copy()
        to_encode.update({
            "typ": token_type,
            "iat": now,
            "exp": now + expires_delta,
            "jti": secrets.token_urlsafe(16),  # Unique token ID
        })
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def issue_access_token(self, user, expires_delta: Optional[timedelta] = None) -> str:
        """Access token carrying {id, email, role}."""
        return self.encode(
            self._claims_for(user),
            ACCESS_TOKEN_TYPE,
            expires_delta if expires_delta is not None else self.access_token_ttl,
        )

    def issue_registration_token(self, user) -> str:
        """Token handed out on sign-up; not accepted as a session credential."""
        return self.encode(self._claims_for(user), REGISTRATION_TOKEN_TYPE, self.registration_token_ttl)

    def decode(self, token: str) -> Dict[str, Any]:
        """
        Verify signature and expiry of any token issued by this codec

        Raises:
            TokenExpiredError: Signature valid but token expired
            TokenInvalidError: Bad signature or malformed token
        """
        try:
            return jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except ExpiredSignatureError:
            raise TokenExpiredError()
        except JWTError:
            raise TokenInvalidError()

    def verify_access_token(self, token: str) -> Dict[str, Any]:
        """Decode a bearer token and insist it is an access token."""
        payload = self.decode(token)
        if payload.get("typ") != ACCESS_TOKEN_TYPE or payload.get("id") is None:
            raise TokenInvalidError()
        return payload
