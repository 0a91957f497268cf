#  Project Scaffolder - Auth Service
#
#  Password hashing, JWT encode/decode, register/login/refresh.
#  First registered user becomes admin.
#
#  Depends on: db/connection.py, config.py, models/enums.py
#  Used by:    container.py, routes/auth.py, middleware/auth.py

import logging
import time
import uuid
from datetime import datetime, timedelta, timezone

import bcrypt
import jwt

from scaffolder.config import (
    AUTH_ACCESS_TOKEN_EXPIRE_MINUTES,
    AUTH_ALGORITHM,
    AUTH_ALLOW_REGISTRATION,
    AUTH_REFRESH_TOKEN_EXPIRE_DAYS,
    AUTH_SECRET_KEY,
)
from scaffolder.db.connection import Database
from scaffolder.models.enums import UserRole

logger = logging.getLogger("scaffolder.auth")

# Pre-computed dummy hash for timing-safe login
_DUMMY_HASH = bcrypt.hashpw(b"dummy-password-for-timing", bcrypt.gensalt()).decode()

_PUBLIC_USER_COLUMNS = "id, email, display_name, role, is_active, created_at, last_login_at"


class AuthService:
    """User registration, login, and JWT token management."""

    def __init__(self, db: Database):
        self._db = db

    @staticmethod
    def hash_password(password: str) -> str:
        return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()

    @staticmethod
    def verify_password(plain: str, hashed: str) -> bool:
        return bcrypt.checkpw(plain.encode(), hashed.encode())

    @staticmethod
    def _encode(payload: dict, lifetime: timedelta) -> str:
        payload = {**payload, "exp": datetime.now(timezone.utc) + lifetime}
        return jwt.encode(payload, AUTH_SECRET_KEY, algorithm=AUTH_ALGORITHM)

    @classmethod
    def create_access_token(cls, user_id: str, role: str) -> str:
        return cls._encode(
            {"sub": user_id, "role": role, "type": "access"},
            timedelta(minutes=AUTH_ACCESS_TOKEN_EXPIRE_MINUTES),
        )

    @classmethod
    def create_refresh_token(cls, user_id: str) -> str:
        return cls._encode(
            {"sub": user_id, "type": "refresh"},
            timedelta(days=AUTH_REFRESH_TOKEN_EXPIRE_DAYS),
        )

    @staticmethod
    def decode_token(token: str) -> dict:
        """Decode and validate a JWT. Raises jwt.PyJWTError on failure."""
        return jwt.decode(token, AUTH_SECRET_KEY, algorithms=[AUTH_ALGORITHM])

    def _token_pair(self, user) -> dict:
        return {
            "access_token": self.create_access_token(user["id"], user["role"]),
            "refresh_token": self.create_refresh_token(user["id"]),
            "token_type": "bearer",
        }

    # ------------------------------------------------------------------
    # Registration / login
    # ------------------------------------------------------------------

    async def register(self, email: str, password: str, display_name: str = "") -> dict:
        """Register a new user. The first user becomes admin.

        BEGIN IMMEDIATE serializes concurrent first registrations.
        """
        if not AUTH_ALLOW_REGISTRATION:
            raise PermissionError("Registration is disabled")

        user_id = uuid.uuid4().hex[:12]
        password_hash = self.hash_password(password)
        display = display_name or email.split("@")[0]

        async with self._db.transaction() as conn:
            existing = await conn.execute("SELECT id FROM users WHERE email = ?", (email,))
            if await existing.fetchone():
                # Generic message to avoid email enumeration
                raise ValueError("Registration failed")

            count_cursor = await conn.execute("SELECT COUNT(*) FROM users")
            role = UserRole.ADMIN if (await count_cursor.fetchone())[0] == 0 else UserRole.USER

            await conn.execute(
                "INSERT INTO users (id, email, password_hash, display_name, role, is_active, created_at) "
                "VALUES (?, ?, ?, ?, ?, 1, ?)",
                (user_id, email, password_hash, display, role.value, time.time()),
            )

        logger.info("User registered: %s (role=%s)", email, role.value)
        return {"id": user_id, "email": email, "display_name": display, "role": role.value}

    async def login(self, email: str, password: str) -> dict:
        """Authenticate user, return tokens."""
        user = await self._db.fetchone("SELECT * FROM users WHERE email = ?", (email,))

        if not user:
            self.verify_password(password, _DUMMY_HASH)
            raise ValueError("Invalid email or password")
        if not user["password_hash"] or not self.verify_password(password, user["password_hash"]):
            raise ValueError("Invalid email or password")
        if not user["is_active"]:
            raise PermissionError("Account is disabled")

        await self._db.execute_write(
            "UPDATE users SET last_login_at = ? WHERE id = ?", (time.time(), user["id"]),
        )

        return {
            **self._token_pair(user),
            "user": {
                "id": user["id"],
                "email": user["email"],
                "display_name": user["display_name"],
                "role": user["role"],
            },
        }

    async def refresh_tokens(self, refresh_token: str) -> dict:
        """Issue new access + refresh tokens from a valid refresh token."""
        try:
            payload = self.decode_token(refresh_token)
        except jwt.PyJWTError as e:
            raise ValueError(f"Invalid refresh token: {e}")

        if payload.get("type") != "refresh":
            raise ValueError("Token is not a refresh token")

        user = await self._db.fetchone(
            "SELECT * FROM users WHERE id = ? AND is_active = 1", (payload["sub"],),
        )
        if not user:
            raise ValueError("User not found or disabled")
        return self._token_pair(user)

    async def get_user(self, user_id: str) -> dict | None:
        row = await self._db.fetchone(
            f"SELECT {_PUBLIC_USER_COLUMNS} FROM users WHERE id = ?", (user_id,),
        )
        return dict(row) if row else None
