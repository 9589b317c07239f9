import logging
import time
from dataclasses import dataclass

import jwt

from launchpad.errors import ErrorKind, ServiceError
from launchpad.repositories.base import AbstractFederationRepository, AbstractProfileRepository

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
API_KEY_PREFIX = "fed_key_"
PARTNER_TOKEN = "federation_partner"
USER_TOKEN = "user"


@dataclass
class AuthContext:
    type: str
    identity: dict
    tier: str

    @property
    def subject_id(self) -> str:
        return self.identity["id"]

    @property
    def rate_limit_key(self) -> str:
        prefix = "partner" if self.type == PARTNER_TOKEN else "user"
        return f"{prefix}:{self.subject_id}"


@dataclass
class TokenExchange:
    token: str
    expires_in: int
    partner_info: dict


class AuthService:
    def __init__(
        self,
        partners: AbstractFederationRepository,
        profiles: AbstractProfileRepository,
        secret: str,
        partner_token_ttl: int = 3600,
    ) -> None:
        self._partners = partners
        self._profiles = profiles
        self._secret = secret
        self._partner_token_ttl = partner_token_ttl

    def issue_partner_token(self, partner) -> str:
        now = int(time.time())
        claims = {
            "type": PARTNER_TOKEN,
            "partner_id": partner.id,
            "tier": partner.tier,
            "iat": now,
            "exp": now + self._partner_token_ttl,
        }
        return jwt.encode(claims, self._secret, algorithm=ALGORITHM)

    def issue_user_token(self, user_id: str, ttl: int = 3600) -> str:
        now = int(time.time())
        claims = {"type": USER_TOKEN, "sub": user_id, "iat": now, "exp": now + ttl}
        return jwt.encode(claims, self._secret, algorithm=ALGORITHM)

    def verify_bearer(self, token: str) -> AuthContext:
        try:
            claims = jwt.decode(token, self._secret, algorithms=[ALGORITHM])
        except jwt.ExpiredSignatureError as exc:
            logger.info("[auth] expired token rejected")
            raise ServiceError(ErrorKind.UNAUTHORIZED, "Invalid token") from exc
        except jwt.InvalidTokenError as exc:
            logger.info("[auth] bad token rejected | reason=%s", exc)
            raise ServiceError(ErrorKind.UNAUTHORIZED, "Invalid token") from exc

        token_type = claims.get("type")
        if token_type == PARTNER_TOKEN:
            partner = self._partners.get_partner(str(claims.get("partner_id", "")))
            if partner is None or not partner.is_active:
                raise ServiceError(ErrorKind.UNAUTHORIZED, "Invalid partner token")
            return AuthContext(type=PARTNER_TOKEN, identity=partner.public_info(), tier=partner.tier)

        if token_type == USER_TOKEN:
            profile = self._profiles.get(str(claims.get("sub", "")))
            if profile is None:
                raise ServiceError(ErrorKind.UNAUTHORIZED, "Invalid user token")
            identity = {"id": profile.id, "username": profile.username, "is_admin": profile.is_admin}
            return AuthContext(type=USER_TOKEN, identity=identity, tier="basic")

        raise ServiceError(ErrorKind.UNAUTHORIZED, "Invalid token")

    def verify_api_key(self, api_key: str) -> AuthContext:
        partner = self._partners.get_partner_by_key(api_key)
        if partner is None or not partner.is_active:
            raise ServiceError(ErrorKind.UNAUTHORIZED, "Invalid API key")
        return AuthContext(type=PARTNER_TOKEN, identity=partner.public_info(), tier=partner.tier)

    def exchange_api_key(self, api_key: str | None) -> TokenExchange:
        if not api_key:
            raise ServiceError(ErrorKind.VALIDATION_ERROR, "API key is required")
        if not api_key.startswith(API_KEY_PREFIX):
            raise ServiceError(ErrorKind.VALIDATION_ERROR, "Invalid API key format")

        partner = self._partners.get_partner_by_key(api_key)
        if partner is None or not partner.is_active:
            raise ServiceError(ErrorKind.UNAUTHORIZED, "Invalid API key")

        self._partners.touch_partner(partner.id)
        logger.info("[auth] partner token issued | partner_id=%s | tier=%s", partner.id, partner.tier)
        return TokenExchange(
            token=self.issue_partner_token(partner),
            expires_in=self._partner_token_ttl,
            partner_info=partner.public_info(),
        )
