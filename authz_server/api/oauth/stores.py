"""Persistence contracts for clients, authorizations and consents.

Each contract has an in-memory implementation (tests, single-process
development) and a Redis implementation storing JSON documents:

    oauth:client:{client_id}                 registered client
    oauth:authorization:{id}                 authorization with its tokens
    oauth:token:{type}:{sha256(value)}       index -> authorization id (TTL)
    oauth:claim:{type}:{sha256(value)}       single-use token consumed (TTL)
    oauth:consent:{client_id}:{principal}    recorded consent
"""

import json
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Dict, Iterable, Optional, Tuple

import redis.asyncio as redis

from .authorization import (
    OAuth2Authorization,
    OAuth2AuthorizationConsent,
    STATE,
    TOKEN_TYPES,
)
from .clients import RegisteredClient
from ...shared.logger import log_debug
from ...shared.sanitizer import hash_token

# Index types searched when a lookup has no token type
INDEXED_TYPES = TOKEN_TYPES + (STATE,)

MAX_PENDING_AUTHORIZATIONS = 10000

# Seconds a claim is kept when the claimed token has no expiry
CLAIM_TTL = 3600


class RegisteredClientRepository(ABC):
    @abstractmethod
    async def save(self, client: RegisteredClient) -> None:
        ...

    @abstractmethod
    async def find_by_client_id(self, client_id: str) -> Optional[RegisteredClient]:
        ...


class OAuth2AuthorizationService(ABC):
    @abstractmethod
    async def save(self, authorization: OAuth2Authorization) -> None:
        ...

    @abstractmethod
    async def remove(self, authorization: OAuth2Authorization) -> None:
        ...

    @abstractmethod
    async def find_by_id(self, authorization_id: str) -> Optional[OAuth2Authorization]:
        ...

    @abstractmethod
    async def find_by_token(self, token: str, token_type: Optional[str] = None) -> Optional[OAuth2Authorization]:
        """Find the authorization holding ``token``.

        ``token_type`` restricts the lookup to one token slot, or to the
        pending consent ``state`` when it equals ``"state"``.
        """

    @abstractmethod
    async def claim_token(self, token: str, token_type: str, expires_at: Optional[int] = None) -> bool:
        """Atomically mark a single-use token as consumed.

        Returns True for the first caller only; every later claim of the same
        token returns False. The claim is kept until ``expires_at``.
        """


class OAuth2AuthorizationConsentService(ABC):
    @abstractmethod
    async def save(self, consent: OAuth2AuthorizationConsent) -> None:
        ...

    @abstractmethod
    async def remove(self, consent: OAuth2AuthorizationConsent) -> None:
        ...

    @abstractmethod
    async def find(self, client_id: str, principal_name: str) -> Optional[OAuth2AuthorizationConsent]:
        ...


def _index_entries(authorization: OAuth2Authorization) -> Iterable[Tuple[str, str, Optional[int]]]:
    """(type, value, expires_at) for every lookup key of an authorization."""
    for token_type, record in authorization.tokens.items():
        yield token_type, record.value, record.expires_at
    if authorization.consent_state:
        yield STATE, authorization.consent_state, authorization.consent_state_expires_at


# In-memory


class InMemoryRegisteredClientRepository(RegisteredClientRepository):
    def __init__(self, clients: Iterable[RegisteredClient] = ()):
        self._clients: Dict[str, RegisteredClient] = {client.client_id: client for client in clients}

    async def save(self, client: RegisteredClient) -> None:
        self._clients[client.client_id] = client

    async def find_by_client_id(self, client_id: str) -> Optional[RegisteredClient]:
        return self._clients.get(client_id)


class InMemoryOAuth2AuthorizationService(OAuth2AuthorizationService):
    """Authorizations held in process memory.

    Authorizations waiting for consent are bounded: expired ones are purged
    on every save and, past ``max_pending``, the oldest are evicted.
    """

    def __init__(self, max_pending: int = MAX_PENDING_AUTHORIZATIONS):
        if max_pending <= 0:
            raise ValueError("max_pending must be positive")
        self.max_pending = max_pending
        self._authorizations: Dict[str, str] = {}
        self._index: Dict[Tuple[str, str], str] = {}
        # authorization id -> consent state expiry, oldest first
        self._pending: "OrderedDict[str, Optional[int]]" = OrderedDict()
        self._claimed: Dict[Tuple[str, str], int] = {}

    async def save(self, authorization: OAuth2Authorization) -> None:
        self._drop_index(authorization.id)
        self._authorizations[authorization.id] = json.dumps(authorization.to_dict())
        for token_type, value, _ in _index_entries(authorization):
            self._index[(token_type, value)] = authorization.id

        self._pending.pop(authorization.id, None)
        if authorization.consent_state:
            self._pending[authorization.id] = authorization.consent_state_expires_at
            self._purge_pending()

    async def remove(self, authorization: OAuth2Authorization) -> None:
        self._forget(authorization.id)

    async def find_by_id(self, authorization_id: str) -> Optional[OAuth2Authorization]:
        data = self._authorizations.get(authorization_id)
        return OAuth2Authorization.from_dict(json.loads(data)) if data else None

    async def find_by_token(self, token: str, token_type: Optional[str] = None) -> Optional[OAuth2Authorization]:
        for candidate in (token_type,) if token_type else INDEXED_TYPES:
            authorization_id = self._index.get((candidate, token))
            if authorization_id:
                return await self.find_by_id(authorization_id)
        return None

    async def claim_token(self, token: str, token_type: str, expires_at: Optional[int] = None) -> bool:
        now = int(time.time())
        self._claimed = {key: expiry for key, expiry in self._claimed.items() if expiry > now}
        key = (token_type, hash_token(token))
        if key in self._claimed:
            return False
        self._claimed[key] = expires_at if expires_at and expires_at > now else now + CLAIM_TTL
        return True

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def _purge_pending(self) -> None:
        now = int(time.time())
        expired = [key for key, expires_at in self._pending.items() if expires_at is not None and expires_at <= now]
        for authorization_id in expired:
            self._forget(authorization_id)

        while len(self._pending) > self.max_pending:
            authorization_id = next(iter(self._pending))
            self._forget(authorization_id)
            log_debug(
                "Evicted pending authorization",
                component="oauth_store",
                authorization_id=authorization_id,
            )

    def _forget(self, authorization_id: str) -> None:
        self._drop_index(authorization_id)
        self._authorizations.pop(authorization_id, None)
        self._pending.pop(authorization_id, None)

    def _drop_index(self, authorization_id: str) -> None:
        stale = [key for key, value in self._index.items() if value == authorization_id]
        for key in stale:
            del self._index[key]


class InMemoryOAuth2AuthorizationConsentService(OAuth2AuthorizationConsentService):
    def __init__(self):
        self._consents: Dict[Tuple[str, str], OAuth2AuthorizationConsent] = {}

    async def save(self, consent: OAuth2AuthorizationConsent) -> None:
        self._consents[(consent.client_id, consent.principal_name)] = consent

    async def remove(self, consent: OAuth2AuthorizationConsent) -> None:
        self._consents.pop((consent.client_id, consent.principal_name), None)

    async def find(self, client_id: str, principal_name: str) -> Optional[OAuth2AuthorizationConsent]:
        return self._consents.get((client_id, principal_name))


# Redis


class RedisRegisteredClientRepository(RegisteredClientRepository):
    def __init__(self, redis_client: redis.Redis):
        self.redis_client = redis_client

    async def save(self, client: RegisteredClient) -> None:
        await self.redis_client.set(f"oauth:client:{client.client_id}", json.dumps(client.to_dict()))

    async def find_by_client_id(self, client_id: str) -> Optional[RegisteredClient]:
        data = await self.redis_client.get(f"oauth:client:{client_id}")
        if not data:
            return None
        return RegisteredClient.from_dict(json.loads(data))


class RedisOAuth2AuthorizationService(OAuth2AuthorizationService):
    def __init__(self, redis_client: redis.Redis):
        self.redis_client = redis_client

    @staticmethod
    def _key(authorization_id: str) -> str:
        return f"oauth:authorization:{authorization_id}"

    @staticmethod
    def _index_key(token_type: str, value: str) -> str:
        return f"oauth:token:{token_type}:{hash_token(value)}"

    async def save(self, authorization: OAuth2Authorization) -> None:
        previous = await self.find_by_id(authorization.id)
        now = int(time.time())

        async with self.redis_client.pipeline(transaction=True) as pipe:
            if previous:
                for token_type, value, _ in _index_entries(previous):
                    pipe.delete(self._index_key(token_type, value))

            expires_at = authorization.expires_at()
            document = json.dumps(authorization.to_dict())
            if expires_at and expires_at > now:
                pipe.setex(self._key(authorization.id), expires_at - now, document)
            else:
                pipe.set(self._key(authorization.id), document)

            for token_type, value, token_expires_at in _index_entries(authorization):
                key = self._index_key(token_type, value)
                if token_expires_at and token_expires_at > now:
                    pipe.setex(key, token_expires_at - now, authorization.id)
                else:
                    pipe.set(key, authorization.id)
            await pipe.execute()

        log_debug("Authorization saved", component="oauth_store", authorization_id=authorization.id)

    async def remove(self, authorization: OAuth2Authorization) -> None:
        keys = [self._index_key(token_type, value) for token_type, value, _ in _index_entries(authorization)]
        await self.redis_client.delete(self._key(authorization.id), *keys)

    async def find_by_id(self, authorization_id: str) -> Optional[OAuth2Authorization]:
        data = await self.redis_client.get(self._key(authorization_id))
        if not data:
            return None
        return OAuth2Authorization.from_dict(json.loads(data))

    async def find_by_token(self, token: str, token_type: Optional[str] = None) -> Optional[OAuth2Authorization]:
        for candidate in (token_type,) if token_type else INDEXED_TYPES:
            authorization_id = await self.redis_client.get(self._index_key(candidate, token))
            if authorization_id:
                return await self.find_by_id(authorization_id)
        return None

    async def claim_token(self, token: str, token_type: str, expires_at: Optional[int] = None) -> bool:
        now = int(time.time())
        ttl = expires_at - now if expires_at and expires_at > now else CLAIM_TTL
        claimed = await self.redis_client.set(
            f"oauth:claim:{token_type}:{hash_token(token)}", "1", nx=True, ex=ttl
        )
        return bool(claimed)


class RedisOAuth2AuthorizationConsentService(OAuth2AuthorizationConsentService):
    def __init__(self, redis_client: redis.Redis):
        self.redis_client = redis_client

    @staticmethod
    def _key(client_id: str, principal_name: str) -> str:
        return f"oauth:consent:{client_id}:{principal_name}"

    async def save(self, consent: OAuth2AuthorizationConsent) -> None:
        await self.redis_client.set(
            self._key(consent.client_id, consent.principal_name), json.dumps(consent.to_dict())
        )

    async def remove(self, consent: OAuth2AuthorizationConsent) -> None:
        await self.redis_client.delete(self._key(consent.client_id, consent.principal_name))

    async def find(self, client_id: str, principal_name: str) -> Optional[OAuth2AuthorizationConsent]:
        data = await self.redis_client.get(self._key(client_id, principal_name))
        if not data:
            return None
        return OAuth2AuthorizationConsent.from_dict(json.loads(data))
