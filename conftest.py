"""
Shared test fixtures.

This module provides reusable fixtures for:
- Generating RSA key pairs and a mock JWKS endpoint for test JWT signing
- Creating valid/expired/invalid test JWTs
- An in-memory story store standing in for PostgreSQL
- Fake LLM and directions clients
- TestClient instances for the stories and safety scoring apps with
  their dependencies overridden
"""

import time
import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jose import jwt

from common.constants import ALGORITHMS, API_AUDIENCE, ISSUER
from common.errors import RouteNotFoundError, UpstreamError
from common.owner import Owner
from libs.directions_client import RouteSummary
from libs.story_store import (
    BoundingBox,
    ReactionCounts,
    StoryRecord,
    StorySignal,
    point_wkt,
    tally_reactions,
)


# ============================================================================
# Auth fixtures
# ============================================================================


def _generate_private_pem() -> str:
    private_key = rsa.generate_private_key(
        public_exponent=65537, key_size=2048, backend=default_backend()
    )
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


@pytest.fixture(scope="session")
def rsa_key_pair():
    """
    Generate RSA key pair for signing test JWTs.

    Returns:
        Dict with 'private_key' and 'public_key' in PEM format
    """
    private_pem = _generate_private_pem()
    private_key = serialization.load_pem_private_key(
        private_pem.encode("utf-8"), password=None, backend=default_backend()
    )
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return {"private_key": private_pem, "public_key": public_pem.decode("utf-8")}


@pytest.fixture(scope="session")
def test_kid():
    """Return a test key ID for JWKS."""
    return "test-key-id-123"


@pytest.fixture(scope="session")
def mock_jwks(rsa_key_pair, test_kid):
    """Mock JWKS response in Auth0 format."""
    from jose.backends import RSAKey

    key = RSAKey(rsa_key_pair["public_key"], ALGORITHMS[0])
    jwk_dict = key.to_dict()
    jwk_dict["kid"] = test_kid
    jwk_dict["alg"] = "RS256"
    jwk_dict["use"] = "sig"
    return {"keys": [jwk_dict]}


@pytest.fixture
def create_jwt(rsa_key_pair, test_kid):
    """
    Factory fixture to create test JWTs.

    Standard claims are valid by default; pass overrides (e.g. ``aud=...``,
    ``exp=...``) to break one of them. ``kid=None`` drops the key id header
    and ``signing_key`` signs with a different private key.
    """

    def _create_jwt(
        user_id: str = "test-user-123",
        kid: Optional[str] = test_kid,
        signing_key: Optional[str] = None,
        **claims,
    ) -> str:
        now = int(time.time())
        payload = {
            "sub": user_id,
            "aud": API_AUDIENCE,
            "iss": ISSUER,
            "iat": now,
            "exp": now + 3600,
            **claims,
        }
        headers = {"kid": kid} if kid else None
        return jwt.encode(
            payload,
            signing_key or rsa_key_pair["private_key"],
            algorithm=ALGORITHMS[0],
            headers=headers,
        )

    return _create_jwt


@pytest.fixture(scope="session")
def foreign_private_key():
    """A private key that does not appear in the JWKS."""
    return _generate_private_pem()


@pytest.fixture
def mock_jwks_request(mocker, mock_jwks):
    """
    Mock requests.get to return mock JWKS without hitting Auth0.

    Returns:
        Mocked requests.get function
    """
    mock_response = mocker.Mock()
    mock_response.json.return_value = mock_jwks
    mock_response.raise_for_status = mocker.Mock()

    # Patch where requests.get is used, not where it's defined
    return mocker.patch("libs.auth.token_verify.requests.get", return_value=mock_response)


# ============================================================================
# Store and client fakes
# ============================================================================


class InMemoryStoryStore:
    """Dict-backed stand-in for StoryStore with the same async interface."""

    def __init__(self):
        self.stories: Dict[uuid.UUID, StoryRecord] = {}
        # (story_id, attributor_kind, attributor_id, kind)
        self.reactions: List[tuple] = []
        self._clock = datetime(2025, 1, 1, tzinfo=timezone.utc)

    def _tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    def _with_counts(self, record: StoryRecord) -> StoryRecord:
        kinds = [r[3] for r in self.reactions if r[0] == record.id]
        return replace(record, counts=tally_reactions(kinds))

    async def insert(self, *, message, owner: Owner, lat=None, lng=None, summary=None):
        record = StoryRecord(
            id=uuid.uuid4(),
            message=message,
            summary=summary,
            lat=lat,
            lng=lng,
            location=point_wkt(lat, lng),
            owner_kind=owner.kind,
            owner_id=owner.ref,
            created_at=self._tick(),
        )
        self.stories[record.id] = record
        return self._with_counts(record)

    async def get(self, story_id):
        record = self.stories.get(story_id)
        return self._with_counts(record) if record else None

    async def list_by_recency(self):
        records = sorted(self.stories.values(), key=lambda r: r.created_at, reverse=True)
        return [self._with_counts(r) for r in records]

    async def list_in_bbox(self, bbox: BoundingBox, limit: int = 500):
        records = [
            r
            for r in await self.list_by_recency()
            if r.lat is not None
            and r.lng is not None
            and bbox.south <= r.lat <= bbox.north
            and bbox.west <= r.lng <= bbox.east
        ]
        return records[:limit]

    def _owned(self, story_id, owner: Owner) -> Optional[StoryRecord]:
        record = self.stories.get(story_id)
        if record is None or not record.is_owned_by(owner):
            return None
        return record

    async def update_message(self, story_id, owner: Owner, message):
        record = self._owned(story_id, owner)
        if record is None:
            return 0
        self.stories[story_id] = replace(record, message=message)
        return 1

    async def delete(self, story_id, owner: Owner):
        if self._owned(story_id, owner) is None:
            return 0
        del self.stories[story_id]
        self.reactions = [r for r in self.reactions if r[0] != story_id]
        return 1

    async def react(self, story_id, kind, attributor: Owner):
        key = (story_id, attributor.kind, attributor.ref, kind)
        if key not in self.reactions:
            self.reactions.append(key)

    async def reaction_counts(self, story_id) -> ReactionCounts:
        return tally_reactions(r[3] for r in self.reactions if r[0] == story_id)

    async def geotagged_signals(self):
        return [
            StorySignal(lat=r.lat, lng=r.lng, counts=r.counts)
            for r in await self.list_by_recency()
            if r.lat is not None and r.lng is not None
        ]


class FakeLLM:
    """LLM client double: canned reply or error, records prompts."""

    def __init__(self, reply: Optional[str] = None, error: Optional[Exception] = None,
                 summary: Optional[str] = None, enabled: bool = True):
        self.reply = reply
        self.error = error
        self.summary = summary
        self.enabled = enabled
        self.prompts: List[str] = []

    def is_enabled(self) -> bool:
        return self.enabled

    async def complete(self, prompt: str, json_mode: bool = False) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        if self.reply is None:
            raise UpstreamError("LLM returned an empty completion")
        return self.reply

    async def summarize_story(self, text: str) -> Optional[str]:
        return self.summary if self.enabled else None


class FakeDirections:
    """Directions client double returning fixed routes, None, or no-route."""

    def __init__(
        self,
        route: Optional[RouteSummary] = None,
        routes: Optional[List[RouteSummary]] = None,
        no_route: bool = False,
    ):
        self.route = route
        self.routes = routes
        self.no_route = no_route
        self.calls: List[tuple] = []

    def is_enabled(self) -> bool:
        return self.route is not None or self.routes is not None

    async def get_route(self, start, end, mode="walking"):
        self.calls.append((start, end, mode))
        if self.no_route:
            raise RouteNotFoundError("No route found between locations")
        return self.route

    async def get_routes(self, start, end, mode="walking"):
        self.calls.append((start, end, mode))
        if self.no_route:
            raise RouteNotFoundError("No route found between locations")
        if self.routes is not None:
            return self.routes
        return [self.route] if self.route is not None else None


@pytest.fixture
def story_store():
    return InMemoryStoryStore()


@pytest.fixture
def fake_llm():
    return FakeLLM(enabled=False)


@pytest.fixture
def fake_directions():
    return FakeDirections()


@pytest.fixture
def stories_client(story_store, fake_llm):
    """TestClient for the stories app backed by the in-memory store."""
    from fastapi.testclient import TestClient

    from libs.llm_client import get_llm_client
    from libs.story_store import get_story_store
    from services.stories.main import app

    app.dependency_overrides[get_story_store] = lambda: story_store
    app.dependency_overrides[get_llm_client] = lambda: fake_llm
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


@pytest.fixture
def safety_client(story_store, fake_llm, fake_directions):
    """TestClient for the safety scoring app with fake collaborators."""
    from fastapi.testclient import TestClient

    from libs.directions_client import get_directions_client
    from libs.llm_client import get_llm_client
    from libs.story_store import get_story_store
    from services.safety_scoring.main import app

    app.dependency_overrides[get_story_store] = lambda: story_store
    app.dependency_overrides[get_llm_client] = lambda: fake_llm
    app.dependency_overrides[get_directions_client] = lambda: fake_directions
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
