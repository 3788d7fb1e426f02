# pytest libs/tests/test_story_store.py -q

import uuid
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from common.owner import AnonymousOwner, AuthenticatedOwner
from libs.story_store import (
    BoundingBox,
    StoryStore,
    point_wkt,
    tally_reactions,
)
from models.story import Story

pytestmark = pytest.mark.unit


# ----------------------------
# Fake DB helpers
# ----------------------------
class FakeResult:
    """Mock result for db.execute(); supports first(), all() and rowcount."""

    def __init__(self, rows=None, rowcount=0):
        self._rows = list(rows or [])
        self.rowcount = rowcount

    def first(self):
        return self._rows[0] if self._rows else None

    def all(self):
        return list(self._rows)


class FakeDB:
    def __init__(self, *, execute_results=None, commit_raises=None):
        self.execute_results = list(execute_results or [])
        self.commit_raises = commit_raises
        self.statements = []
        self.added = []
        self.flushed = False
        self.committed = False
        self.rolled_back = False

    async def execute(self, stmt):
        self.statements.append(stmt)
        return self.execute_results.pop(0) if self.execute_results else FakeResult()

    def add(self, obj):
        self.added.append(obj)

    async def flush(self):
        self.flushed = True

    async def commit(self):
        if self.commit_raises:
            raise self.commit_raises
        self.committed = True

    async def rollback(self):
        self.rolled_back = True


def _story(**overrides):
    values = dict(
        id=uuid.uuid4(),
        message="Poorly lit underpass near the station",
        summary=None,
        lat=43.65,
        lng=-79.38,
        location="POINT(-79.38 43.65)",
        owner_kind="anonymous",
        owner_id="client-1",
        created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )
    values.update(overrides)
    return SimpleNamespace(**values)


# ----------------------------
# Helpers
# ----------------------------
def test_tally_reactions_counts_known_kinds_only():
    counts = tally_reactions(["like", "helpful", "like", None, "noted", "bogus"])
    assert counts.as_dict() == {"likes": 2, "helpful": 1, "noted": 1}


def test_point_wkt_is_lng_first():
    assert point_wkt(43.5, -79.25) == "POINT(-79.25 43.5)"
    assert point_wkt(None, -79.25) is None


# ----------------------------
# Writes
# ----------------------------
@pytest.mark.asyncio
async def test_insert_persists_owner_and_location():
    db = FakeDB()
    store = StoryStore(db)

    record = await store.insert(
        message="Felt followed on King St",
        owner=AuthenticatedOwner(user_id="auth0|42"),
        lat=43.6,
        lng=-79.4,
    )

    assert db.flushed and db.committed
    story = db.added[0]
    assert isinstance(story, Story)
    assert story.owner_kind == "authenticated"
    assert story.owner_id == "auth0|42"
    assert story.location == "POINT(-79.4 43.6)"
    assert record.message == "Felt followed on King St"
    assert record.counts.as_dict() == {"likes": 0, "helpful": 0, "noted": 0}
    assert record.created_at is not None


@pytest.mark.asyncio
async def test_commit_failure_rolls_back_and_reraises():
    db = FakeDB(commit_raises=OperationalError("commit", {}, Exception("db down")))
    store = StoryStore(db)

    with pytest.raises(OperationalError):
        await store.insert(message="hello", owner=AnonymousOwner(client_id="c1"))

    assert db.rolled_back


@pytest.mark.asyncio
async def test_update_message_returns_affected_rows():
    db = FakeDB(execute_results=[FakeResult(rowcount=1)])
    store = StoryStore(db)

    affected = await store.update_message(uuid.uuid4(), AnonymousOwner("c1"), "edited")

    assert affected == 1
    assert db.committed


@pytest.mark.asyncio
async def test_delete_of_unowned_story_reports_zero():
    db = FakeDB(execute_results=[FakeResult(rowcount=0)])
    store = StoryStore(db)

    assert await store.delete(uuid.uuid4(), AnonymousOwner("someone-else")) == 0


@pytest.mark.asyncio
async def test_react_is_an_upsert_that_ignores_duplicates():
    db = FakeDB()
    store = StoryStore(db)

    await store.react(uuid.uuid4(), "helpful", AnonymousOwner("c1"))

    sql = str(db.statements[0].compile(dialect=postgresql.dialect()))
    assert "ON CONFLICT" in sql
    assert "DO NOTHING" in sql
    assert db.committed


# ----------------------------
# Reads
# ----------------------------
@pytest.mark.asyncio
async def test_get_returns_none_for_unknown_story():
    store = StoryStore(FakeDB(execute_results=[FakeResult(rows=[])]))
    assert await store.get(uuid.uuid4()) is None


@pytest.mark.asyncio
async def test_get_maps_counts_and_treats_missing_as_zero():
    story = _story()
    store = StoryStore(FakeDB(execute_results=[FakeResult(rows=[(story, 3, None, 1)])]))

    record = await store.get(story.id)

    assert record.id == story.id
    assert record.counts.as_dict() == {"likes": 3, "helpful": 0, "noted": 1}


@pytest.mark.asyncio
async def test_list_by_recency_keeps_row_order():
    newer, older = _story(message="newer"), _story(message="older")
    rows = [(newer, 1, 0, 0), (older, None, None, None)]
    store = StoryStore(FakeDB(execute_results=[FakeResult(rows=rows)]))

    records = await store.list_by_recency()

    assert [r.message for r in records] == ["newer", "older"]
    assert records[1].counts.likes == 0


@pytest.mark.asyncio
async def test_list_in_bbox_applies_limit():
    db = FakeDB(execute_results=[FakeResult(rows=[])])
    store = StoryStore(db)

    await store.list_in_bbox(BoundingBox(west=-80, south=43, east=-79, north=44), limit=10)

    sql = str(db.statements[0].compile(dialect=postgresql.dialect()))
    assert "LIMIT" in sql
    assert "ORDER BY" in sql


@pytest.mark.asyncio
async def test_reaction_counts_tallies_rows():
    rows = [("like",), ("helpful",), ("helpful",)]
    store = StoryStore(FakeDB(execute_results=[FakeResult(rows=rows)]))

    counts = await store.reaction_counts(uuid.uuid4())

    assert counts.as_dict() == {"likes": 1, "helpful": 2, "noted": 0}


@pytest.mark.asyncio
async def test_geotagged_signals_groups_reaction_rows_per_story():
    a, b = uuid.uuid4(), uuid.uuid4()
    rows = [
        (a, 43.65, -79.38, "helpful"),
        (a, 43.65, -79.38, "like"),
        (a, 43.65, -79.38, "like"),
        (b, 43.70, -79.40, None),
    ]
    store = StoryStore(FakeDB(execute_results=[FakeResult(rows=rows)]))

    signals = await store.geotagged_signals()

    assert len(signals) == 2
    first = signals[0]
    assert (first.lat, first.lng) == (43.65, -79.38)
    assert first.counts.as_dict() == {"likes": 2, "helpful": 1, "noted": 0}
    assert signals[1].counts.as_dict() == {"likes": 0, "helpful": 0, "noted": 0}
