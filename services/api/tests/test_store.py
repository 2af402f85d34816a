import json
import sqlite3
from datetime import datetime
from pathlib import Path

from insight_engine.analysis import compute_analysis
from insight_engine.models import Profile
from insight_engine.store import (
    BOOKMARKED_KEY,
    DISMISSED_KEY,
    LAST_INSIGHT_UPDATE_KEY,
    InsightStore,
    MemoryKeyValueStore,
    SQLiteKeyValueStore,
    load_json,
)

SCHEMA_PATH = Path(__file__).resolve().parents[3] / "db" / "schema.sql"


NOW = datetime(2025, 6, 30, 12, 0)


def _regenerate(store):
    analysis = compute_analysis([], [], [], [], Profile(), now=NOW)
    return store.regenerate(analysis, Profile(), [], [], [], now=NOW)


def test_dismissal_survives_regeneration_and_restart():
    kv = MemoryKeyValueStore()
    store = InsightStore(kv)
    _regenerate(store)
    store.dismiss("no_budgets")

    assert "no_budgets" not in [i.id for i in store.visible()]
    assert "no_budgets" not in [i.id for i in _regenerate(store)]

    reopened = InsightStore(kv)
    assert "no_budgets" in reopened.dismissed
    assert "no_budgets" not in [i.id for i in _regenerate(reopened)]
    assert json.loads(kv.get(DISMISSED_KEY)) == ["no_budgets"]


def test_undismiss_and_reset():
    store = InsightStore(MemoryKeyValueStore())
    _regenerate(store)
    store.dismiss("no_budgets")
    store.dismiss("no_goals")

    store.undismiss("no_budgets")
    assert "no_budgets" in [i.id for i in store.visible()]
    assert "no_goals" not in [i.id for i in store.visible()]

    store.reset_dismissed()
    assert store.dismissed == frozenset()
    assert "no_goals" in [i.id for i in store.visible()]


def test_rapid_toggles_are_not_lost():
    kv = MemoryKeyValueStore()
    store = InsightStore(kv)
    for insight_id in ("a", "b", "c"):
        store.dismiss(insight_id)
    assert set(json.loads(kv.get(DISMISSED_KEY))) == {"a", "b", "c"}


def test_bookmark_toggle_does_not_hide():
    kv = MemoryKeyValueStore()
    store = InsightStore(kv)
    _regenerate(store)

    assert store.toggle_bookmark("no_goals") is True
    assert store.is_bookmarked("no_goals")
    assert "no_goals" in [i.id for i in store.visible()]
    assert [i.id for i in store.filter(bookmarked_only=True)] == ["no_goals"]
    assert json.loads(kv.get(BOOKMARKED_KEY)) == ["no_goals"]

    assert store.toggle_bookmark("no_goals") is False
    assert store.filter(bookmarked_only=True) == []


def test_filter_combines_criteria():
    store = InsightStore(MemoryKeyValueStore())
    _regenerate(store)

    critical = store.filter(priority="critical")
    assert [i.id for i in critical] == ["emergency_fund_critical"]
    assert all(i.category == "budget" for i in store.filter(category="budget"))
    assert [i.id for i in store.filter(search_text="  MONTHLY INCOME ")] == ["income_missing"]
    # tags are searched too
    assert "no_budgets" in [i.id for i in store.filter(search_text="getting-started")]
    assert store.filter(priority="critical", category="budget") == []
    assert store.filter(priority="all", category="all") == store.visible()


def test_preview_ignores_filters_and_is_priority_ordered():
    store = InsightStore(MemoryKeyValueStore())
    _regenerate(store)
    store.filter(category="goals")

    preview = store.preview()
    assert len(preview) == 3
    assert preview[0].id == "emergency_fund_critical"
    ranks = [i.rank for i in preview]
    assert ranks == sorted(ranks, reverse=True)


def test_regenerate_writes_last_update_and_stats():
    kv = MemoryKeyValueStore()
    store = InsightStore(kv)
    assert store.last_update is None

    _regenerate(store)

    assert kv.get(LAST_INSIGHT_UPDATE_KEY) == NOW.isoformat()
    assert store.last_update == NOW
    assert store.stats()["total"] == len(store.visible())


def test_corrupt_persisted_state_reads_as_empty():
    kv = MemoryKeyValueStore({DISMISSED_KEY: "not json"})
    assert load_json(kv, DISMISSED_KEY, []) == []
    assert InsightStore(kv).dismissed == frozenset()


def test_sqlite_store_persists_per_namespace():
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.executescript(SCHEMA_PATH.read_text(encoding="utf-8"))

    alice = InsightStore(SQLiteKeyValueStore(conn, "alice"))
    alice.dismiss("no_goals")
    alice.toggle_bookmark("no_budgets")

    assert InsightStore(SQLiteKeyValueStore(conn, "alice")).dismissed == {"no_goals"}
    assert InsightStore(SQLiteKeyValueStore(conn, "alice")).bookmarked == {"no_budgets"}
    assert InsightStore(SQLiteKeyValueStore(conn, "bob")).dismissed == frozenset()

    kv = SQLiteKeyValueStore(conn, "alice")
    kv.delete(DISMISSED_KEY)
    assert kv.get(DISMISSED_KEY) is None


def test_restored_list_honours_current_dismissals():
    kv = MemoryKeyValueStore()
    first = InsightStore(kv)
    _regenerate(first)
    first.dismiss("no_goals")
    generated = first.generated
    assert "no_goals" in [i.id for i in generated]

    second = InsightStore(kv, clock=lambda: datetime(2030, 1, 1))
    visible = second.restore(generated)

    assert "no_goals" not in [i.id for i in visible]
    assert second.last_update == NOW
    second.undismiss("no_goals")
    assert "no_goals" in [i.id for i in second.visible()]
