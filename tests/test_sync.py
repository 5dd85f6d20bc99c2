import datetime

import pytest
from sqlalchemy import create_engine

from llm_quiz_document import db
from llm_quiz_document.db import ChangeNotification, DocumentStore
from llm_quiz_document.recall import initialize_model
from llm_quiz_document.review import apply_review, learn, unlearn
from llm_quiz_document.sync import SyncBridge, fold_change

NOW = datetime.datetime(2026, 10, 18, 12, 0, tzinfo=datetime.timezone.utc)
A = "model/猫が好き/meaning"
B = "model/猫が好き/reading"


@pytest.fixture(autouse=True)
def setup_db(tmp_path, monkeypatch):
    test_db = str(tmp_path / "test_sync.db")
    monkeypatch.setenv("LLM_QUIZ_DB", test_db)
    db.engine = create_engine(f"sqlite:///{test_db}")
    db.SessionLocal = db.sessionmaker(bind=db.engine, expire_on_commit=False)
    db.init_db()
    yield


def test_fold_change():
    model = initialize_model(NOW)
    models = {A: None}
    fold_change(models, ChangeNotification(A, False, model.to_doc(), 1))
    assert models[A] == model
    fold_change(models, ChangeNotification(A, True, None, 2))
    assert models[A] is None
    fold_change(models, ChangeNotification(A, False, {}, 3))
    assert models[A] is None


def test_last_delivered_notification_wins():
    first = initialize_model(NOW)
    second = initialize_model(NOW + datetime.timedelta(hours=1))
    models = {A: None}
    # Delivered out of order: the later delivery still wins
    fold_change(models, ChangeNotification(A, False, second.to_doc(), 5))
    fold_change(models, ChangeNotification(A, False, first.to_doc(), 4))
    assert models[A] == first


def test_load_reads_existing_models():
    store = DocumentStore()
    learn(store, [A], NOW)
    with SyncBridge(store, [A, B]) as bridge:
        assert bridge.models == {A: initialize_model(NOW), B: None}
        assert list(bridge.models) == [A, B]


def test_notifications_reach_the_mapping():
    store = DocumentStore()
    with SyncBridge(store, [A, B]) as bridge:
        learn(store, [A, B], NOW)
        unlearn(store, [B])
        folded = bridge.sync()
        assert [c.key for c in folded] == [A, B, B]
        assert bridge.models == {A: initialize_model(NOW), B: None}


def test_local_update_is_provisional_until_notified():
    store = DocumentStore()
    learn(store, [A], NOW)
    with SyncBridge(store, [A]) as bridge:
        later = NOW + datetime.timedelta(hours=1)
        updated, _ = apply_review(store, A, True, later)
        bridge.apply_local(updated)
        assert A in bridge.provisional

        # Someone else unlearns the key before our notification is folded
        unlearn(store, [A])
        bridge.sync()
        assert A not in bridge.provisional
        assert bridge.models[A] is None


def test_close_releases_and_is_idempotent():
    store = DocumentStore()
    bridge = SyncBridge(store, [A])
    bridge.load()
    bridge.close()
    bridge.close()
    learn(store, [A], NOW)
    assert bridge.sync() == []
    assert bridge.models[A] is None
