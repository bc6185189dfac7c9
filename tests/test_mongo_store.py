from datetime import datetime
from unittest.mock import MagicMock

import pytest
from bson import ObjectId
from pymongo import ASCENDING
from pymongo.errors import PyMongoError

from gopos.services.errors import StoreError
from gopos.services.history_store import WIB, ChatTurn, ConversationHistory
from gopos.services.mongo_store import MongoHistoryRepository, MongoNoteRepository
from gopos.services.note_store import Note

CREATED = datetime(2025, 1, 2, 10, 0, tzinfo=WIB)


def test_note_find_by_user_filters_and_sorts():
    collection = MagicMock()
    collection.find.return_value.sort.return_value = [
        {"_id": "a1", "user_phone": "6281", "title": "Catatan", "content": "beli susu", "created_at": CREATED},
    ]

    notes = MongoNoteRepository(collection).find_by_user("6281")

    collection.find.assert_called_once_with({"user_phone": "6281"})
    collection.find.return_value.sort.assert_called_once_with("created_at", ASCENDING)
    assert [(note.id, note.content, note.created_at) for note in notes] == [
        ("a1", "beli susu", CREATED)
    ]


def test_note_insert_uses_note_id_as_document_id():
    collection = MagicMock()
    note = Note(user_phone="6281", content="kirim paket", id="n-1", created_at=CREATED)

    MongoNoteRepository(collection).insert(note)

    collection.insert_one.assert_called_once_with(
        {
            "_id": "n-1",
            "user_phone": "6281",
            "title": "Catatan",
            "content": "kirim paket",
            "created_at": CREATED,
        }
    )


def test_note_delete_by_id_reports_whether_removed():
    collection = MagicMock()
    collection.delete_one.return_value.deleted_count = 1
    repo = MongoNoteRepository(collection)

    assert repo.delete_by_id("n-1") is True
    collection.delete_one.assert_called_once_with({"_id": "n-1"})

    collection.delete_one.return_value.deleted_count = 0
    assert repo.delete_by_id("n-1") is False


def test_note_errors_become_store_errors():
    collection = MagicMock()
    collection.find.side_effect = PyMongoError("not primary")
    collection.insert_one.side_effect = PyMongoError("not primary")
    repo = MongoNoteRepository(collection)

    with pytest.raises(StoreError, match="not primary"):
        repo.find_by_user("6281")
    with pytest.raises(StoreError):
        repo.insert(Note(user_phone="6281", content="x"))


def test_history_get_missing_returns_none():
    collection = MagicMock()
    collection.find_one.return_value = None

    assert MongoHistoryRepository(collection).get_history("6281") is None
    collection.find_one.assert_called_once_with({"phone_number": "6281"})


def test_history_get_converts_document():
    collection = MagicMock()
    collection.find_one.return_value = {
        "phone_number": "6281",
        "messages": [
            {"role": "user", "content": "halo", "timestamp": CREATED},
            {"role": "model", "content": "Halo! 📮", "timestamp": CREATED},
        ],
        "updated_at": CREATED,
    }

    history = MongoHistoryRepository(collection).get_history("6281")

    assert [(turn.role, turn.content) for turn in history.turns] == [
        ("user", "halo"),
        ("assistant", "Halo! 📮"),
    ]
    assert history.updated_at == CREATED


def test_history_upsert_sets_messages_keyed_by_phone():
    collection = MagicMock()
    history = ConversationHistory(
        phone_number="6281",
        turns=[ChatTurn("user", "halo", CREATED), ChatTurn("assistant", "hai", CREATED)],
        updated_at=CREATED,
    )

    MongoHistoryRepository(collection).upsert_history(history)

    collection.update_one.assert_called_once_with(
        {"phone_number": "6281"},
        {
            "$set": {
                "messages": [
                    {"role": "user", "content": "halo", "timestamp": CREATED},
                    {"role": "assistant", "content": "hai", "timestamp": CREATED},
                ],
                "updated_at": CREATED,
            },
            "$setOnInsert": {"phone_number": "6281"},
        },
        upsert=True,
    )


def test_history_delete_and_errors():
    collection = MagicMock()
    repo = MongoHistoryRepository(collection)

    repo.delete_history("6281")
    collection.delete_one.assert_called_once_with({"phone_number": "6281"})

    collection.update_one.side_effect = PyMongoError("timeout")
    with pytest.raises(StoreError):
        repo.upsert_history(ConversationHistory(phone_number="6281"))


def test_note_delete_matches_native_object_ids():
    object_id = ObjectId()
    collection = MagicMock()
    collection.find.return_value.sort.return_value = [
        {"_id": object_id, "user_phone": "6281", "content": "beli susu", "created_at": CREATED}
    ]
    collection.delete_one.return_value.deleted_count = 1
    repo = MongoNoteRepository(collection)

    note = repo.find_by_user("6281")[0]

    assert repo.delete_by_id(note.id) is True
    collection.delete_one.assert_called_once_with(
        {"_id": {"$in": [str(object_id), object_id]}}
    )


def test_history_get_tolerates_malformed_messages():
    collection = MagicMock()
    collection.find_one.return_value = {"phone_number": "6281", "messages": 5, "updated_at": CREATED}

    history = MongoHistoryRepository(collection).get_history("6281")

    assert history.turns == []
