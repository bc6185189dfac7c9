import logging
from typing import List, Optional

from bson import ObjectId
from pymongo import ASCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from gopos.services.errors import StoreError
from gopos.services.history_store import (
    COLLECTION_NAME as HISTORY_COLLECTION,
    ConversationHistory,
    HistoryRepository,
)
from gopos.services.note_store import COLLECTION_NAME as NOTES_COLLECTION
from gopos.services.note_store import Note, NoteRepository


def connect_database(mongo_url: str, database_name: str):
    """Open a client and return the named database. Connection is lazy in pymongo."""
    client = MongoClient(mongo_url, serverSelectionTimeoutMS=5000, connectTimeoutMS=10000)
    logging.info("MongoDB client created for database %s", database_name)
    return client[database_name]


def _id_filter(note_id: str) -> dict:
    """Match notes keyed by our hex string ids and by native ObjectIds."""
    if ObjectId.is_valid(note_id):
        return {"_id": {"$in": [note_id, ObjectId(note_id)]}}
    return {"_id": note_id}


class MongoNoteRepository(NoteRepository):
    def __init__(self, collection: Collection):
        self.collection = collection

    @classmethod
    def from_database(cls, db) -> "MongoNoteRepository":
        return cls(db[NOTES_COLLECTION])

    def find_by_user(self, user_phone: str) -> List[Note]:
        try:
            cursor = self.collection.find({"user_phone": user_phone}).sort(
                "created_at", ASCENDING
            )
            return [Note.from_dict(doc) for doc in cursor]
        except PyMongoError as exc:
            raise StoreError(str(exc), exc) from exc

    def insert(self, note: Note) -> None:
        document = {
            "_id": note.id,
            "user_phone": note.user_phone,
            "title": note.title,
            "content": note.content,
            "created_at": note.created_at,
        }
        try:
            self.collection.insert_one(document)
        except PyMongoError as exc:
            raise StoreError(str(exc), exc) from exc

    def delete_by_id(self, note_id: str) -> bool:
        try:
            result = self.collection.delete_one(_id_filter(note_id))
        except PyMongoError as exc:
            raise StoreError(str(exc), exc) from exc
        return result.deleted_count > 0


class MongoHistoryRepository(HistoryRepository):
    def __init__(self, collection: Collection):
        self.collection = collection

    @classmethod
    def from_database(cls, db) -> "MongoHistoryRepository":
        return cls(db[HISTORY_COLLECTION])

    def get_history(self, phone_number: str) -> Optional[ConversationHistory]:
        try:
            document = self.collection.find_one({"phone_number": phone_number})
            if not document:
                return None
            return ConversationHistory.from_dict(phone_number, document)
        except PyMongoError as exc:
            raise StoreError(str(exc), exc) from exc
        except (TypeError, ValueError, AttributeError) as exc:
            raise StoreError(f"malformed history for {phone_number}: {exc}", exc) from exc

    def upsert_history(self, history: ConversationHistory) -> None:
        messages = [
            {"role": turn.role, "content": turn.content, "timestamp": turn.timestamp}
            for turn in history.turns
        ]
        update = {
            "$set": {"messages": messages, "updated_at": history.updated_at},
            "$setOnInsert": {"phone_number": history.phone_number},
        }
        try:
            self.collection.update_one(
                {"phone_number": history.phone_number}, update, upsert=True
            )
        except PyMongoError as exc:
            raise StoreError(str(exc), exc) from exc

    def delete_history(self, phone_number: str) -> None:
        try:
            self.collection.delete_one({"phone_number": phone_number})
        except PyMongoError as exc:
            raise StoreError(str(exc), exc) from exc

