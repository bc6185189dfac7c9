from unittest.mock import MagicMock

import pytest

from gopos.services.commands import (
    DELETE_USAGE_MESSAGE,
    EMPTY_NOTE_MESSAGE,
    HELP_MESSAGE,
    NO_NOTES_MESSAGE,
    CommandDispatcher,
    NoteCommands,
    parse_command,
    parse_ordinal,
)
from gopos.services.errors import StoreError
from gopos.services.note_store import Note, NoteRepository

PHONE = "6281234567890"


@pytest.mark.parametrize("message", ["HELP", "help", "  help  ", "Bantuan", "MENU"])
def test_help_is_case_insensitive(dispatcher, message):
    assert dispatcher.dispatch(PHONE, message) == HELP_MESSAGE


@pytest.mark.parametrize(
    "message, expected",
    [
        ("simpan beli susu", ("save", "beli susu")),
        ("SIMPAN Beli Susu", ("save", "Beli Susu")),
        ("catat   rapat jam 3  ", ("save", "rapat jam 3")),
        ("daftar", ("list", "")),
        ("Catatan", ("list", "")),
        ("hapus 2", ("delete", "2")),
        ("HAPUS  abc ", ("delete", "abc")),
    ],
)
def test_parse_command(message, expected):
    command = parse_command(message)
    assert (command.name, command.argument) == expected


@pytest.mark.parametrize(
    "message",
    ["ongkir bandung ke jakarta 5kg", "simpan", "hapus", "listing", "helpme", ""],
)
def test_non_commands_fall_through(dispatcher, message):
    assert parse_command(message) is None
    assert dispatcher.dispatch(PHONE, message) is None


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1", 1),
        (" 12 ", 12),
        ("+3", 3),
        ("0", None),
        ("-1", None),
        ("abc", None),
        ("1.5", None),
        ("", None),
        ("٣", None),
        ("１", None),
    ],
)
def test_parse_ordinal(raw, expected):
    assert parse_ordinal(raw) == expected


def test_save_keeps_original_case_and_confirms(dispatcher, note_repo):
    reply = dispatcher.dispatch(PHONE, "simpan beli susu")

    notes = note_repo.find_by_user(PHONE)
    assert [note.content for note in notes] == ["beli susu"]
    assert "beli susu" in reply
    assert reply.startswith("✅")


@pytest.mark.parametrize("content", ["", "   "])
def test_save_rejects_empty_content(note_commands, note_repo, content):
    assert note_commands.save(PHONE, content) == EMPTY_NOTE_MESSAGE
    assert note_repo.find_by_user(PHONE) == []


def test_list_empty_state(dispatcher):
    assert dispatcher.dispatch(PHONE, "list") == NO_NOTES_MESSAGE


def test_save_list_delete_round_trip(dispatcher):
    dispatcher.dispatch(PHONE, "simpan buy milk")

    listing = dispatcher.dispatch(PHONE, "list")
    assert "1. buy milk" in listing
    assert "hapus [nomor]" in listing

    deleted = dispatcher.dispatch(PHONE, "hapus 1")
    assert "#1" in deleted
    assert "buy milk" in deleted

    assert dispatcher.dispatch(PHONE, "list") == NO_NOTES_MESSAGE


def test_list_numbers_notes_in_store_order(dispatcher):
    for item in ("satu", "dua", "tiga"):
        dispatcher.dispatch(PHONE, f"catat {item}")

    listing = dispatcher.dispatch(PHONE, "daftar")
    assert "1. satu\n2. dua\n3. tiga" in listing


def test_notes_are_scoped_per_user(dispatcher):
    dispatcher.dispatch(PHONE, "simpan rahasia")
    assert dispatcher.dispatch("6289999", "list") == NO_NOTES_MESSAGE


def test_delete_addresses_by_current_position(dispatcher, note_repo):
    for item in ("satu", "dua", "tiga"):
        dispatcher.dispatch(PHONE, f"simpan {item}")

    dispatcher.dispatch(PHONE, "hapus 2")

    assert [note.content for note in note_repo.find_by_user(PHONE)] == ["satu", "tiga"]


def test_delete_out_of_range_names_both_numbers(dispatcher, note_repo):
    dispatcher.dispatch(PHONE, "simpan satu")

    reply = dispatcher.dispatch(PHONE, "hapus 5")

    assert "5" in reply
    assert "1 catatan" in reply
    assert len(note_repo.find_by_user(PHONE)) == 1


def test_malformed_ordinal_never_touches_store():
    repo = MagicMock(spec=NoteRepository)
    dispatcher = CommandDispatcher(NoteCommands(repo))

    assert dispatcher.dispatch(PHONE, "hapus abc") == DELETE_USAGE_MESSAGE
    assert dispatcher.dispatch(PHONE, "hapus 0") == DELETE_USAGE_MESSAGE
    assert repo.mock_calls == []


def test_delete_uses_stored_id():
    repo = MagicMock(spec=NoteRepository)
    first = Note(user_phone=PHONE, content="satu", id="note-a")
    second = Note(user_phone=PHONE, content="dua", id="note-b")
    repo.find_by_user.return_value = [first, second]
    repo.delete_by_id.return_value = True

    reply = NoteCommands(repo).delete(PHONE, 2)

    repo.delete_by_id.assert_called_once_with("note-b")
    assert "dua" in reply


def test_store_failures_are_reported_in_chat(events):
    repo = MagicMock(spec=NoteRepository)
    repo.insert.side_effect = StoreError("connection reset")
    repo.find_by_user.side_effect = StoreError("connection reset")
    commands = NoteCommands(repo, events=events)

    assert commands.save(PHONE, "beli susu") == "❌ Gagal menyimpan: connection reset"
    assert "connection reset" in commands.list(PHONE)
    assert "connection reset" in commands.delete(PHONE, 1)
    assert events.names() == ["note_store_failed"] * 3


def test_delete_failure_after_lookup_is_reported(events):
    repo = MagicMock(spec=NoteRepository)
    repo.find_by_user.return_value = [Note(user_phone=PHONE, content="satu")]
    repo.delete_by_id.side_effect = StoreError("timeout")

    reply = NoteCommands(repo, events=events).delete(PHONE, 1)

    assert reply == "❌ Gagal menghapus: timeout"


def test_delete_reports_note_that_was_already_gone(events):
    repo = MagicMock(spec=NoteRepository)
    repo.find_by_user.return_value = [Note(user_phone=PHONE, content="beli susu", id="note-a")]
    repo.delete_by_id.return_value = False

    reply = NoteCommands(repo, events=events).delete(PHONE, 1)

    assert reply == "❌ Gagal menghapus: catatan #1 sudah tidak ada."
    assert "dihapus" not in reply
    assert events.events == [("note_delete_missed", {"phone": PHONE, "note_id": "note-a"})]


def test_non_ascii_digits_get_usage_message():
    repo = MagicMock(spec=NoteRepository)
    dispatcher = CommandDispatcher(NoteCommands(repo))

    assert dispatcher.dispatch(PHONE, "hapus ٣") == DELETE_USAGE_MESSAGE
    assert repo.mock_calls == []
