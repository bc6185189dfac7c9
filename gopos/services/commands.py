from dataclasses import dataclass
from textwrap import dedent
from typing import Optional

from gopos.services.errors import StoreError
from gopos.services.note_store import Note, NoteRepository
from gopos.services.observability import EventSink, LoggingEventSink

HELP_COMMANDS = {"help", "bantuan", "menu"}
SAVE_PREFIXES = ("simpan ", "catat ")
LIST_COMMANDS = {"list", "catatan", "daftar"}
DELETE_PREFIX = "hapus "

HELP_MESSAGE = dedent(
    """
    🤖 *GOPOS Bot - Menu Bantuan*

    📝 *Catatan:*
    • simpan [isi] - Simpan catatan baru
    • catat [isi] - Sama dengan simpan
    • list - Lihat semua catatan
    • hapus [nomor] - Hapus catatan

    🧠 *AI Assistant (GOPOS AI):*
    • Ketik pertanyaan apapun
    • AI mengingat 10 pesan terakhir
    • Contoh: "ongkir bandung ke jakarta 5kg"

    ❓ *Bantuan:*
    • help - Tampilkan menu ini

    💡 Contoh: "simpan beli susu besok"
    """
).strip()

EMPTY_NOTE_MESSAGE = "❌ Isi catatan kosong. Contoh: *simpan beli beras*"
DELETE_USAGE_MESSAGE = "❌ Format salah. Contoh: *hapus 1*"
NO_NOTES_MESSAGE = (
    "📭 Belum ada catatan.\n\nKetik *simpan [isi]* untuk menyimpan catatan pertamamu!"
)


@dataclass(frozen=True)
class Command:
    name: str
    argument: str = ""


def parse_command(raw_message: str) -> Optional[Command]:
    """
    Classify a message as help/save/list/delete. Returns None when the message
    is not a command and should go to the AI assistant instead.
    """
    msg = (raw_message or "").strip()
    msg_lower = msg.lower()

    if msg_lower in HELP_COMMANDS:
        return Command("help")

    for prefix in SAVE_PREFIXES:
        if msg_lower.startswith(prefix):
            return Command("save", msg[len(prefix):].strip())

    if msg_lower in LIST_COMMANDS:
        return Command("list")

    if msg_lower.startswith(DELETE_PREFIX):
        return Command("delete", msg[len(DELETE_PREFIX):].strip())

    return None


def parse_ordinal(raw: str) -> Optional[int]:
    """Positive integer written with ASCII digits, or None."""
    value = (raw or "").strip()
    digits = value.lstrip("+")
    if not (digits.isascii() and digits.isdigit()):
        return None
    try:
        number = int(value)
    except ValueError:
        return None
    return number if number >= 1 else None


class NoteCommands:
    """Save, list and delete notes addressed by their position in the user's list."""

    def __init__(self, notes: NoteRepository, *, events: EventSink | None = None):
        self.notes = notes
        self.events = events or LoggingEventSink()

    def _store_failed(self, operation: str, user_phone: str, exc: StoreError) -> None:
        self.events.emit(
            "note_store_failed", operation=operation, phone=user_phone, error=str(exc)
        )

    def save(self, user_phone: str, content: str) -> str:
        content = (content or "").strip()
        if not content:
            return EMPTY_NOTE_MESSAGE

        note = Note(user_phone=user_phone, content=content)
        try:
            self.notes.insert(note)
        except StoreError as exc:
            self._store_failed("save", user_phone, exc)
            return f"❌ Gagal menyimpan: {exc}"

        return f"✅ Tersimpan!\n\n📝 {content}"

    def list(self, user_phone: str) -> str:
        try:
            notes = self.notes.find_by_user(user_phone)
        except StoreError as exc:
            self._store_failed("list", user_phone, exc)
            return f"❌ Gagal mengambil catatan: {exc}"

        if not notes:
            return NO_NOTES_MESSAGE

        lines = ["📂 *Daftar Catatan:*", ""]
        lines.extend(f"{idx}. {note.content}" for idx, note in enumerate(notes, start=1))
        lines.append("")
        lines.append("💡 Ketik *hapus [nomor]* untuk menghapus")
        return "\n".join(lines)

    def delete(self, user_phone: str, ordinal: int) -> str:
        try:
            notes = self.notes.find_by_user(user_phone)
        except StoreError as exc:
            self._store_failed("delete", user_phone, exc)
            return f"❌ Gagal: {exc}"

        if ordinal < 1 or ordinal > len(notes):
            return (
                f"❌ Catatan nomor {ordinal} tidak ditemukan. "
                f"Kamu punya {len(notes)} catatan."
            )

        note = notes[ordinal - 1]
        try:
            removed = self.notes.delete_by_id(note.id)
        except StoreError as exc:
            self._store_failed("delete", user_phone, exc)
            return f"❌ Gagal menghapus: {exc}"
        if not removed:
            self.events.emit("note_delete_missed", phone=user_phone, note_id=note.id)
            return f"❌ Gagal menghapus: catatan #{ordinal} sudah tidak ada."

        return f"🗑️ Catatan #{ordinal} dihapus:\n\n~{note.content}~"


class CommandDispatcher:
    def __init__(self, note_commands: NoteCommands):
        self.note_commands = note_commands

    def dispatch(self, sender: str, raw_message: str) -> Optional[str]:
        """
        Handle a note command and return the reply text, or None when the
        message is not a command.
        """
        command = parse_command(raw_message)
        if command is None:
            return None

        if command.name == "help":
            return HELP_MESSAGE
        if command.name == "save":
            return self.note_commands.save(sender, command.argument)
        if command.name == "list":
            return self.note_commands.list(sender)

        ordinal = parse_ordinal(command.argument)
        if ordinal is None:
            return DELETE_USAGE_MESSAGE
        return self.note_commands.delete(sender, ordinal)
