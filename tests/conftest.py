import pytest

from gopos.services.ai_responder import AIResponder
from gopos.services.bot import Bot
from gopos.services.commands import CommandDispatcher, NoteCommands
from gopos.services.completion import CompletionService
from gopos.services.errors import DeliveryError, RemoteServiceError
from gopos.services.history_store import ShelveHistoryRepository
from gopos.services.note_store import JsonNoteRepository
from gopos.services.observability import RecordingEventSink
from gopos.services.outbound import OutboundChannel
from gopos.utils.whatsapp_utils import reset_seen_message_ids


class FakeCompletion(CompletionService):
    """Returns canned replies and remembers every prompt it was given."""

    def __init__(self, reply="Ongkir sekitar Rp 125.000 📮"):
        self.reply = reply
        self.error = None
        self.calls = []

    def complete(self, messages):
        self.calls.append([dict(message) for message in messages])
        if self.error is not None:
            raise self.error
        if callable(self.reply):
            return self.reply(messages)
        return self.reply


class RecordingChannel(OutboundChannel):
    name = "recording"

    def __init__(self):
        self.sent = []
        self.fail = False

    def send_text(self, recipient, text):
        if self.fail:
            raise DeliveryError("gateway down")
        self.sent.append((recipient, text))


@pytest.fixture(autouse=True)
def _clear_seen_ids():
    reset_seen_message_ids()
    yield
    reset_seen_message_ids()


@pytest.fixture
def events():
    return RecordingEventSink()


@pytest.fixture
def note_repo(tmp_path):
    return JsonNoteRepository(tmp_path / "notes.json")


@pytest.fixture
def history_repo(tmp_path):
    return ShelveHistoryRepository(tmp_path / "wa_chat_history")


@pytest.fixture
def completion():
    return FakeCompletion()


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def note_commands(note_repo, events):
    return NoteCommands(note_repo, events=events)


@pytest.fixture
def dispatcher(note_commands):
    return CommandDispatcher(note_commands)


@pytest.fixture
def responder(completion, history_repo, events):
    return AIResponder(completion, history_repo, events=events)


@pytest.fixture
def bot(dispatcher, responder, channel, events):
    return Bot(dispatcher, responder, channel, events=events)


@pytest.fixture
def remote_failure():
    return RemoteServiceError("ollama error: connection refused")
