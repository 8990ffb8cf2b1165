import pytest

from chatbot.config import Settings
from chatbot.database.models import (
    Conversation,
    Message,
    Sender,
    normalize_timestamp,
    utcnow_iso,
)


def test_sender_is_closed():
    assert {s.value for s in Sender} == {"user", "ai"}
    assert Sender("ai") is Sender.AI

    with pytest.raises(ValueError):
        Sender("assistant")


def test_records_serialize_with_camel_case_names():
    message = Message(id="m1", conversation_id="c1", sender="user", text="hi",
                      timestamp="2024-01-01T00:00:01Z")

    assert message.model_dump(by_alias=True, mode="json") == {
        "id": "m1",
        "conversationId": "c1",
        "sender": "user",
        "text": "hi",
        "timestamp": "2024-01-01T00:00:01Z",
    }

    conversation = Conversation.model_validate(
        {"id": "c1", "createdAt": "2024-01-01T00:00:00Z", "updatedAt": "2024-01-01T00:00:00Z"}
    )
    assert conversation.created_at == "2024-01-01T00:00:00Z"
    assert conversation.messages == []


def test_utcnow_iso_format():
    stamp = utcnow_iso()

    assert stamp.endswith("Z")
    assert len(stamp) == len("2024-01-01T00:00:00.000Z")


def test_database_path_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "env.db"))

    assert Settings().database_path == str(tmp_path / "env.db")


def test_database_path_unset_by_default(monkeypatch):
    monkeypatch.delenv("DATABASE_PATH", raising=False)

    assert Settings(_env_file=None).database_path is None


@pytest.mark.parametrize("value, expected", [
    ("2024-01-01T00:00:01Z", "2024-01-01T00:00:01.000Z"),
    ("2024-01-01T00:00:01.500Z", "2024-01-01T00:00:01.500Z"),
    ("2024-01-01T00:00:01", "2024-01-01T00:00:01.000Z"),
    ("2024-01-01T05:30:00+05:30", "2024-01-01T00:00:00.000Z"),
])
def test_normalize_timestamp(value, expected):
    assert normalize_timestamp(value) == expected


def test_normalize_timestamp_rejects_garbage():
    with pytest.raises(ValueError):
        normalize_timestamp("banana")
    with pytest.raises(ValueError):
        normalize_timestamp(None)
