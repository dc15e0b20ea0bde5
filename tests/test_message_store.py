"""
Tests for message persistence: validation, bounds and sender enrichment.
"""

import pytest

from chat_relay.errors import NotReadyError, OperationTimeout, ValidationError, WriteError
from chat_relay.messages import MessageDraft, MessageStore
from chat_relay.storage import Collections, InvalidIdentifierError, StorageError


@pytest.fixture
def message_store(store):
    return MessageStore(
        store,
        insert_timeout_seconds=0.2,
        readback_timeout_seconds=0.2,
        sender_timeout_seconds=0.2,
    )


def draft(**overrides) -> MessageDraft:
    fields = {"rfq": "R1", "sender": "U1", "receiver": "U2", "body": "Can you ship by Friday?"}
    fields.update(overrides)
    return MessageDraft(**fields)


@pytest.mark.asyncio
async def test_persist_returns_stored_message(store, message_store):
    message = await message_store.persist(draft(attachments=["datasheet.pdf", "drawing.png"]))

    payload = message.to_payload()
    assert set(payload) == {
        "_id", "quotation", "rfq", "product", "sender", "receiver",
        "message", "attachments", "readAt", "createdAt",
    }
    assert payload["rfq"] == "R1"
    assert payload["quotation"] is None and payload["product"] is None
    assert payload["message"] == "Can you ship by Friday?"
    assert payload["attachments"] == ["datasheet.pdf", "drawing.png"]
    assert payload["readAt"] is None
    assert payload["createdAt"]
    assert payload["sender"] == {
        "_id": "U1",
        "username": "buyer",
        "email": "buyer@example.com",
        "profile": {"company": "Acme Imports"},
    }
    assert [doc["_id"] for doc in store.documents(Collections.MESSAGES)] == [payload["_id"]]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides, error",
    [
        ({"quotation": "Q1"}, "Only one of"),
        ({"rfq": None}, "Either quotationId, rfqId, or productId is required"),
        ({"body": ""}, "Message and receiver are required"),
        ({"receiver": None}, "Message and receiver are required"),
    ],
    ids=["two-threads", "no-thread", "no-body", "no-receiver"],
)
async def test_invalid_draft_never_writes(store, message_store, overrides, error):
    with pytest.raises(ValidationError, match=error):
        await message_store.persist(draft(**overrides))
    assert store.documents(Collections.MESSAGES) == []


@pytest.mark.asyncio
async def test_slow_insert_times_out(store, message_store):
    store.delays["insert:quotationmessages"] = 1.0
    with pytest.raises(OperationTimeout, match="Insert timeout after 0.2 seconds"):
        await message_store.persist(draft())


@pytest.mark.asyncio
async def test_rejected_insert_is_write_error(store, message_store):
    store.failures["insert:quotationmessages"] = StorageError("document failed validation")
    with pytest.raises(WriteError, match="Failed to save message"):
        await message_store.persist(draft())


@pytest.mark.asyncio
async def test_disconnected_insert_is_not_ready(store, message_store):
    store.set_connected(False)
    with pytest.raises(NotReadyError):
        await message_store.persist(draft())


@pytest.mark.asyncio
async def test_missing_read_back_is_write_error(store, message_store):
    store.missing.add("find:quotationmessages")
    with pytest.raises(WriteError, match="Message saved but could not be retrieved"):
        await message_store.persist(draft())


@pytest.mark.asyncio
async def test_sender_lookup_failure_is_not_fatal(store, message_store):
    store.failures["find:users"] = StorageError("users unavailable")
    message = await message_store.persist(draft())
    assert message.sender is None
    assert message.sender_id == "U1"
    assert message.to_payload()["sender"] is None


@pytest.mark.asyncio
async def test_slow_sender_lookup_is_not_fatal(store, message_store):
    store.delays["find:users"] = 1.0
    message = await message_store.persist(draft())
    assert message.sender is None
    assert message.body == "Can you ship by Friday?"


@pytest.mark.asyncio
async def test_unknown_sender_is_unresolved(message_store):
    message = await message_store.persist(draft(sender="U404"))
    assert message.sender is None


@pytest.mark.asyncio
async def test_unset_thread_fields_are_not_stored(store, message_store):
    await message_store.persist(draft())

    [doc] = store.documents(Collections.MESSAGES)
    assert doc["rfq"] == "R1"
    assert "quotation" not in doc
    assert "product" not in doc


@pytest.mark.asyncio
async def test_unstorable_receiver_is_validation_error(store, message_store):
    store.failures["insert:quotationmessages"] = InvalidIdentifierError(
        "Invalid receiver: 'not-an-id'", field="receiver"
    )
    with pytest.raises(ValidationError, match="Invalid receiver ID"):
        await message_store.persist(draft(receiver="not-an-id"))
    assert store.documents(Collections.MESSAGES) == []
