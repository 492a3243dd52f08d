from __future__ import annotations

import asyncio

import pytest
from fakes import FakeTransport, fail, ok

from nudge.enrichment import EnrichmentCache
from nudge.errors import DEFAULT_ERROR_MESSAGE, InvalidTransition, RequestError
from nudge.ledger import FAILED_SUFFIX, MessageIds, MessageRecord, MessageRetryLedger
from nudge.notifications import Notice
from nudge.nudges import NudgeClient


def _ledger(transport: FakeTransport, cache: EnrichmentCache, **kwargs) -> MessageRetryLedger:
    return MessageRetryLedger(NudgeClient(transport, cache=cache), **kwargs)


def test_display_text_annotates_failed_records_only() -> None:
    record = MessageRecord(id="1", origin="local", text="Buy AAPL")
    assert record.display_text == "Buy AAPL"

    record.transition("failed")
    assert record.display_text == "Buy AAPL (Failed to send)"
    assert record.text == "Buy AAPL"


def test_record_transitions() -> None:
    record = MessageRecord(id="m1", origin="local", text="hi")
    record.transition("failed")
    record.transition("pending")
    record.transition("settled")

    with pytest.raises(InvalidTransition):
        record.transition("pending")
    with pytest.raises(InvalidTransition):
        MessageRecord(id="m2", origin="local", text="hi", status="failed").transition("settled")


def test_ids_are_unique_even_within_one_millisecond() -> None:
    ids = MessageIds(clock=lambda: 5_000_000)
    assert [ids.local(), ids.local(), ids.remote()] == ["5", "6", "bot-7"]


@pytest.mark.asyncio
async def test_send_success_settles_and_appends_reply(transport: FakeTransport, cache: EnrichmentCache) -> None:
    transport.queue(ok({"nudge": "Keep investing regularly."}))
    ledger = _ledger(transport, cache)

    record = await ledger.send("How often should I invest?")

    assert record.status == "settled"
    assert [(r.origin, r.text, r.status) for r in ledger.records] == [
        ("local", "How often should I invest?", "settled"),
        ("remote", "Keep investing regularly.", "settled"),
    ]
    assert transport.requests[0].body["message"] == "How often should I invest?"


@pytest.mark.asyncio
async def test_failed_send_then_retry_keeps_identity(transport: FakeTransport, cache: EnrichmentCache) -> None:
    transport.queue(fail(500, {"error": "rate_limited"}))
    ledger = _ledger(transport, cache)

    record = await ledger.send("Buy AAPL")

    assert record.status == "failed"
    assert record.text == "Buy AAPL"
    assert record.display_text == "Buy AAPL (Failed to send)"
    assert ledger.notice.message == "rate_limited"
    assert ledger.notice.armed

    transport.queue(ok({"nudge": "Noted."}))
    retried = await ledger.retry(record.id)

    assert retried is record
    assert record.status == "settled"
    assert record.display_text == "Buy AAPL"
    assert [r.id for r in ledger.records][0] == record.id
    assert [(r.origin, r.text) for r in ledger.records] == [("local", "Buy AAPL"), ("remote", "Noted.")]
    assert ledger.notice.message is None
    assert [request.body["message"] for request in transport.requests] == ["Buy AAPL", "Buy AAPL"]
    ledger.close()


@pytest.mark.asyncio
async def test_double_failure_annotates_once(transport: FakeTransport, cache: EnrichmentCache) -> None:
    transport.queue(fail(500, {"error": "first"}), RequestError("Network Error"))
    ledger = _ledger(transport, cache)

    record = await ledger.send("Sell TSLA")
    retried = await ledger.retry(record.id)

    assert retried is record
    assert record.status == "failed"
    assert record.display_text.count(FAILED_SUFFIX) == 1
    assert len(ledger.records) == 1
    assert ledger.notice.message == "Network Error"
    ledger.close()


@pytest.mark.asyncio
async def test_retry_guards_non_failed_and_unknown_records(transport: FakeTransport, cache: EnrichmentCache) -> None:
    transport.queue(ok({"nudge": "ok"}))
    ledger = _ledger(transport, cache, greeting="Hello!")
    record = await ledger.send("hi")

    assert await ledger.retry("missing") is None
    assert await ledger.retry(record.id) is record
    assert await ledger.retry(ledger.records[0].id) is ledger.records[0]
    assert len(transport.requests) == 1
    assert record.status == "settled"


@pytest.mark.asyncio
async def test_concurrent_sends_update_their_own_records(transport: FakeTransport, cache: EnrichmentCache) -> None:
    await cache.resolve()
    ledger = _ledger(transport, cache)
    first_reply = transport.hold()
    second_reply = transport.hold()

    first = asyncio.create_task(ledger.send("first"))
    await asyncio.sleep(0)
    second = asyncio.create_task(ledger.send("second"))
    await asyncio.sleep(0)
    assert [r.status for r in ledger.records] == ["pending", "pending"]

    second_reply.set_result(fail(500, {"error": "boom"}))
    await second
    first_reply.set_result(ok({"nudge": "reply to first"}))
    await first

    assert [(r.text, r.status) for r in ledger.records] == [
        ("first", "settled"),
        ("second", "failed"),
        ("reply to first", "settled"),
    ]
    ledger.close()


@pytest.mark.asyncio
async def test_invalid_reply_marks_record_failed(transport: FakeTransport, cache: EnrichmentCache) -> None:
    transport.queue(ok(["not", "a", "nudge"]))
    ledger = _ledger(transport, cache)

    record = await ledger.send("hello")

    assert record.status == "failed"
    assert ledger.notice.message == "Received an invalid nudge response"
    ledger.close()


@pytest.mark.asyncio
async def test_unknown_failure_shows_default_message(transport: FakeTransport, cache: EnrichmentCache) -> None:
    transport.queue(RuntimeError())
    ledger = _ledger(transport, cache)

    await ledger.send("hello")

    assert ledger.notice.message == DEFAULT_ERROR_MESSAGE
    ledger.close()


@pytest.mark.asyncio
async def test_blank_message_is_rejected(transport: FakeTransport, cache: EnrichmentCache) -> None:
    ledger = _ledger(transport, cache)

    with pytest.raises(ValueError):
        await ledger.send("   ")

    assert ledger.records == ()


@pytest.mark.asyncio
async def test_subscribers_see_pending_then_settled(transport: FakeTransport, cache: EnrichmentCache) -> None:
    transport.queue(ok({"nudge": "Sure."}))
    ledger = _ledger(transport, cache)
    snapshots: list[list[tuple[str, str]]] = []
    ledger.subscribe(lambda records: snapshots.append([(r.text, r.status) for r in records]))

    await ledger.send("hi")

    assert snapshots[0] == [("hi", "pending")]
    assert snapshots[-1] == [("hi", "settled"), ("Sure.", "settled")]


@pytest.mark.asyncio
async def test_banner_expires_after_configured_duration(transport: FakeTransport, cache: EnrichmentCache) -> None:
    transport.queue(fail(500, {"error": "rate_limited"}))
    ledger = _ledger(transport, cache, notice=Notice(duration=0.01))

    await ledger.send("Buy AAPL")
    assert ledger.notice.message == "rate_limited"
    await asyncio.sleep(0.05)

    assert ledger.notice.message is None
    assert ledger.records[0].status == "failed"


@pytest.mark.asyncio
async def test_cancelled_send_stays_retryable(transport: FakeTransport, cache: EnrichmentCache) -> None:
    await cache.resolve()
    transport.hold()
    ledger = _ledger(transport, cache)

    task = asyncio.create_task(ledger.send("hello"))
    await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    record = ledger.records[0]
    assert record.status == "failed"
    transport.queue(ok({"nudge": "back"}))
    await ledger.retry(record.id)
    assert record.status == "settled"


@pytest.mark.asyncio
async def test_retry_keeps_text_that_ends_like_the_failure_suffix(
    transport: FakeTransport, cache: EnrichmentCache
) -> None:
    text = "Why did my order say (Failed to send)"
    transport.queue(fail(500, {"error": "rate_limited"}), ok({"nudge": "Let me check."}))
    ledger = _ledger(transport, cache)

    record = await ledger.send(text)
    assert record.status == "failed"
    assert record.display_text == f"{text}{FAILED_SUFFIX}"

    await ledger.retry(record.id)

    assert record.status == "settled"
    assert record.text == text
    assert [request.body["message"] for request in transport.requests] == [text, text]
    ledger.close()
