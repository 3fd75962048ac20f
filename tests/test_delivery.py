"""Tests for summary text and output channels."""

import asyncio
import json
from datetime import datetime, timedelta

import httpx
import pytest

from proactive_kernel.delivery.channels import (
    LoggingChannel,
    SpeechTone,
    TelegramChannel,
    tone_for_priority,
)
from proactive_kernel.delivery.summaries import SummaryBuilder
from proactive_kernel.models.business import (
    BusinessEvent,
    Debt,
    Job,
    JobStatus,
    Reminder,
)
from proactive_kernel.models.interruption import InterruptionPriority, SummaryType
from proactive_kernel.state.reader import InMemoryStateReader

NOW = datetime(2026, 3, 10, 14, 0)


def _build(reader: InMemoryStateReader, summary_type: SummaryType) -> str:
    return asyncio.run(SummaryBuilder(reader).build(summary_type, NOW))


class TestSummaries:
    def test_tips(self):
        reader = InMemoryStateReader("shop_1")
        reader.record_event(BusinessEvent(
            id="t1", event_type="tip", amount=20, created_at=NOW - timedelta(hours=3)
        ))
        reader.record_event(BusinessEvent(
            id="t2", event_type="tip", amount=12.5, created_at=NOW - timedelta(hours=1)
        ))
        reader.record_event(BusinessEvent(
            id="t0", event_type="tip", amount=99, created_at=NOW - timedelta(days=1)
        ))
        assert _build(reader, SummaryType.TIPS) == "$32.50 in tips today. 2 total."

    @pytest.mark.parametrize("people,expected", [
        ([], "Nobody owes you money right now."),
        ([("Carlos", 150)], "Carlos owes you $150."),
        (
            [("A", 10), ("B", 10), ("C", 10), ("D", 10), ("E", 10)],
            "A, B, C and 2 others owe you $50.",
        ),
    ])
    def test_debts(self, people, expected):
        reader = InMemoryStateReader("shop_1")
        for i, (person, amount) in enumerate(people):
            reader.upsert_debt(Debt(
                id=f"d{i}", person=person, amount=amount,
                created_at=NOW - timedelta(minutes=len(people) - i),
            ))
        assert _build(reader, SummaryType.DEBTS) == expected

    def test_open_repairs(self):
        reader = InMemoryStateReader("shop_1")
        statuses = [JobStatus.IN_PROGRESS, JobStatus.WAITING_PARTS,
                    JobStatus.WAITING_PARTS, JobStatus.DONE]
        for i, status in enumerate(statuses):
            reader.upsert_job(Job(
                id=f"j{i}", device_type="phone", status=status, created_at=NOW
            ))
        assert _build(reader, SummaryType.OPEN_REPAIRS) == (
            "3 open repairs: 1 in progress, 2 waiting for parts."
        )

    def test_no_open_repairs(self):
        assert _build(InMemoryStateReader("s"), SummaryType.OPEN_REPAIRS) == (
            "No open repairs right now."
        )

    def test_tasks(self):
        reader = InMemoryStateReader("shop_1")
        reader.upsert_reminder(Reminder(
            id="r1", message="call Ana", remind_at=NOW.replace(hour=15, minute=30)
        ))
        reader.upsert_reminder(Reminder(
            id="r0", message="old", remind_at=NOW - timedelta(hours=1)
        ))
        assert _build(reader, SummaryType.TASKS) == "Coming up: call Ana at 15:30."

    def test_empty_tasks(self):
        assert _build(InMemoryStateReader("s"), SummaryType.TASKS) == (
            "Nothing on your list right now."
        )


class TestChannels:
    def test_logging_channel_logs_message(self, caplog):
        channel = LoggingChannel()
        with caplog.at_level("INFO"):
            asyncio.run(channel.interrupt(
                "Heads up", tone_for_priority(InterruptionPriority.CRITICAL)
            ))
            asyncio.run(channel.speak("Done"))
        assert "Heads up" in caplog.text
        assert "earcon=error" in caplog.text
        assert "[speak] Done" in caplog.text

    def test_telegram_posts_send_message(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"ok": True})

        channel = TelegramChannel(
            bot_token="token", chat_id=42, transport=httpx.MockTransport(handler)
        )
        asyncio.run(channel.interrupt("Check amount", SpeechTone(earcon="error")))
        asyncio.run(channel.interrupt("Parts arrived", SpeechTone(earcon="thinking")))
        asyncio.run(channel.speak("3 open repairs"))

        assert [str(r.url) for r in requests] == [
            "https://api.telegram.org/bottoken/sendMessage"
        ] * 3
        payloads = [json.loads(r.content) for r in requests]
        assert [p["text"] for p in payloads] == [
            "⚠️ Check amount", "Parts arrived", "3 open repairs"
        ]
        assert payloads[0]["chat_id"] == 42
        assert payloads[0]["disable_web_page_preview"] is True

    def test_telegram_error_propagates(self):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(401, json={"ok": False})
        )
        channel = TelegramChannel(bot_token="bad", chat_id=42, transport=transport)
        with pytest.raises(httpx.HTTPStatusError):
            asyncio.run(channel.speak("hello"))
