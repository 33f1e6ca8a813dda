import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from callbridge.config.settings import BridgeSettings
from callbridge.services.summarizer import (
    CallSummary,
    HeuristicSummarizer,
    LoggingSummaryStore,
    OpenAISummarizer,
    TicketInfo,
    build_call_summary,
    build_summarizer,
    clean_languages,
    normalize_email,
    normalize_name,
    normalize_phone,
)


class MemoryStore:
    def __init__(self):
        self.saved = []

    async def save(self, summary: CallSummary) -> None:
        self.saved.append(summary)


def completion_returning(content):
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=response)
    return client


def test_normalize_phone():
    assert normalize_phone("+1 (555) 010-2030") == "+15550102030"
    assert normalize_phone("555-0102") == "5550102"
    assert normalize_phone("") is None
    assert normalize_phone("none") is None


def test_normalize_name_fixes_common_mishearings():
    assert normalize_name("  jhon   smath ") == "John Smith"
    assert normalize_name("") is None


def test_normalize_email():
    assert normalize_email(" John@Example.COM ") == "john@example.com"
    assert normalize_email("not specified") is None
    assert normalize_email("john at example") is None


def test_clean_languages():
    assert clean_languages(["urdu", "Klingon", "panjabi", "Urdu"]) == ["Urdu", "Punjabi"]
    assert clean_languages("English") == []


def test_build_call_summary_applies_defaults():
    extracted = {
        "customer": {"name": "not specified", "name_raw": "mchael", "email": "bad"},
        "ticket": {"ticketType": "refunds", "priority": "urgent", "isSatisfied": "not specified"},
        "summary": "Caller asked about a refund.",
        "has_meaningful_conversation": True,
    }
    summary = build_call_summary("CA1", extracted, [{"q": "Hi", "a": "Hello"}], caller="+1 555 000")

    assert summary.customer.name == "Michael"
    assert summary.customer.email is None
    assert summary.customer.phone == "+1555000"
    assert summary.ticket.ticket_type is None
    assert summary.ticket.priority == "medium"
    assert summary.ticket.status == "open"
    assert summary.ticket.is_satisfied is None
    assert summary.qa_log == [{"q": "Hi", "a": "Hello"}]
    assert not summary.should_open_ticket


@pytest.mark.asyncio
async def test_empty_log_is_not_summarized():
    store = MemoryStore()
    summarizer = HeuristicSummarizer(store)

    assert await summarizer.summarize_call("CA1", []) is None
    assert store.saved == []


@pytest.mark.asyncio
async def test_heuristic_summarizer_extracts_ticket():
    store = MemoryStore()
    summarizer = HeuristicSummarizer(store)
    pairs = [
        {"q": "My name is Jhon Smath and my invoice payment was declined", "a": "Please try another card."},
        {"q": "My email is JOHN@EXAMPLE.COM. It still doesn't work, I'm not satisfied", "a": "We'll open a case."},
    ]

    summary = await summarizer.summarize_call("CA1", pairs, caller="+15550001111")

    assert summary is not None
    assert store.saved == [summary]
    assert summary.customer.name == "John Smith"
    assert summary.customer.email == "john@example.com"
    assert summary.customer.phone == "+15550001111"
    assert summary.ticket.ticket_type == "billing"
    assert summary.ticket.is_satisfied is False
    assert summary.should_open_ticket


@pytest.mark.asyncio
async def test_heuristic_summarizer_skips_small_talk():
    store = MemoryStore()
    summarizer = HeuristicSummarizer(store)

    result = await summarizer.summarize_call("CA1", [{"q": "Hello, just testing the line", "a": "Hi!"}])

    assert result is None
    assert store.saved == []


@pytest.mark.asyncio
async def test_openai_summarizer_parses_json_response():
    payload = {
        "customer": {"name": "alx turner", "email": "alex@example.com"},
        "ticket": {"ticketType": "support", "status": "resolved", "priority": "low",
                   "proposedSolution": "Reset password", "isSatisfied": True},
        "qa_log": [{"q": "Can't log in", "a": "Reset your password"}],
        "summary": "Login issue resolved by password reset.",
        "has_meaningful_conversation": True,
        "contact_info_only": False,
        "non_english_detected": [],
    }
    client = completion_returning(json.dumps(payload))
    store = MemoryStore()
    summarizer = OpenAISummarizer("key", "gpt-4o-mini", store, client=client)

    summary = await summarizer.summarize_call("CA9", [{"q": "Can't log in", "a": "Reset your password"}])

    assert summary.customer.name == "Alex Turner"
    assert summary.ticket.status == "resolved"
    assert summary.ticket.is_satisfied is True
    assert store.saved == [summary]
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["response_format"] == {"type": "json_object"}


@pytest.mark.asyncio
async def test_openai_summarizer_invalid_json_stores_nothing():
    store = MemoryStore()
    summarizer = OpenAISummarizer("key", store=store, client=completion_returning("not json"))

    assert await summarizer.summarize_call("CA1", [{"q": "Hi", "a": "Hello"}]) is None
    assert store.saved == []


@pytest.mark.asyncio
async def test_extraction_failure_is_logged_not_raised():
    client = MagicMock()
    client.chat.completions.create = AsyncMock(side_effect=RuntimeError("rate limited"))
    summarizer = OpenAISummarizer("key", client=client)

    assert await summarizer.summarize_call("CA1", [{"q": "Hi", "a": "Hello"}]) is None


def test_build_summarizer_selection():
    assert isinstance(build_summarizer(BridgeSettings(openai_api_key=None)), HeuristicSummarizer)
    assert isinstance(build_summarizer(BridgeSettings(openai_api_key="k", summarizer_mock=True)), HeuristicSummarizer)
    assert isinstance(build_summarizer(BridgeSettings(openai_api_key="k", summarizer_mock=False)), OpenAISummarizer)


@pytest.mark.asyncio
async def test_logging_store_flags_unsatisfied_caller():
    store = LoggingSummaryStore()
    unhappy = CallSummary(call_id="CA1", ticket=TicketInfo(ticket_type="billing", is_satisfied=False))
    happy = CallSummary(call_id="CA2", ticket=TicketInfo(is_satisfied=True))

    with patch("callbridge.services.summarizer.logger") as mock_logger:
        await store.save(unhappy)
        await store.save(happy)

    assert mock_logger.info.call_count == 2
    mock_logger.warning.assert_called_once()
    assert "CA1" in mock_logger.warning.call_args.args[0]
    assert "billing" in mock_logger.warning.call_args.args[0]
