"""
Call summarization after a bridge closes.

The bridge hands the call's question/answer log to a Summarizer once the call
has ended. The summarizer extracts a structured CallSummary (customer contact
fields, ticket classification, satisfaction, free-text summary), normalizes it
and gives it to a SummaryStore. The bridge does not wait for any of this.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Literal, Optional, Protocol, Union

from openai import AsyncOpenAI
from pydantic import BaseModel, Field

from callbridge.config.constants import DEFAULT_SUMMARY_MODEL, LOGGER_NAME
from callbridge.config.settings import BridgeSettings

logger = logging.getLogger(LOGGER_NAME)

NOT_SPECIFIED = "not specified"
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$", re.IGNORECASE)
TICKET_TYPES = ("support", "sales", "billing")
PRIORITIES = ("low", "medium", "high", "critical")

NAME_FIXES = {
    "smath": "smith",
    "mchael": "michael",
    "jhon": "john",
    "alx": "alex",
}

KNOWN_LANGUAGES = {
    "English", "Urdu", "Punjabi", "Hindi", "Arabic", "Bengali", "Chinese", "Mandarin",
    "Cantonese", "French", "German", "Spanish", "Portuguese", "Russian", "Turkish",
    "Italian", "Korean", "Japanese", "Malay", "Indonesian", "Tamil", "Telugu", "Gujarati",
    "Pashto", "Farsi", "Persian", "Dutch", "Greek", "Polish", "Romanian", "Czech",
    "Ukrainian", "Thai", "Vietnamese", "Filipino", "Tagalog", "Sindhi", "Saraiki",
    "Kashmiri", "Nepali", "Sinhala", "Marathi",
}
LANGUAGE_ALIASES = {
    "panjabi": "Punjabi",
    "mandarin chinese": "Mandarin",
}

SYSTEM_PROMPT = " ".join([
    "You are an accurate, terse extractor for customer support call logs.",
    "English only. Output ONLY JSON, no extra words.",
    "If a value is unknown/unclear, set it to the string 'not specified'.",
    "Correct obvious misspellings; also include '*_raw' with the original when you normalize.",
    "Do not invent facts. Prefer 'not specified' over guessing.",
    "Validate email as something@something.tld (basic).",
    "Derive isSatisfied from the conversation (true/false) if explicit; else 'not specified'.",
    "Keep the summary <= 80 words.",
    "Also output flags: has_meaningful_conversation (boolean), contact_info_only (boolean).",
    "Languages list must be real-world names (e.g., English, Urdu, Punjabi).",
])

USER_PROMPT_TEMPLATE = """From these Q/A pairs, return ONLY this JSON:

{{
  "customer": {{ "name": string | "not specified", "name_raw": string | "not specified", "email": string | "not specified" }},
  "ticket": {{ "ticketType": "support" | "sales" | "billing" | "not specified", "status": "open" | "resolved", "priority": "low" | "medium" | "high" | "critical", "proposedSolution": string | "not specified", "isSatisfied": true | false | "not specified" }},
  "qa_log": Array<{{ "q": string, "a": string }}>,
  "summary": string,
  "has_meaningful_conversation": boolean,
  "contact_info_only": boolean,
  "non_english_detected": string[]
}}

Q/A PAIRS:
{pairs}"""


class CustomerInfo(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class TicketInfo(BaseModel):
    ticket_type: Optional[Literal["support", "sales", "billing"]] = None
    status: Literal["open", "resolved"] = "open"
    priority: Literal["low", "medium", "high", "critical"] = "medium"
    proposed_solution: Optional[str] = None
    is_satisfied: Optional[bool] = None


class CallSummary(BaseModel):
    """Structured outcome of one call, ready for the ticketing layer."""
    call_id: str
    customer: CustomerInfo = Field(default_factory=CustomerInfo)
    ticket: TicketInfo = Field(default_factory=TicketInfo)
    qa_log: List[Dict[str, Optional[str]]] = Field(default_factory=list)
    summary: str = ""
    has_meaningful_conversation: bool = False
    contact_info_only: bool = False
    non_english_detected: List[str] = Field(default_factory=list)

    @property
    def should_open_ticket(self) -> bool:
        """A ticket is warranted when the caller said they were not satisfied."""
        return self.ticket.is_satisfied is False


def _specified(value: Any) -> Any:
    if value == NOT_SPECIFIED or value == "":
        return None
    return value


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """Keep digits only, preserving a leading '+'."""
    if not phone:
        return None
    text = str(phone).strip()
    digits = re.sub(r"\D+", "", text)
    if not digits:
        return None
    return f"+{digits}" if text.startswith("+") else digits


def normalize_name(name: Optional[str]) -> Optional[str]:
    """Collapse whitespace, fix a few common mishearings and title-case."""
    if not name or not isinstance(name, str):
        return None
    tokens = name.strip().split()
    if not tokens:
        return None
    fixed = [NAME_FIXES.get(token.lower(), token) for token in tokens]
    return " ".join(fixed).title()


def normalize_email(email: Optional[str]) -> Optional[str]:
    email = _specified(email)
    if not isinstance(email, str) or not EMAIL_PATTERN.match(email.strip()):
        return None
    return email.strip().lower()


def clean_languages(languages: Any) -> List[str]:
    """Keep only real language names, deduplicated, in first-seen order."""
    if not isinstance(languages, list):
        return []
    cleaned: List[str] = []
    for raw in languages:
        if not raw or not isinstance(raw, str):
            continue
        candidate = LANGUAGE_ALIASES.get(raw.strip().lower()) or normalize_name(raw)
        if candidate in KNOWN_LANGUAGES and candidate not in cleaned:
            cleaned.append(candidate)
    return cleaned


def build_call_summary(
    call_id: str,
    extracted: Dict[str, Any],
    pairs: List[Dict[str, Optional[str]]],
    caller: Optional[str] = None,
) -> CallSummary:
    """
    Coerce a raw extraction into a CallSummary with safe values.

    Unknown enum values fall back to defaults, "not specified" becomes None,
    and the phone number always comes from the caller id rather than the model.
    """
    customer = extracted.get("customer") or {}
    ticket = extracted.get("ticket") or {}

    raw_name = _specified(customer.get("name")) or _specified(customer.get("name_raw"))
    ticket_type = ticket.get("ticketType")
    priority = ticket.get("priority")
    satisfied = ticket.get("isSatisfied")
    qa_log = extracted.get("qa_log")

    return CallSummary(
        call_id=call_id,
        customer=CustomerInfo(
            name=normalize_name(raw_name),
            email=normalize_email(customer.get("email")),
            phone=normalize_phone(caller),
        ),
        ticket=TicketInfo(
            ticket_type=ticket_type if ticket_type in TICKET_TYPES else None,
            status="resolved" if ticket.get("status") == "resolved" else "open",
            priority=priority if priority in PRIORITIES else "medium",
            proposed_solution=_specified(ticket.get("proposedSolution")),
            is_satisfied=satisfied if isinstance(satisfied, bool) else None,
        ),
        qa_log=qa_log if isinstance(qa_log, list) and qa_log else list(pairs),
        summary=extracted.get("summary") or "",
        has_meaningful_conversation=bool(extracted.get("has_meaningful_conversation")),
        contact_info_only=bool(extracted.get("contact_info_only")),
        non_english_detected=clean_languages(extracted.get("non_english_detected")),
    )


class SummaryStore(Protocol):
    """Destination for finished summaries (the ticketing layer)."""

    async def save(self, summary: CallSummary) -> None: ...


class LoggingSummaryStore:
    """Store that only logs the summary; persistence lives outside this service."""

    async def save(self, summary: CallSummary) -> None:
        logger.info(f"Call summary for {summary.call_id}: {summary.model_dump_json()}")
        if summary.should_open_ticket:
            logger.warning(
                f"Caller on {summary.call_id} was not satisfied; "
                f"{summary.ticket.ticket_type or 'unclassified'} ticket needs follow-up"
            )


class Summarizer(ABC):
    """Base class: extract, normalize, store."""

    def __init__(self, store: Optional[SummaryStore] = None):
        self.store = store or LoggingSummaryStore()

    @abstractmethod
    async def extract(self, pairs: List[Dict[str, Optional[str]]]) -> Optional[Dict[str, Any]]:
        """Return the raw extraction for a QA log, or None if it failed."""

    async def summarize_call(
        self,
        call_id: Optional[str],
        pairs: List[Dict[str, Optional[str]]],
        caller: Optional[str] = None,
    ) -> Optional[CallSummary]:
        """
        Summarize a finished call and hand the result to the store.

        Args:
            call_id: Provider call identifier
            pairs: Ordered QA log as [{"q": ..., "a": ...}]
            caller: Caller phone number, if known

        Returns:
            The stored CallSummary, or None when there was nothing to store
        """
        if not call_id:
            logger.warning("Skipping summary: call id missing")
            return None
        if not pairs:
            logger.info(f"Skipping summary for call {call_id}: no conversation recorded")
            return None

        try:
            extracted = await self.extract(pairs)
        except Exception as e:
            logger.error(f"Summary extraction failed for call {call_id}: {e}", exc_info=True)
            return None
        if extracted is None:
            return None

        summary = build_call_summary(call_id, extracted, pairs, caller)
        if not summary.has_meaningful_conversation and not summary.contact_info_only:
            logger.info(f"Call {call_id} had no meaningful conversation; nothing stored")
            return None

        try:
            await self.store.save(summary)
        except Exception as e:
            logger.error(f"Failed to store summary for call {call_id}: {e}", exc_info=True)
            return None
        return summary


class OpenAISummarizer(Summarizer):
    """Extracts the summary with a JSON-mode chat completion."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_SUMMARY_MODEL,
        store: Optional[SummaryStore] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        super().__init__(store)
        self.client = client or AsyncOpenAI(api_key=api_key)
        self.model = model

    async def extract(self, pairs: List[Dict[str, Optional[str]]]) -> Optional[Dict[str, Any]]:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": USER_PROMPT_TEMPLATE.format(pairs=json.dumps(pairs, indent=2))},
            ],
            temperature=0.2,
            response_format={"type": "json_object"},
        )
        content = response.choices[0].message.content
        if not content:
            logger.warning("Summary model returned no content")
            return None
        try:
            return json.loads(content)
        except json.JSONDecodeError:
            logger.warning(f"Summary model returned invalid JSON: {content[:200]}")
            return None


class HeuristicSummarizer(Summarizer):
    """Regex-based extractor used when no model is available."""

    EMAIL_RE = re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE)
    NAME_RE = re.compile(r"(?i:\bmy name is|\bit's|\bi am)\s+([A-Za-z][A-Za-z'-]*(?:\s+[A-Z][A-Za-z'-]*)?)")
    SATISFIED_RE = re.compile(r"(i'?m\s+satisfied|this solves it|works now|resolved)", re.IGNORECASE)
    UNSATISFIED_RE = re.compile(r"(not satisfied|not happy|still failing|doesn'?t work|not resolved)", re.IGNORECASE)
    CONTACT_ONLY_RE = re.compile(
        r"\b(register (my )?details|no issue( right)? now|only (my )?(name|email)|just (my )?details)\b",
        re.IGNORECASE,
    )
    ISSUE_RE = re.compile(
        r"\b(invoice|payment|charge|refund|login|reset|error|ticket|order|shipment|crash|declined|fail|lost|track)",
        re.IGNORECASE,
    )
    GREETING_RE = re.compile(r"\b(hello|hi|salam|assalam|testing the line|bye)\b", re.IGNORECASE)
    URDU_RE = re.compile(r"\b(assalam|wa[ -]?alaikum|ji haan|theek hai)\b", re.IGNORECASE)
    BILLING_RE = re.compile(r"\b(invoice|billing|charge|refund|card|declined|payment)\b", re.IGNORECASE)
    SALES_RE = re.compile(r"\b(pricing|buy|purchase|quote|plan)\b", re.IGNORECASE)
    SUPPORT_RE = re.compile(r"\b(login|reset|error|bug|crash|shipping|order|shipment|track|lost)\b", re.IGNORECASE)
    SOLUTION_RE = re.compile(r"\b(try|sent|please|clear|we will|we'll|opened a case)\b", re.IGNORECASE)

    async def extract(self, pairs: List[Dict[str, Optional[str]]]) -> Optional[Dict[str, Any]]:
        caller_text = " ".join(p.get("q") or "" for p in pairs)
        text = " ".join(f"{p.get('q') or ''} {p.get('a') or ''}" for p in pairs)

        email_match = self.EMAIL_RE.search(caller_text)
        name_match = self.NAME_RE.search(caller_text)
        satisfied = bool(self.SATISFIED_RE.search(caller_text)) and not self.UNSATISFIED_RE.search(caller_text)
        unsatisfied = bool(self.UNSATISFIED_RE.search(caller_text))
        contact_only = bool(self.CONTACT_ONLY_RE.search(caller_text))
        has_issue = bool(self.ISSUE_RE.search(text))
        greetings_only = (
            not contact_only and not satisfied and not unsatisfied and not has_issue
            and bool(self.GREETING_RE.search(text))
        )

        ticket_type = NOT_SPECIFIED
        if self.BILLING_RE.search(text):
            ticket_type = "billing"
        elif self.SALES_RE.search(text):
            ticket_type = "sales"
        elif self.SUPPORT_RE.search(text):
            ticket_type = "support"

        proposed = NOT_SPECIFIED
        for pair in reversed(pairs):
            answer = pair.get("a") or ""
            if self.SOLUTION_RE.search(answer):
                proposed = answer
                break

        first_question = next((p["q"] for p in pairs if p.get("q")), "")
        is_satisfied: Union[bool, str] = NOT_SPECIFIED
        if unsatisfied:
            is_satisfied = False
        elif satisfied:
            is_satisfied = True

        return {
            "customer": {
                "name": name_match.group(1) if name_match else NOT_SPECIFIED,
                "email": email_match.group(0) if email_match else NOT_SPECIFIED,
            },
            "ticket": {
                "ticketType": ticket_type,
                "status": "resolved" if satisfied else "open",
                "priority": "high" if re.search(r"\b(critical|p1|high|urgent)\b", text, re.IGNORECASE) else "medium",
                "proposedSolution": proposed,
                "isSatisfied": is_satisfied,
            },
            "qa_log": pairs,
            "summary": first_question[:160] or NOT_SPECIFIED,
            "has_meaningful_conversation": not greetings_only,
            "contact_info_only": contact_only,
            "non_english_detected": ["Urdu"] if self.URDU_RE.search(text) else [],
        }


def build_summarizer(settings: BridgeSettings, store: Optional[SummaryStore] = None) -> Summarizer:
    """Pick the model-backed summarizer when an API key is available."""
    if settings.summarizer_mock or not settings.openai_api_key:
        logger.info("Using heuristic call summarizer")
        return HeuristicSummarizer(store)
    return OpenAISummarizer(settings.openai_api_key, settings.summary_model, store)
