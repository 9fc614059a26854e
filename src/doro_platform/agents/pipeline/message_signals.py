"""Message signals: DETERMINISTIC only, no LLM calls.

Keyword and regex extraction used by the psychology and intelligence
stages: conversation stage, conversation continuity, catalog filters,
market-intelligence query and floor-plan requests.
"""

import re
from datetime import date
from typing import Optional

from .contracts import CatalogFilters, ConversationContinuity, HistoryMessage, PriceRange

# ---------------------------------------------------------------------------
# Conversation stage
# ---------------------------------------------------------------------------

APPOINTMENT_KEYWORDS = ("appointment", "meet", "consultation")
OBJECTION_KEYWORDS = ("not interested", "too expensive", "think about")
INTEREST_KEYWORDS = ("tell me more", "interested")


def detect_conversation_stage(history: list[HistoryMessage], text: str) -> str:
    """Classify the conversation stage from the current message and history.

    Keywords in the current message win; otherwise the number of prior
    messages decides (<=2 initial, <=5 browsing, else interested).
    """
    current = text.lower()
    recent = " ".join(m.message.lower() for m in history[-3:])

    if any(k in current for k in APPOINTMENT_KEYWORDS):
        return "qualified"
    # Checked before interest keywords: "not interested" contains "interested"
    if any(k in current for k in OBJECTION_KEYWORDS):
        return "objecting"
    if any(k in current for k in INTEREST_KEYWORDS) or "budget" in recent:
        return "interested"

    turns = len(history)
    if turns <= 2:
        return "initial"
    if turns <= 5:
        return "browsing"
    return "interested"


# ---------------------------------------------------------------------------
# Conversation continuity
# ---------------------------------------------------------------------------

TOPIC_KEYWORDS = {
    "property_search": ("property", "condo", "hdb", "landed", "apartment"),
    "budget_discussion": ("budget", "price", "afford", "cost", "expensive"),
    "location_preferences": ("area", "district", "location", "mrt", "school"),
    "timeline_discussion": ("when", "timeline", "urgent", "soon", "ready"),
    "appointment_booking": ("appointment", "consultation", "meet", "call", "zoom"),
    "market_insights": ("market", "trend", "price", "investment", "growth"),
}

SHARED_INFO_KEYWORDS = {
    "company_network": ("propnex", "era", "orangetee"),
    "pricing_information": ("$", "price", "million"),
    "location_information": ("district", "area", "location"),
    "consultation_offer": ("consultation", "appointment", "zoom"),
}


def _dedupe(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


def _topics(messages: list[HistoryMessage]) -> list[str]:
    found = []
    for msg in messages:
        lower = msg.message.lower()
        for topic, keywords in TOPIC_KEYWORDS.items():
            if any(k in lower for k in keywords):
                found.append(topic)
    return _dedupe(found)


def _information_shared(bot_messages: list[HistoryMessage]) -> list[str]:
    found = []
    for msg in bot_messages:
        lower = msg.message.lower()
        for info, keywords in SHARED_INFO_KEYWORDS.items():
            if any(k in lower for k in keywords):
                found.append(info)
    return _dedupe(found)


def _questions_asked(bot_messages: list[HistoryMessage]) -> list[str]:
    found = []
    for msg in bot_messages:
        lower = msg.message.lower()
        if "budget" in lower:
            found.append("budget_question")
        if "which area" in lower or "where are you looking" in lower:
            found.append("location_question")
        if "timeline" in lower or "when are you" in lower:
            found.append("timeline_question")
        if "would you like" in lower and "consultation" in lower:
            found.append("consultation_question")
    return _dedupe(found)


def _progression(messages: list[HistoryMessage]) -> str:
    if len(messages) <= 2:
        return "initial"
    window = messages[-6:]
    lead_count = sum(1 for m in window if m.sender == "lead")
    bot_count = sum(1 for m in window if m.sender == "bot")
    if lead_count >= bot_count and lead_count > 2:
        return "advancing"
    if lead_count < bot_count:
        return "stalling"
    return "steady"


def message_similarity(first: str, second: str) -> float:
    """Share of long words (>3 chars) the two messages have in common."""
    words_a = [w for w in first.lower().split(" ") if len(w) > 3]
    words_b = [w for w in second.lower().split(" ") if len(w) > 3]
    total = max(len(words_a), len(words_b))
    if not total:
        return 0.0
    common = [w for w in words_a if w in words_b]
    return len(common) / total


def _repetition_risk(bot_messages: list[HistoryMessage]) -> str:
    if len(bot_messages) < 2:
        return "low"
    similarity = message_similarity(bot_messages[-1].message, bot_messages[-2].message)
    if similarity > 0.7:
        return "high"
    if similarity > 0.4:
        return "medium"
    return "low"


def _context_awareness(text: str, messages: list[HistoryMessage]) -> str:
    bot_messages = [m for m in messages if m.sender == "bot"]
    if not bot_messages:
        return "Continuing conversation"

    current = text.lower()
    last_bot = bot_messages[-1].message
    last_bot_lower = last_bot.lower()

    if "budget" in last_bot_lower and ("$" in current or "million" in current):
        return "Responding to budget question"
    if "area" in last_bot_lower and "district" in current:
        return "Responding to location question"
    if "consultation" in last_bot_lower and ("yes" in current or "sure" in current):
        return "Responding to consultation offer"
    return f"Responding to: {last_bot[:50]}..."


def analyze_conversation_context(history: list[HistoryMessage], text: str) -> ConversationContinuity:
    """Summarise what has already been discussed so replies don't repeat it."""
    if not history:
        return ConversationContinuity()

    recent = history[-10:]
    bot_messages = [m for m in recent if m.sender == "bot"]

    return ConversationContinuity(
        previous_topics_discussed=_topics(recent),
        information_already_shared=_information_shared(bot_messages),
        questions_already_asked=_questions_asked(bot_messages),
        conversation_progression=_progression(recent),
        repetition_risk=_repetition_risk(bot_messages),
        context_awareness=_context_awareness(text, recent),
    )


# ---------------------------------------------------------------------------
# Catalog filters
# ---------------------------------------------------------------------------

DISTRICT_PATTERN = re.compile(r"\b(?:district\s+|d)(0[1-9]|1[0-9]|2[0-8])\b", re.IGNORECASE)
BEDROOM_PATTERN = re.compile(r"(\d+)[\s-]*(?:bedrooms?|beds?|br)\b", re.IGNORECASE)
EXECUTIVE_CONDO_PATTERN = re.compile(r"\bexecutive\s+condo(?:minium)?\b|\bec\b", re.IGNORECASE)
CONDO_PATTERN = re.compile(r"\bcondo(?:minium)?s?\b", re.IGNORECASE)
LANDED_PATTERN = re.compile(r"\b(?:landed|house)\b", re.IGNORECASE)
BUDGET_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*(k|m|mil|million)?\b", re.IGNORECASE)

BUDGET_MULTIPLIERS = {"k": 1_000, "m": 1_000_000, "mil": 1_000_000, "million": 1_000_000}


def parse_budget(raw: Optional[str]) -> Optional[float]:
    """Parse a free-form budget ("$1.5M", "800k", "1,200,000") into dollars."""
    if not raw:
        return None
    match = BUDGET_PATTERN.search(raw.replace(",", ""))
    if not match:
        return None
    value = float(match.group(1))
    suffix = (match.group(2) or "").lower()
    value *= BUDGET_MULTIPLIERS.get(suffix, 1)
    return value if value > 0 else None


def extract_property_type(text: str) -> Optional[str]:
    if EXECUTIVE_CONDO_PATTERN.search(text):
        return "Executive Condo"
    if CONDO_PATTERN.search(text):
        return "Private Condo"
    if LANDED_PATTERN.search(text):
        return "Landed House"
    return None


def extract_catalog_filters(text: str, budget: Optional[str] = None) -> CatalogFilters:
    """Derive catalog filters from the message and the lead's stated budget."""
    district_match = DISTRICT_PATTERN.search(text)
    bedroom_match = BEDROOM_PATTERN.search(text)
    budget_value = parse_budget(budget)

    return CatalogFilters(
        district=district_match.group(1) if district_match else None,
        property_type=extract_property_type(text),
        price_range=(
            PriceRange(min=budget_value * 0.8, max=budget_value * 1.2) if budget_value else None
        ),
        bedrooms=int(bedroom_match.group(1)) if bedroom_match else None,
    )


# ---------------------------------------------------------------------------
# Market intelligence + floor plans
# ---------------------------------------------------------------------------

LOCATION_PATTERN = re.compile(
    r"(district \d+|\bd\d+\b|orchard|marina|sentosa|jurong|woodlands|tampines|bedok|hougang)",
    re.IGNORECASE,
)
FLOOR_PLAN_KEYWORDS = ("floor plan", "layout", "unit type")


def month_year(today: Optional[date] = None) -> str:
    return (today or date.today()).strftime("%B %Y")


def build_market_query(text: str, intent: Optional[str] = None, today: Optional[date] = None) -> Optional[str]:
    """Return a market-intelligence search query, or None if the message has no market angle."""
    lower = text.lower()
    when = month_year(today)

    if "price" in lower or "market" in lower or "trend" in lower:
        return f"Singapore property market trends {when} prices {intent or 'residential'}"

    location = LOCATION_PATTERN.search(lower)
    if location:
        return f"Singapore {location.group(0)} property market prices {when}"

    if "condo" in lower or "condominium" in lower:
        return f"Singapore condominium market prices {when} new launch"
    if "landed" in lower or "house" in lower:
        return f"Singapore landed property market prices {when}"
    return None


def wants_floor_plans(text: str) -> bool:
    lower = text.lower()
    return any(k in lower for k in FLOOR_PLAN_KEYWORDS)
