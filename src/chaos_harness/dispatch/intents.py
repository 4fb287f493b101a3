"""
Intent model and text classification.

Free text is classified by an ordered list of keyword/prefix rules; the first
rule that matches decides the intent type and confidence. Text matching no
rule is ``unknown`` with confidence 0.3.
"""

import re
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple


class IntentType(str, Enum):
    """Classified intent type"""
    QUERY = "query"
    COMMAND = "command"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    NAVIGATE = "navigate"
    SEARCH = "search"
    FILTER = "filter"
    SORT = "sort"
    COMPOUND = "compound"
    UNKNOWN = "unknown"


class IntentStatus(str, Enum):
    """Intent lifecycle status"""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


UNKNOWN_CONFIDENCE = 0.3
COMPOUND_CONFIDENCE = 0.9


@dataclass
class Intent:
    """A classified unit of user input"""
    id: str
    text: str
    type: IntentType
    confidence: float
    entities: Dict[str, Any] = field(default_factory=dict)
    child_ids: Optional[List[str]] = None
    parent_id: Optional[str] = None
    status: IntentStatus = IntentStatus.PENDING
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "type": self.type.value,
            "confidence": self.confidence,
            "entities": self.entities,
            "child_ids": list(self.child_ids) if self.child_ids is not None else None,
            "parent_id": self.parent_id,
            "status": self.status.value,
            "timestamp": self.timestamp,
        }


def _starts(*prefixes: str) -> Callable[[str], bool]:
    return lambda text: text.startswith(prefixes)


def _contains(*fragments: str) -> Callable[[str], bool]:
    return lambda text: any(fragment in text for fragment in fragments)


def _any(*predicates: Callable[[str], bool]) -> Callable[[str], bool]:
    return lambda text: any(predicate(text) for predicate in predicates)


# Order matters: first match wins.
CLASSIFICATION_RULES: List[Tuple[IntentType, float, Callable[[str], bool]]] = [
    (IntentType.CREATE, 0.85, _any(_starts("create"), _contains("make a new", "add a"))),
    (IntentType.UPDATE, 0.82, _starts("update", "edit", "change", "modify", "save")),
    (IntentType.DELETE, 0.88, _starts("delete", "remove", "get rid of")),
    (IntentType.SEARCH, 0.9, _starts("search", "find", "look for")),
    (IntentType.FILTER, 0.8, _any(_starts("filter"), _contains("show only", "where"))),
    (IntentType.SORT, 0.85, _any(_starts("sort"), _contains("order by", "arrange"))),
    (IntentType.NAVIGATE, 0.9, _starts("go to", "navigate to", "open")),
    (IntentType.QUERY, 0.9, _starts("what", "who", "when", "where", "why", "how")),
    (IntentType.COMMAND, 0.75, _any(
        _contains("please"),
        lambda text: text.endswith("!"),
        _starts("can you", "could you"),
    )),
]

# Verb phrases stripped before comparing subjects
_VERB_PREFIXES = sorted(
    [
        "create", "make a new", "add a", "add", "update", "edit", "change", "modify",
        "save", "delete", "remove", "get rid of",
    ],
    key=len,
    reverse=True,
)

_STOP_WORDS = {
    "a", "an", "the", "all", "my", "our", "this", "that", "these", "those", "of",
    "to", "for", "in", "on", "with", "and", "or", "please", "some", "any", "every",
}

_DATE_RE = re.compile(
    r"(\d{1,2}/\d{1,2}/\d{2,4})|(\d{1,2}-\d{1,2}-\d{2,4})|"
    r"((?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]* \d{1,2}(?:st|nd|rd|th)?, \d{4})",
    re.IGNORECASE,
)
_NUMBER_RE = re.compile(r"\b\d+(?:\.\d+)?\b")
_EMAIL_RE = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")
_URL_RE = re.compile(r"https?://\S+")
_QUOTE_RE = re.compile(r'"([^"]*)"')
_SPLIT_RE = re.compile(r"\s+(?:and|then|but|or)\s+|\s*;\s*|\.\s+")


def new_intent_id(prefix: str = "intent") -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def classify_text(text: str) -> Tuple[IntentType, float, Dict[str, Any]]:
    """
    Classify free text into an intent type.

    Args:
        text: Raw user text

    Returns:
        Tuple of (intent type, confidence, extracted entities)
    """
    lowered = text.strip().lower()
    for intent_type, confidence, predicate in CLASSIFICATION_RULES:
        if predicate(lowered):
            return intent_type, confidence, extract_entities(text)
    return IntentType.UNKNOWN, UNKNOWN_CONFIDENCE, {}


def extract_entities(text: str) -> Dict[str, Any]:
    """Extract dates, numbers, e-mail addresses, URLs and quoted strings."""
    entities: Dict[str, Any] = {}

    dates = [match.group(0) for match in _DATE_RE.finditer(text)]
    if dates:
        entities["dates"] = dates

    numbers = _NUMBER_RE.findall(text)
    if numbers:
        entities["numbers"] = [float(n) for n in numbers]

    emails = _EMAIL_RE.findall(text)
    if emails:
        entities["emails"] = emails

    urls = _URL_RE.findall(text)
    if urls:
        entities["urls"] = urls

    quotes = _QUOTE_RE.findall(text)
    if quotes:
        entities["quotes"] = quotes

    return entities


def split_into_sub_intents(text: str) -> List[str]:
    """Split compound text on conjunctions, semicolons and sentence breaks."""
    return [part.strip() for part in _SPLIT_RE.split(text) if part and part.strip()]


def subject_terms(text: str) -> set:
    """Content words of an intent after its leading verb phrase."""
    lowered = text.strip().lower()
    for prefix in _VERB_PREFIXES:
        if lowered.startswith(prefix):
            lowered = lowered[len(prefix):]
            break
    words = re.findall(r"[a-z0-9']+", lowered)
    return {word for word in words if word not in _STOP_WORDS}


def detect_conflict(first: Intent, second: Intent) -> bool:
    """
    Two intents conflict when one deletes and the other creates or updates
    an overlapping subject.
    """
    writes = {IntentType.CREATE, IntentType.UPDATE}
    pair = {first.type, second.type}
    if IntentType.DELETE not in pair or not pair & writes:
        return False
    return bool(subject_terms(first.text) & subject_terms(second.text))
