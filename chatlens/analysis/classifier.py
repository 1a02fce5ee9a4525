"""
Rule-based message classifier.

Each message becomes exactly one KeyPoint. Rules are evaluated in the order of
``CLASSIFICATION_RULES`` and the first match wins, so a message mentioning both
an assignment and an error is an assignment.
"""
from __future__ import annotations

import re
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from chatlens.memory.schema import ConversationContext, KeyPoint, KeyPointType, Message

# Tool / library names that identify the subject of a technical discussion.
TECHNICAL_TERMS: Tuple[str, ...] = ("paint", "pyautogui", "win32gui", "pydantic")

_ASSIGNMENT_PATTERN = re.compile(r"assignment\s*(\d+)", re.IGNORECASE)

_ISSUE_HINTS = ("error", "issue", "bug", "not working")
_RESPONSE_HINTS = ("you can", "try", "solution", "answer")
_QUESTION_HINTS = ("can someone", "please confirm", "any suggestion")

# (text, lowered text, resolved reply target) -> bool
RulePredicate = Callable[[str, str, Optional[str]], bool]


def _is_assignment(text: str, lowered: str, reply_to: Optional[str]) -> bool:
    return (
        "assignment" in lowered
        or ("submit" in lowered and "email" in lowered)
        or "demo file" in lowered
    )


def _is_technical_issue(text: str, lowered: str, reply_to: Optional[str]) -> bool:
    if any(hint in lowered for hint in _ISSUE_HINTS):
        return True
    return "getting" in lowered and "value error" in lowered


def _is_response(text: str, lowered: str, reply_to: Optional[str]) -> bool:
    return bool(reply_to) and any(hint in lowered for hint in _RESPONSE_HINTS)


def _is_question(text: str, lowered: str, reply_to: Optional[str]) -> bool:
    return text.endswith("?") or any(hint in lowered for hint in _QUESTION_HINTS)


def _always(text: str, lowered: str, reply_to: Optional[str]) -> bool:
    return True


CLASSIFICATION_RULES: Tuple[Tuple[KeyPointType, RulePredicate], ...] = (
    (KeyPointType.ASSIGNMENT, _is_assignment),
    (KeyPointType.TECHNICAL_ISSUE, _is_technical_issue),
    (KeyPointType.RESPONSE, _is_response),
    (KeyPointType.QUESTION, _is_question),
    (KeyPointType.OTHER, _always),
)


def extract_assignment_number(text: str) -> Optional[str]:
    match = _ASSIGNMENT_PATTERN.search(text or "")
    return match.group(1) if match else None


def extract_tool(text: str) -> Optional[str]:
    lowered = (text or "").lower()
    for term in TECHNICAL_TERMS:
        if term in lowered:
            return term
    return None


_CONTEXT_EXTRACTORS: Dict[KeyPointType, Callable[[str], Dict[str, Optional[str]]]] = {
    KeyPointType.ASSIGNMENT: lambda text: {"assignment": extract_assignment_number(text)},
    KeyPointType.TECHNICAL_ISSUE: lambda text: {"tool": extract_tool(text)},
}


def find_reply_target(message: Message, previous: Sequence[Message]) -> Optional[str]:
    """Most recent earlier sender that the message @-mentions, if any."""
    lowered = (message.text or "").lower()
    for prev in reversed(list(previous)):
        sender = str(prev.sender or "").strip()
        if sender and f"@{sender.lower()}" in lowered:
            return prev.sender
    return None


def classify_message(
    message: Message,
    previous: Sequence[Message] = (),
    chat_context: Optional[ConversationContext] = None,
) -> KeyPoint:
    text = (message.text or "").strip()
    lowered = text.lower()
    reply_to = find_reply_target(message, previous)

    point_type = KeyPointType.OTHER
    for candidate, predicate in CLASSIFICATION_RULES:
        if predicate(text, lowered, reply_to):
            point_type = candidate
            break

    extractor = _CONTEXT_EXTRACTORS.get(point_type)
    return KeyPoint(
        type=point_type,
        text=text,
        sender=message.sender,
        reply_to=reply_to,
        context=extractor(text) if extractor else {},
        is_response=point_type == KeyPointType.RESPONSE,
        chat_context=chat_context,
    )


def extract_key_points(
    messages: Sequence[Message],
    chat_context: Optional[ConversationContext] = None,
) -> List[KeyPoint]:
    """Classify a bucket of messages in order, collapsing repeated texts to their first occurrence."""
    points: List[KeyPoint] = []
    seen_texts: set[str] = set()
    ordered = list(messages)
    for index, message in enumerate(ordered):
        point = classify_message(message, ordered[:index], chat_context)
        if point.text in seen_texts:
            continue
        seen_texts.add(point.text)
        points.append(point)
    return points
