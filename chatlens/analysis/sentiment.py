from __future__ import annotations

from typing import Callable, Dict, List, Optional, Sequence, Tuple

from chatlens.analysis.report import is_assignment_related, is_technical_issue, summarize_text
from chatlens.memory.schema import ConversationContext, Message

LABEL_CONCERNED = "Mixed to Concerned"
LABEL_POSITIVE = "Positive"
LABEL_NEUTRAL = "Neutral"


def _is_question(lowered: str) -> bool:
    return lowered.endswith("?") or "anyone" in lowered or "help" in lowered


def _is_positive(lowered: str) -> bool:
    return "thank" in lowered or "solved" in lowered or "works" in lowered


# (key, section header, predicate over lowercased text); first match wins.
SENTIMENT_BUCKETS: Tuple[Tuple[str, str, Callable[[str], bool]], ...] = (
    ("technical_issues", "**Technical Concerns:**", is_technical_issue),
    ("assignments", "**Assignment-Related:**", is_assignment_related),
    ("questions", "**Questions/Help Seeking:**", _is_question),
    ("positive", "**Positive Responses/Solutions:**", _is_positive),
    ("general", "**General Discussion:**", lambda lowered: True),
)


def bucket_messages(messages: Sequence[Message]) -> Dict[str, List[Message]]:
    buckets: Dict[str, List[Message]] = {key: [] for key, _, _ in SENTIMENT_BUCKETS}
    for msg in messages:
        lowered = (msg.text or "").strip().lower()
        for key, _, predicate in SENTIMENT_BUCKETS:
            if predicate(lowered):
                buckets[key].append(msg)
                break
    return buckets


def overall_label(buckets: Dict[str, List[Message]]) -> str:
    issues = len(buckets.get("technical_issues", []))
    questions = len(buckets.get("questions", []))
    positive = len(buckets.get("positive", []))
    if issues > 0 or questions > positive:
        return LABEL_CONCERNED
    if positive > 0 and issues == 0:
        return LABEL_POSITIVE
    return LABEL_NEUTRAL


def analyze_sentiment(messages: Sequence[Message], chat_context: Optional[ConversationContext] = None) -> str:
    if not messages:
        return "No messages found to analyze sentiment."

    title = chat_context.title if chat_context and chat_context.title else "Unknown Chat"
    buckets = bucket_messages(messages)

    response = f"Chat: {title}\n\n"
    response += "Sentiment Analysis of Today's Conversation:\n\n"
    response += f"**Overall Sentiment:** {overall_label(buckets)}\n\n"

    for key, header, _ in SENTIMENT_BUCKETS:
        entries = buckets[key]
        if not entries:
            continue
        response += f"{header}\n"
        for msg in entries:
            response += f"* [{msg.sender}] {summarize_text(msg.text)}\n"
        response += "\n"

    return response.strip()
