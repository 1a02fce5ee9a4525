from __future__ import annotations

import re
from typing import Dict, List, Sequence, Tuple

from chatlens.analysis.grouping import group_related_points
from chatlens.memory.schema import Group, KeyPoint, KeyPointType

JOB_HINTS = ("hiring", "job", "position", "vacancy", "career", "opportunity", "resume", "cv", "recruitment")
ASSIGNMENT_HINTS = ("assignment", "homework", "submission", "due date", "deadline")
ISSUE_HINTS = ("error", "bug", "issue", "problem", "not working", "failed")
ANNOUNCEMENT_HINTS = ("announcement", "attention", "notice", "update", "important")

# (key, section header, hints); the last entry catches everything else.
REPORT_CATEGORIES: Tuple[Tuple[str, str, Tuple[str, ...]], ...] = (
    ("job_postings", "**Job Postings & Career Updates:**", JOB_HINTS),
    ("assignments", "**Assignment Updates:**", ASSIGNMENT_HINTS),
    ("technical_issues", "**Technical Issues:**", ISSUE_HINTS),
    ("announcements", "**Announcements:**", ANNOUNCEMENT_HINTS),
    ("other", "**Other Updates:**", ()),
)

_ISSUE_TOPICS: Tuple[Tuple[str, str], ...] = (
    ("paint", "the Paint tool functionality"),
    ("pydantic", "the Pydantic implementation"),
    ("error", "error handling"),
    ("file", "file operations"),
)

_PREFIX_PATTERNS = (
    re.compile(r"^(hi|hello|hey)\b[\s,!.]*", re.IGNORECASE),
    re.compile(r"^(regarding|about)\b\s*", re.IGNORECASE),
    re.compile(r"^(i am|i'm)\b\s*", re.IGNORECASE),
    re.compile(r"^(please|kindly)\b\s*", re.IGNORECASE),
)


def has_any(text: str, hints: Sequence[str]) -> bool:
    lowered = (text or "").lower()
    return any(hint in lowered for hint in hints)


def is_job_posting(text: str) -> bool:
    return has_any(text, JOB_HINTS)


def is_assignment_related(text: str) -> bool:
    return has_any(text, ASSIGNMENT_HINTS)


def is_technical_issue(text: str) -> bool:
    return has_any(text, ISSUE_HINTS)


def is_announcement(text: str) -> bool:
    return has_any(text, ANNOUNCEMENT_HINTS)


def summarize_text(text: str) -> str:
    """Strip greeting / framing prefixes ("hi", "regarding", "I'm", "please") from a message."""
    value = (text or "").strip()
    for pattern in _PREFIX_PATTERNS:
        value = pattern.sub("", value, count=1)
    return value.strip()


def categorize_group(group: Group) -> str:
    text = group.main_point.text
    for key, _, hints in REPORT_CATEGORIES:
        if not hints or has_any(text, hints):
            return key
    return "other"


def extract_issue_context(text: str) -> str:
    lowered = (text or "").lower()
    for key, description in _ISSUE_TOPICS:
        if key in lowered:
            return description
    return "the implementation"


def _describe_technical_issue(points: List[KeyPoint]) -> str:
    description = f"reporting an issue with {extract_issue_context(points[0].text)}. "
    details = " ".join(p.text for p in points if not p.is_response)
    return description + summarize_text(details)


def _format_responses(responses: List[KeyPoint]) -> str:
    return ", and ".join(f"{r.sender} {summarize_text(r.text)}" for r in responses)


def format_group(group: Group) -> str:
    main = group.main_point
    mention = f"[{main.sender}]"
    points = group.points or [main]

    if main.type == KeyPointType.TECHNICAL_ISSUE:
        text = f"{mention} is {_describe_technical_issue(points)}"
    elif main.type == KeyPointType.ASSIGNMENT:
        text = f"{mention} {summarize_text(main.text)}"
    elif main.type == KeyPointType.QUESTION:
        text = f"{mention} is asking {summarize_text(main.text)}"
    else:
        text = f"{mention} {main.text.replace(mention, '', 1).strip()}"

    responses = [p for p in points if p.is_response]
    if responses:
        text += f"\n  → {_format_responses(responses)}"
    return text.rstrip()


def format_report(points: Sequence[KeyPoint], date_label: str) -> str:
    """Render key points as a categorized natural-language summary."""
    if not points:
        return f"No key points found in the conversation for {date_label}."

    chat_context = points[0].chat_context
    title = chat_context.title if chat_context and chat_context.title else "Unknown Chat"
    header = f"Chat: {title}\nHere's a breakdown of the key action items from {date_label}:\n\n"

    sections: Dict[str, List[str]] = {key: [] for key, _, _ in REPORT_CATEGORIES}
    for group in group_related_points(points):
        sections[categorize_group(group)].append(format_group(group))

    lines: List[str] = []
    for key, title_line, _ in REPORT_CATEGORIES:
        entries = sections[key]
        if not entries:
            continue
        lines.append(title_line)
        lines.extend(f"* {entry}" for entry in entries)
        lines.append("")

    return header + "\n".join(lines).strip()
