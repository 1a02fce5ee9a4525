from chatlens.analysis.report import (
    REPORT_CATEGORIES,
    categorize_group,
    extract_issue_context,
    format_group,
    format_report,
    summarize_text,
)
from chatlens.memory.schema import ConversationContext, Group, KeyPoint, KeyPointType

CONTEXT = ConversationContext(chat_id="c1", title="Python Batch")


def _point(text, sender, point_type=KeyPointType.OTHER, reply_to=None, context=None):
    return KeyPoint(
        type=point_type,
        text=text,
        sender=sender,
        reply_to=reply_to,
        context=context or {},
        is_response=point_type == KeyPointType.RESPONSE,
        chat_context=CONTEXT,
    )


def test_summarize_text_strips_framing_prefixes():
    assert summarize_text("Hi, please share the notes") == "share the notes"
    assert summarize_text("Regarding the lab timings") == "the lab timings"
    assert summarize_text("I'm stuck on the loop") == "stuck on the loop"
    assert summarize_text("Kindly revert") == "revert"
    assert summarize_text("history of the repo") == "history of the repo"


def test_category_priority_follows_table_order():
    keys = [key for key, _, _ in REPORT_CATEGORIES]
    assert keys == ["job_postings", "assignments", "technical_issues", "announcements", "other"]

    hiring_with_error = Group(main_point=_point("Hiring: fix this error for us", "Ann"), points=[])
    assert categorize_group(hiring_with_error) == "job_postings"
    notice = Group(main_point=_point("Important notice for everyone", "Ann"), points=[])
    assert categorize_group(notice) == "announcements"
    chat = Group(main_point=_point("good morning", "Ann"), points=[])
    assert categorize_group(chat) == "other"


def test_issue_context_descriptions():
    assert extract_issue_context("Paint crashes") == "the Paint tool functionality"
    assert extract_issue_context("pydantic model error") == "the Pydantic implementation"
    assert extract_issue_context("strange failure") == "the implementation"


def test_technical_issue_bullet_includes_details_and_responses():
    main = _point("Paint is not working", "Ann", KeyPointType.TECHNICAL_ISSUE)
    reply = _point("@Ann try running as admin", "Bob", KeyPointType.RESPONSE, reply_to="Ann")
    text = format_group(Group(main_point=main, points=[main, reply]))

    assert text == (
        "[Ann] is reporting an issue with the Paint tool functionality. Paint is not working\n"
        "  → Bob @Ann try running as admin"
    )


def test_question_bullet():
    main = _point("Hi, can someone share the slides?", "Cara", KeyPointType.QUESTION)
    assert format_group(Group(main_point=main, points=[main])) == "[Cara] is asking can someone share the slides?"


def test_multiple_responders_are_joined():
    main = _point("How do I install pydantic?", "Ann", KeyPointType.QUESTION)
    one = _point("@Ann try pip", "Bob", KeyPointType.RESPONSE, reply_to="Ann")
    two = _point("@Ann the answer is in the docs", "Cara", KeyPointType.RESPONSE, reply_to="Ann")
    text = format_group(Group(main_point=main, points=[main, one, two]))

    assert text.endswith("\n  → Bob @Ann try pip, and Cara @Ann the answer is in the docs")


def test_format_report_renders_sections_in_order():
    points = [
        _point("Good morning everyone", "Dev"),
        _point("Assignment 2 is due friday", "Ann", KeyPointType.ASSIGNMENT, context={"assignment": "2"}),
        _point("Getting an error in paint", "Bob", KeyPointType.TECHNICAL_ISSUE, context={"tool": "paint"}),
    ]

    report = format_report(points, "today")

    assert report.startswith("Chat: Python Batch\nHere's a breakdown of the key action items from today:\n\n")
    assert report.index("**Assignment Updates:**") < report.index("**Technical Issues:**")
    assert report.index("**Technical Issues:**") < report.index("**Other Updates:**")
    assert "* [Ann] Assignment 2 is due friday" in report
    assert "* [Dev] Good morning everyone" in report
    assert "**Job Postings & Career Updates:**" not in report


def test_format_report_without_points():
    assert format_report([], "09/03/2026") == "No key points found in the conversation for 09/03/2026."


def test_format_report_without_title_uses_placeholder():
    point = KeyPoint(type=KeyPointType.OTHER, text="hey", sender="Ann")
    assert format_report([point], "today").startswith("Chat: Unknown Chat\n")
