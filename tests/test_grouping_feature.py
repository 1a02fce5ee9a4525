from chatlens.analysis.grouping import are_points_related, group_related_points
from chatlens.memory.schema import KeyPoint, KeyPointType


def _point(text, sender, point_type=KeyPointType.OTHER, reply_to=None, context=None):
    return KeyPoint(
        type=point_type,
        text=text,
        sender=sender,
        reply_to=reply_to,
        context=context or {},
        is_response=point_type == KeyPointType.RESPONSE,
    )


def _assignment(text, sender, number):
    return _point(text, sender, KeyPointType.ASSIGNMENT, context={"assignment": number})


def test_same_assignment_number_relates():
    a = _assignment("assignment 3 posted", "Ann", "3")
    b = _assignment("assignment 3 due friday", "Bob", "3")
    c = _assignment("assignment 4 posted", "Cara", "4")
    unknown = _assignment("the assignment", "Dev", None)

    assert are_points_related(a, b)
    assert not are_points_related(a, c)
    assert not are_points_related(unknown, _assignment("assignment again", "Eve", None))


def test_reply_relation_is_directional():
    question = _point("how do I start?", "Ann", KeyPointType.QUESTION)
    answer = _point("@Ann try the docs", "Bob", KeyPointType.RESPONSE, reply_to="Ann")

    assert are_points_related(question, answer)
    assert not are_points_related(answer, question)


def test_shared_technical_term_relates():
    first = _point("paint will not open", "Ann", KeyPointType.TECHNICAL_ISSUE)
    second = _point("my paint window freezes", "Bob")
    third = _point("pydantic fails to validate", "Cara")

    assert are_points_related(first, second)
    assert not are_points_related(first, third)


def test_all_assignment_three_points_share_one_group():
    a = _assignment("assignment 3 posted", "Ann", "3")
    b = _assignment("assignment 3 due friday", "Bob", "3")
    c = _assignment("assignment 3 extended", "Cara", "3")

    groups = group_related_points([a, b, c])

    assert len(groups) == 1
    assert groups[0].main_point is a
    assert [p.sender for p in groups[0].points] == ["Ann", "Bob", "Cara"]


def test_grouping_is_not_transitive():
    # b relates to a (same assignment); c replies to b but relates to a by no rule.
    a = _assignment("assignment 3 posted", "Ann", "3")
    b = _assignment("assignment 3 link broken", "Bob", "3")
    c = _point("@Bob try the mirror", "Cara", KeyPointType.RESPONSE, reply_to="Bob")

    assert are_points_related(a, b)
    assert are_points_related(b, c)
    assert not are_points_related(a, c)

    groups = group_related_points([a, b, c])

    assert [g.main_point.sender for g in groups] == ["Ann", "Cara"]
    assert [p.sender for p in groups[0].points] == ["Ann", "Bob"]
    assert groups[1].points == [c]


def test_every_point_is_placed_exactly_once():
    points = [
        _point("hello", "Ann"),
        _point("paint broke", "Bob", KeyPointType.TECHNICAL_ISSUE),
        _point("@Bob try paint again", "Cara", KeyPointType.RESPONSE, reply_to="Bob"),
        _point("bye", "Dev"),
    ]

    groups = group_related_points(points)

    placed = [p.text for g in groups for p in g.points]
    assert sorted(placed) == sorted(p.text for p in points)
    assert groups[1].responses[0].sender == "Cara"


def test_empty_input_has_no_groups():
    assert group_related_points([]) == []
