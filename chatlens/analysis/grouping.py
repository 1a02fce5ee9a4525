"""
Relation grouping for key points.

Grouping is a single pass and deliberately not transitive: a point joins a
group only when it relates to that group's main point. A point that relates
to a member but not to the main point starts (or joins) a later group.
"""
from __future__ import annotations

from typing import List, Sequence

from chatlens.analysis.classifier import TECHNICAL_TERMS
from chatlens.memory.schema import Group, KeyPoint, KeyPointType


def _same_assignment(first: KeyPoint, second: KeyPoint) -> bool:
    if first.type != KeyPointType.ASSIGNMENT or second.type != KeyPointType.ASSIGNMENT:
        return False
    number = first.context.get("assignment")
    return number is not None and number == second.context.get("assignment")


def _replies_to(first: KeyPoint, second: KeyPoint) -> bool:
    return second.reply_to is not None and second.reply_to == first.sender


def _shares_technical_term(first: KeyPoint, second: KeyPoint) -> bool:
    text1 = first.text.lower()
    text2 = second.text.lower()
    return any(term in text1 and term in text2 for term in TECHNICAL_TERMS)


RELATION_RULES = (_same_assignment, _replies_to, _shares_technical_term)


def are_points_related(first: KeyPoint, second: KeyPoint) -> bool:
    return any(rule(first, second) for rule in RELATION_RULES)


def group_related_points(points: Sequence[KeyPoint]) -> List[Group]:
    ordered = list(points)
    placed = [False] * len(ordered)
    groups: List[Group] = []

    for i, main_point in enumerate(ordered):
        if placed[i]:
            continue
        placed[i] = True
        members = [main_point]
        for j, candidate in enumerate(ordered):
            if placed[j]:
                continue
            if are_points_related(main_point, candidate):
                members.append(candidate)
                placed[j] = True
        groups.append(Group(main_point=main_point, points=members))

    return groups
