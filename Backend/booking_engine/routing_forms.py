"""
Routing Form Decisions

Maps a visitor's answers to exactly one action:
    1. Required questions are checked in order_index order; the first one
       without an answer raises ValidationError and no rule is evaluated.
    2. Active rules are evaluated in their stored order; the first rule whose
       conditions all hold wins.
    3. With no match the form's default action is used. A form without one
       raises UnroutableSubmission.

Comparisons are case-insensitive. Checkbox answers are lists: equals,
contains and starts_with hold when any element matches, not_equals holds when
no element equals the value.
"""

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .domain import (
    RoutingAction,
    RoutingActionType,
    RoutingForm,
    RoutingRule,
    RuleCondition,
    RuleOperator,
)
from .errors import NotFoundError, UnroutableSubmission, ValidationError
from .storage.base import CalendarStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoutingOutcome:
    action: RoutingAction
    matched_rule_index: Optional[int]
    used_default: bool

    @property
    def routed_to(self) -> str:
        return routed_to_label(self.action)


def routed_to_label(action: RoutingAction) -> str:
    """Descriptor stored on the submission record."""
    if action.type == RoutingActionType.ROUTE_TO_BOOKING:
        return f"booking_link:{action.booking_link_id}"
    if action.type == RoutingActionType.ROUTE_TO_URL:
        return f"url:{action.url}"
    return "message"


def is_missing(answer: Any) -> bool:
    if answer is None:
        return True
    if isinstance(answer, str):
        return not answer.strip()
    if isinstance(answer, (list, tuple, set)):
        return len(answer) == 0
    return False


def validate_answers(form: RoutingForm, answers: Mapping[str, Any]) -> None:
    for question in sorted(form.questions, key=lambda q: q.order_index):
        if question.is_required and is_missing(answers.get(question.id)):
            raise ValidationError(question.id, question.label or None)


def _compare(operator: RuleOperator, answer: str, expected: str) -> bool:
    if operator == RuleOperator.EQUALS:
        return answer == expected
    if operator == RuleOperator.CONTAINS:
        return expected in answer
    if operator == RuleOperator.STARTS_WITH:
        return answer.startswith(expected)
    raise ValueError(f"Unsupported operator: {operator}")


def condition_holds(condition: RuleCondition, answers: Mapping[str, Any]) -> bool:
    if condition.operator == RuleOperator.ANY:
        return True

    answer = answers.get(condition.question_id)
    if answer is None:
        return False

    expected = str(condition.value).strip().lower()
    if isinstance(answer, (list, tuple, set)):
        values = [str(item).strip().lower() for item in answer]
    else:
        values = [str(answer).strip().lower()]

    if condition.operator == RuleOperator.NOT_EQUALS:
        return all(value != expected for value in values)
    return any(_compare(condition.operator, value, expected) for value in values)


def rule_matches(rule: RoutingRule, answers: Mapping[str, Any]) -> bool:
    return all(condition_holds(condition, answers) for condition in rule.conditions)


def evaluate(form: RoutingForm, answers: Mapping[str, Any]) -> RoutingOutcome:
    """
    Decide the action for a submission and report how it was reached.

    Raises:
        ValidationError: a required question is unanswered
        UnroutableSubmission: nothing matched and there is no default action
    """
    validate_answers(form, answers)

    for index, rule in enumerate(form.rules):
        if not rule.is_active:
            continue
        if rule_matches(rule, answers):
            logger.debug(f"[ROUTING] form={form.id} matched rule #{index}")
            return RoutingOutcome(rule.action, index, used_default=False)

    if form.default_action is None:
        raise UnroutableSubmission(
            f"No routing rule matched and form {form.id} has no default action",
            {"form_id": form.id},
        )
    logger.debug(f"[ROUTING] form={form.id} fell through to default action")
    return RoutingOutcome(form.default_action, None, used_default=True)


def decide(form: RoutingForm, answers: Mapping[str, Any]) -> RoutingAction:
    return evaluate(form, answers).action


class RoutingDecisionEngine:
    """Loads forms from the store, decides, and records the submission."""

    def __init__(self, store: CalendarStore):
        self.store = store

    async def route(self, form_id: int, answers: Mapping[str, Any]) -> RoutingOutcome:
        """Decide a submission without recording it."""
        form = await self.store.get_routing_form(form_id)
        if form is None or not form.is_active:
            raise NotFoundError(f"Routing form {form_id} not found", {"form_id": form_id})
        return evaluate(form, answers)

    async def record(
        self,
        form_id: int,
        answers: Mapping[str, Any],
        outcome: RoutingOutcome,
        email: Optional[str] = None,
        name: Optional[str] = None,
    ) -> None:
        await self.store.record_submission(
            form_id,
            dict(answers),
            outcome.action,
            outcome.routed_to,
            email=email,
            name=name,
        )
        logger.info(f"[ROUTING] form={form_id} routed_to={outcome.routed_to}")

    async def submit(
        self,
        form_id: int,
        answers: Mapping[str, Any],
        email: Optional[str] = None,
        name: Optional[str] = None,
    ) -> RoutingOutcome:
        outcome = await self.route(form_id, answers)
        await self.record(form_id, answers, outcome, email=email, name=name)
        return outcome
