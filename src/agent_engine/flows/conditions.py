"""Step condition evaluation."""

from typing import Any, Iterable

from ..models import FlowCondition, FlowContext
from ..utils import get_logger

logger = get_logger(__name__)


def evaluate_condition(condition: FlowCondition, context: FlowContext) -> bool:
    """Evaluate one condition against a flow context.

    Comparisons between incompatible types evaluate to False.

    Args:
        condition: Condition to evaluate
        context: Flow context the variable is resolved in

    Returns:
        Whether the condition holds
    """
    if condition.type == "custom":
        if condition.condition is None:
            logger.warning("Custom condition without a predicate evaluates to False")
            return False
        return bool(condition.condition(context))

    actual: Any = context.resolve(condition.variable) if condition.variable else None
    expected = condition.value

    try:
        if condition.type == "equals":
            return actual == expected
        if condition.type == "not_equals":
            return actual != expected
        if condition.type == "greater_than":
            return actual is not None and actual > expected
        if condition.type == "less_than":
            return actual is not None and actual < expected
        if condition.type == "contains":
            return actual is not None and expected in actual
        if condition.type == "exists":
            return actual is not None
    except TypeError as e:
        logger.debug(f"Condition on '{condition.variable}' not comparable: {e}")
        return False

    return False


def evaluate_conditions(conditions: Iterable[FlowCondition], context: FlowContext) -> bool:
    """Combine conditions left to right using each condition's operator.

    The operator of a condition joins it with the result accumulated so far;
    the operator of the first condition is ignored. No conditions means True.

    Args:
        conditions: Conditions in declaration order
        context: Flow context

    Returns:
        Combined result
    """
    result: bool | None = None
    for condition in conditions:
        value = evaluate_condition(condition, context)
        if result is None:
            result = value
        elif condition.operator == "or":
            result = result or value
        else:
            result = result and value
    return True if result is None else result
