"""Flow definition validation.

Three independent passes run over a FlowConfig: flow-level structure,
per-step structure and the dependency graph. No pass short-circuits; every
error of every pass is collected into a single FlowValidationResult.
"""

from typing import Iterable, Optional

from ..models import FlowConfig, FlowStep, FlowValidationResult
from .constants import (
    BUILT_IN_STEP_TYPES,
    FLOW_ID_PATTERN,
    MAX_DESCRIPTION_LENGTH,
    MAX_NAME_LENGTH,
    MAX_TAG_LENGTH,
    MAX_TAGS,
    MIN_NAME_LENGTH,
    STEP_ID_PATTERN,
)


def validate_flow_config(
    config: FlowConfig,
    known_step_types: Optional[Iterable[str]] = None,
) -> FlowValidationResult:
    """Validate a flow definition.

    Args:
        config: Flow definition
        known_step_types: Step types accepted without a warning, in addition
            to the built-in ones

    Returns:
        Validation result with all errors and warnings
    """
    errors: list[str] = []
    warnings: list[str] = []

    errors.extend(validate_structure(config))

    step_errors, step_warnings = validate_steps(config.steps, known_step_types)
    errors.extend(step_errors)
    warnings.extend(step_warnings)

    errors.extend(validate_dependencies(config.steps))

    return FlowValidationResult(valid=not errors, errors=errors, warnings=warnings)


def validate_structure(config: FlowConfig) -> list[str]:
    """Check flow-level fields."""
    errors: list[str] = []

    if not config.id:
        errors.append("Flow ID is required and must be a string")
    elif not FLOW_ID_PATTERN.match(config.id):
        errors.append("Flow ID contains invalid characters")

    if not config.name:
        errors.append("Flow name is required and must be a string")
    else:
        if len(config.name) < MIN_NAME_LENGTH:
            errors.append(f"Flow name must be at least {MIN_NAME_LENGTH} characters")
        if len(config.name) > MAX_NAME_LENGTH:
            errors.append(f"Flow name cannot exceed {MAX_NAME_LENGTH} characters")

    if not config.version:
        errors.append("Flow version is required and must be a string")

    if config.description is not None and len(config.description) > MAX_DESCRIPTION_LENGTH:
        errors.append(f"Flow description cannot exceed {MAX_DESCRIPTION_LENGTH} characters")

    if config.timeout_ms is not None and config.timeout_ms <= 0:
        errors.append("Flow timeout must be a positive integer")

    if len(config.tags) > MAX_TAGS:
        errors.append(f"Flow cannot have more than {MAX_TAGS} tags")
    for tag in config.tags:
        if len(tag) > MAX_TAG_LENGTH:
            errors.append(f"Tag '{tag}' exceeds maximum length of {MAX_TAG_LENGTH} characters")

    return errors


def validate_steps(
    steps: list[FlowStep],
    known_step_types: Optional[Iterable[str]] = None,
) -> tuple[list[str], list[str]]:
    """Check every step.

    Returns:
        Tuple of (errors, warnings). An unknown step type is only a warning;
        it fails at execution time if no executor is registered for it.
    """
    errors: list[str] = []
    warnings: list[str] = []
    known_types = set(BUILT_IN_STEP_TYPES) | set(known_step_types or ())
    seen: set[str] = set()

    for step in steps:
        if step.id in seen:
            errors.append(f"Duplicate step ID: {step.id}")
        seen.add(step.id)

        if not step.id:
            errors.append("Step ID is required and must be a string")
        elif not STEP_ID_PATTERN.match(step.id):
            errors.append(f"Step ID '{step.id}' contains invalid characters")

        if not step.name:
            errors.append(f"Step '{step.id}' name is required and must be a string")
        if not step.type:
            errors.append(f"Step '{step.id}' type is required and must be a string")
        if step.config is None:
            errors.append(f"Step '{step.id}' config is required and must be an object")

        if step.timeout_ms is not None and step.timeout_ms <= 0:
            errors.append(f"Step '{step.id}' timeout must be a positive integer")

        if step.retry is not None:
            if step.retry.max_retries < 0:
                errors.append(f"Step '{step.id}' retry max_retries must be a non-negative integer")
            if step.retry.delay_ms < 0:
                errors.append(f"Step '{step.id}' retry delay must be a non-negative integer")

        if step.type and step.type not in known_types:
            warnings.append(f"Step '{step.id}' uses unknown step type: {step.type}")

    return errors, warnings


def validate_dependencies(steps: list[FlowStep]) -> list[str]:
    """Check that dependencies resolve and form no cycle."""
    errors: list[str] = []
    step_ids = {step.id for step in steps}

    for step in steps:
        for dep_id in step.dependencies:
            if dep_id not in step_ids:
                errors.append(f"Step '{step.id}' depends on non-existent step: {dep_id}")

    cycles = detect_circular_dependencies(steps)
    if cycles:
        errors.append(f"Circular dependencies detected: {', '.join(cycles)}")

    return errors


def detect_circular_dependencies(steps: list[FlowStep]) -> list[str]:
    """Find dependency cycles with a depth-first search.

    A cycle is reported as the chain of step ids from the repeated step
    back to itself, e.g. ``"A -> B -> A"``.

    Args:
        steps: Flow steps

    Returns:
        One entry per detected cycle
    """
    dependencies = {step.id: step.dependencies for step in steps}
    visited: set[str] = set()
    recursion_stack: set[str] = set()
    cycles: list[str] = []

    def dfs(step_id: str, path: list[str]) -> None:
        if step_id in recursion_stack:
            cycle_start = path.index(step_id)
            cycles.append(" -> ".join(path[cycle_start:] + [step_id]))
            return
        if step_id in visited:
            return

        visited.add(step_id)
        recursion_stack.add(step_id)
        for dep_id in dependencies.get(step_id, []):
            dfs(dep_id, path + [step_id])
        recursion_stack.discard(step_id)

    for step in steps:
        if step.id not in visited:
            dfs(step.id, [])

    return cycles
