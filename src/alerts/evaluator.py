"""Pure metric evaluation — which alert rules does a sample violate?"""

from __future__ import annotations

import math
from collections.abc import Collection, Iterable, Mapping
from typing import Any

import structlog
from pydantic import ValidationError

from src.core.types import AlertRule, Comparison, MetricKind, MetricSample

logger = structlog.stdlib.get_logger()


def compare(
    value: float,
    comparison: Comparison,
    threshold: float,
    equals_epsilon: float | None = None,
) -> bool:
    """Evaluate ``value <comparison> threshold`` with IEEE-754 doubles.

    ``equals`` is bit-exact unless ``equals_epsilon`` is given, in which case
    values within the epsilon compare equal.
    """
    if comparison == Comparison.GREATER_THAN:
        return value > threshold
    if comparison == Comparison.LESS_THAN:
        return value < threshold
    if comparison == Comparison.EQUALS:
        if equals_epsilon is None:
            return value == threshold
        return abs(value - threshold) <= equals_epsilon
    return False


def candidate_rules(sample: MetricSample, rules: Iterable[AlertRule]) -> list[AlertRule]:
    """Enabled rules targeting the sample's metric kind with a usable threshold."""
    candidates: list[AlertRule] = []
    for rule in rules:
        if not rule.enabled or rule.metric_kind != sample.metric_kind:
            continue
        if not math.isfinite(rule.threshold):
            logger.warning("rule_skipped_non_finite_threshold", rule_id=rule.id)
            continue
        candidates.append(rule)
    return candidates


def evaluate(
    sample: MetricSample,
    rules: Iterable[AlertRule],
    equals_epsilon: float | None = None,
    enabled_kinds: Collection[MetricKind] | None = None,
) -> list[AlertRule]:
    """Return the candidate rules the sample violates (possibly empty).

    Samples whose kind is not in ``enabled_kinds`` or whose value is not a
    finite number are skipped and logged.
    """
    if enabled_kinds is not None and sample.metric_kind not in enabled_kinds:
        logger.debug(
            "sample_skipped_kind_disabled",
            server_id=sample.server_id,
            metric_kind=sample.metric_kind,
        )
        return []
    if not math.isfinite(sample.value):
        logger.warning(
            "sample_skipped_non_finite_value",
            server_id=sample.server_id,
            metric_kind=sample.metric_kind,
        )
        return []

    return [
        rule
        for rule in candidate_rules(sample, rules)
        if compare(sample.value, rule.comparison, rule.threshold, equals_epsilon)
    ]


def parse_sample(raw: Mapping[str, Any]) -> MetricSample | None:
    """Build a MetricSample from an ingestion payload, or None if malformed."""
    try:
        return MetricSample.model_validate(raw)
    except ValidationError as exc:
        logger.warning(
            "sample_malformed",
            server_id=raw.get("server_id"),
            metric_kind=raw.get("metric_kind"),
            errors=exc.error_count(),
        )
        return None


def parse_rule(raw: Mapping[str, Any]) -> AlertRule | None:
    """Build an AlertRule from a stored/configured mapping, or None if malformed."""
    try:
        return AlertRule.model_validate(raw)
    except ValidationError as exc:
        logger.warning(
            "rule_malformed",
            rule_id=raw.get("id"),
            errors=exc.error_count(),
        )
        return None
