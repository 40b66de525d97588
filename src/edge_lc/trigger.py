"""触发规则

规则格式：
    {"condition": {"operator": ">", "threshold": 500, "metric": "num_of_samples"}}

condition也可以是组合条件 {"all": [...]} 或 {"any": [...]}。
事实(facts)是名称到数值或数值序列的映射，序列要求每个元素都满足条件。
"""

import operator
from numbers import Number
from typing import Any, Callable, Dict, Mapping, Sequence

from .exceptions import InvalidFactError, InvalidRuleError, UnknownFactError

DEFAULT_METRIC = "num_of_samples"

OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    ">": operator.gt,
    ">=": operator.ge,
    "<": operator.lt,
    "<=": operator.le,
    "==": operator.eq,
    "!=": operator.ne,
}

Check = Callable[[Mapping[str, Any]], bool]


def _is_number(value) -> bool:
    return isinstance(value, Number) and not isinstance(value, bool)


class TriggerEvaluator:
    """触发规则求值器

    构造时解析规则，求值时不修改任何状态。
    """

    def __init__(self, rule_config: Mapping[str, Any]):
        if not isinstance(rule_config, Mapping):
            raise InvalidRuleError(f"Trigger rule must be a mapping, got {type(rule_config).__name__}")

        condition = rule_config.get("condition")
        if condition is None:
            raise InvalidRuleError("Trigger rule must contain a condition")

        self._check = self._compile(condition)

    def _compile(self, condition) -> Check:
        if not isinstance(condition, Mapping):
            raise InvalidRuleError(f"Condition must be a mapping: {condition!r}")

        for combinator, reducer in (("all", all), ("any", any)):
            if combinator in condition:
                children = condition[combinator]
                if not isinstance(children, Sequence) or isinstance(children, str) or not children:
                    raise InvalidRuleError(f"'{combinator}' must be a non-empty list of conditions")
                checks = [self._compile(child) for child in children]
                return lambda facts, checks=checks, reducer=reducer: reducer(
                    check(facts) for check in checks
                )

        op_name = condition.get("operator")
        compare = OPERATORS.get(op_name)
        if compare is None:
            raise InvalidRuleError(f"Unsupported operator: {op_name!r}")

        threshold = condition.get("threshold")
        if isinstance(threshold, str):
            try:
                threshold = float(threshold)
            except ValueError:
                raise InvalidRuleError(f"Threshold is not a number: {threshold!r}")
        if not _is_number(threshold):
            raise InvalidRuleError(f"Threshold is not a number: {threshold!r}")

        metric = condition.get("metric", DEFAULT_METRIC)
        if not isinstance(metric, str) or not metric:
            raise InvalidRuleError(f"Metric must be a non-empty string: {metric!r}")

        def check(facts: Mapping[str, Any]) -> bool:
            if metric not in facts:
                raise UnknownFactError(f"Unknown fact: {metric}")
            value = facts[metric]
            if _is_number(value):
                return compare(value, threshold)
            if isinstance(value, Sequence) and not isinstance(value, str):
                if not all(_is_number(v) for v in value):
                    raise InvalidFactError(f"Fact {metric} must contain only numbers")
                return bool(value) and all(compare(v, threshold) for v in value)
            raise InvalidFactError(f"Fact {metric} must be a number or a list of numbers")

        return check

    def evaluate(self, facts: Mapping[str, Any]) -> bool:
        """对事实求值，返回是否触发"""
        return bool(self._check(facts))


def evaluate(rule_config: Mapping[str, Any], facts: Mapping[str, Any]) -> bool:
    """解析规则并对事实求值"""
    return TriggerEvaluator(rule_config).evaluate(facts)
