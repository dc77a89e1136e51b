import json
from typing import Any, Callable, Optional

from flagcore.context import Context
from flagcore.evaluation import EvaluationDetail
from flagcore.impl.model import FeatureFlag
from flagcore.impl.util import current_time_millis

# Evaluation records handed to the configured EventProcessor. They are produced for every
# evaluation (and every prerequisite evaluation), so they use slots rather than dicts.


class EventInputEvaluation:
    __slots__ = ['timestamp', 'context', 'key', 'flag', 'variation', 'value', 'reason', 'default_value', 'prereq_of', 'track_events']

    def __init__(
        self,
        timestamp: int,
        context: Context,
        key: str,
        flag: Optional[FeatureFlag],
        variation: Optional[int],
        value: Any,
        reason: Optional[dict],
        default_value: Any,
        prereq_of: Optional[FeatureFlag] = None,
        track_events: bool = False,
    ):
        self.timestamp = timestamp
        self.context = context
        self.key = key
        self.flag = flag
        self.variation = variation
        self.value = value
        self.reason = reason
        self.default_value = default_value
        self.prereq_of = prereq_of
        self.track_events = track_events

    @property
    def debug_events_until_date(self) -> Optional[float]:
        return None if self.flag is None else self.flag.debug_events_until_date

    def to_debugging_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "context": self.context.to_dict(),
            "key": self.key,
            "flag": {"key": self.flag.key, "version": self.flag.version} if self.flag else None,
            "variation": self.variation,
            "value": self.value,
            "reason": self.reason,
            "default_value": self.default_value,
            "prereq_of": {"key": self.prereq_of.key} if self.prereq_of else None,
            "track_events": self.track_events,
        }

    def __repr__(self) -> str:  # used only in test debugging
        return "EventInputEvaluation(%s)" % json.dumps(self.to_debugging_dict())

    def __eq__(self, other) -> bool:  # used only in tests
        return isinstance(other, EventInputEvaluation) and self.to_debugging_dict() == other.to_debugging_dict()


# The client owns two factories: one that always embeds evaluation reasons (used by the
# *_detail methods) and one that only does so when the flag is part of an experiment.


class EventFactory:
    def __init__(self, with_reasons: bool, timestamp_fn: Callable[[], int] = current_time_millis):
        self._with_reasons = with_reasons
        self._timestamp_fn = timestamp_fn

    def new_eval_event(self, flag: FeatureFlag, context: Context, detail: EvaluationDetail, default_value: Any, prereq_of_flag: Optional[FeatureFlag] = None) -> EventInputEvaluation:
        add_experiment_data = self.is_experiment(flag, detail.reason)
        return EventInputEvaluation(
            self._timestamp_fn(),
            context,
            flag.key,
            flag,
            detail.variation_index,
            detail.value,
            detail.reason if self._with_reasons or add_experiment_data else None,
            default_value,
            prereq_of_flag,
            flag.track_events or add_experiment_data,
        )

    def new_default_event(self, flag: FeatureFlag, context: Context, default_value: Any, reason: Optional[dict]) -> EventInputEvaluation:
        return EventInputEvaluation(self._timestamp_fn(), context, flag.key, flag, None, default_value, reason if self._with_reasons else None, default_value, None, flag.track_events)

    def new_unknown_flag_event(self, key: str, context: Context, default_value: Any, reason: Optional[dict]) -> EventInputEvaluation:
        return EventInputEvaluation(self._timestamp_fn(), context, key, None, None, default_value, reason if self._with_reasons else None, default_value, None, False)

    @staticmethod
    def is_experiment(flag: FeatureFlag, reason: Optional[dict]) -> bool:
        if reason is None:
            return False
        if reason.get('inExperiment'):
            return True
        kind = reason['kind']
        if kind == 'RULE_MATCH':
            index = reason['ruleIndex']
            rules = flag.rules
            return 0 <= index < len(rules) and rules[index].track_events
        if kind == 'FALLTHROUGH':
            return flag.track_events_fallthrough
        return False
