import hashlib
from typing import Any, Callable, List, Optional, Tuple

from flagcore.context import Context
from flagcore.evaluation import EvaluationDetail
from flagcore.impl import operators
from flagcore.impl.events import EventFactory, EventInputEvaluation
from flagcore.impl.model import *
from flagcore.impl.util import __LONG_SCALE__, log

# The Evaluator does not know anything about analytics; it only reports the prerequisite
# evaluations it performed, as event records created by the caller's EventFactory, so that
# the caller can forward them.


class EvalResult:
    __slots__ = ['detail', 'events', 'original_flag_key', 'prereq_stack']

    def __init__(self):
        self.detail = None  # type: Optional[EvaluationDetail]
        self.events = None  # type: Optional[List[EventInputEvaluation]]
        self.original_flag_key = None  # type: Optional[str]
        self.prereq_stack = None  # type: Optional[List[str]]

    def add_event(self, event: EventInputEvaluation):
        if self.events is None:
            self.events = []
        self.events.append(event)

    def __repr__(self) -> str:  # used only in test debugging
        return "EvalResult(detail=%s, events=%s)" % (self.detail, self.events)


class EvaluationException(Exception):
    def __init__(self, message: str, error_kind: str = 'MALFORMED_FLAG'):
        super().__init__(message)
        self._error_kind = error_kind

    @property
    def error_kind(self) -> str:
        return self._error_kind


class Evaluator:
    """
    Encapsulates the feature flag evaluation logic. The Evaluator has no knowledge of the rest of
    the client environment; it only reads flags and segments through the functions it is given.

    Callers that need a consistent view of the data for the whole evaluation (including any
    prerequisite flags) should pass lookup functions bound to a single store snapshot.
    """

    def __init__(self, get_flag: Callable[[str], Optional[FeatureFlag]], get_segment: Callable[[str], Optional[Segment]]):
        """
        :param get_flag: function provided by the client that takes a flag key and returns either the flag or None
        :param get_segment: same as get_flag but for segments
        """
        self.__get_flag = get_flag
        self.__get_segment = get_segment

    def evaluate(self, flag: FeatureFlag, context: Context, event_factory: EventFactory) -> EvalResult:
        state = EvalResult()
        state.original_flag_key = flag.key
        try:
            state.detail = self._evaluate(flag, context, state, event_factory)
        except EvaluationException as e:
            log.error('Could not evaluate flag "%s": %s' % (flag.key, e))
            state.detail = EvaluationDetail(None, None, error_reason(e.error_kind))
        return state

    def _evaluate(self, flag: FeatureFlag, context: Context, state: EvalResult, event_factory: EventFactory) -> EvaluationDetail:
        if not flag.on:
            return _get_off_value(flag, {'kind': 'OFF'})

        prereq_failure_reason = self._check_prerequisites(flag, context, state, event_factory)
        if prereq_failure_reason is not None:
            return _get_off_value(flag, prereq_failure_reason)

        for target in flag.targets:
            if context.key in target.values:
                return _get_variation(flag, target.variation, {'kind': 'TARGET_MATCH'})

        for index, rule in enumerate(flag.rules):
            if self._rule_matches_context(rule, context):
                return _get_value_for_variation_or_rollout(flag, rule.variation_or_rollout, context, {'kind': 'RULE_MATCH', 'ruleIndex': index, 'ruleId': rule.id})

        return _get_value_for_variation_or_rollout(flag, flag.fallthrough, context, {'kind': 'FALLTHROUGH'})

    def _check_prerequisites(self, flag: FeatureFlag, context: Context, state: EvalResult, event_factory: EventFactory) -> Optional[dict]:
        if len(flag.prerequisites) == 0:
            return None

        # The stack holds the keys of every flag currently being evaluated above this one;
        # meeting one of them again means the prerequisites form a cycle.
        if state.prereq_stack is None:
            state.prereq_stack = []
        state.prereq_stack.append(flag.key)
        try:
            for prereq in flag.prerequisites:
                prereq_key = prereq.key
                if prereq_key == state.original_flag_key or prereq_key in state.prereq_stack:
                    raise EvaluationException('prerequisite relationship to "%s" caused a circular reference; this is probably a temporary condition due to an incomplete update' % prereq_key)

                prereq_flag = self.__get_flag(prereq_key)
                if prereq_flag is None:
                    log.warning("Missing prereq flag: " + prereq_key)
                    return {'kind': 'PREREQUISITE_FAILED', 'prerequisiteKey': prereq_key}

                prereq_detail = self._evaluate(prereq_flag, context, state, event_factory)
                state.add_event(event_factory.new_eval_event(prereq_flag, context, prereq_detail, None, flag))
                if not prereq_flag.on or prereq_detail.variation_index != prereq.variation:
                    return {'kind': 'PREREQUISITE_FAILED', 'prerequisiteKey': prereq_key}
            return None
        finally:
            state.prereq_stack.pop()

    def _rule_matches_context(self, rule: FlagRule, context: Context) -> bool:
        for clause in rule.clauses:
            if not self._clause_matches_context(clause, context):
                return False
        return True

    def _clause_matches_context(self, clause: Clause, context: Context) -> bool:
        if clause.op == 'segmentMatch':
            for seg_key in clause.values:
                segment = self.__get_segment(seg_key) if isinstance(seg_key, str) else None
                if segment is not None and self._segment_matches_context(segment, context):
                    return _maybe_negate(clause, True)
            return _maybe_negate(clause, False)
        return _clause_matches_context_no_segments(clause, context)

    def _segment_matches_context(self, segment: Segment, context: Context) -> bool:
        if segment.unbounded:
            # membership of unbounded segments lives in an external store that is not configured
            return False
        key = context.key
        if key in segment.included:
            return True
        if key in segment.excluded:
            return False
        for rule in segment.rules:
            if _segment_rule_matches_context(rule, context, segment.key, segment.salt):
                return True
        return False


def _segment_rule_matches_context(rule: SegmentRule, context: Context, segment_key: str, salt: str) -> bool:
    for clause in rule.clauses:
        if not _clause_matches_context_no_segments(clause, context):
            return False

    # If the weight is absent, this rule matches
    if rule.weight is None:
        return True

    # All of the clauses are met. See if the context buckets in
    bucket = _bucket_context(None, context, segment_key, salt, rule.bucket_by)
    weight = rule.weight / 100000.0
    return bucket < weight


def _clause_matches_context_no_segments(clause: Clause, context: Context) -> bool:
    if clause.op == 'segmentMatch':
        # segments cannot reference other segments
        return False
    context_value = context.get(clause.attribute)
    if context_value is None:
        return False
    if isinstance(context_value, dict):
        return False
    op_fn = operators.ops[clause.op]
    if isinstance(context_value, (list, tuple)):
        for item in context_value:
            if _match_single_context_value(op_fn, item, clause):
                return _maybe_negate(clause, True)
        return _maybe_negate(clause, False)
    return _maybe_negate(clause, _match_single_context_value(op_fn, context_value, clause))


def _match_single_context_value(op_fn: Callable, context_value: Any, clause: Clause) -> bool:
    preprocessed = clause.values_preprocessed
    for i, clause_value in enumerate(clause.values):
        if op_fn(context_value, clause_value, None if preprocessed is None else preprocessed[i]):
            return True
    return False


def _maybe_negate(clause: Clause, val: bool) -> bool:
    return not val if clause.negate else val


def _get_variation(flag: FeatureFlag, variation: Optional[int], reason: dict) -> EvaluationDetail:
    vars = flag.variations
    if variation is None or variation < 0 or variation >= len(vars):
        return EvaluationDetail(None, None, error_reason('MALFORMED_FLAG'))
    return EvaluationDetail(vars[variation], variation, reason)


def _get_off_value(flag: FeatureFlag, reason: dict) -> EvaluationDetail:
    off_var = flag.off_variation
    if off_var is None:
        return EvaluationDetail(None, None, reason)
    return _get_variation(flag, off_var, reason)


def _get_value_for_variation_or_rollout(flag: FeatureFlag, vr: VariationOrRollout, context: Context, reason: dict) -> EvaluationDetail:
    index, inExperiment = _variation_index_for_context(flag, vr, context)
    if index is None:
        return EvaluationDetail(None, None, error_reason('MALFORMED_FLAG'))
    if inExperiment:
        reason = dict(reason, inExperiment=True)
    return _get_variation(flag, index, reason)


def _variation_index_for_context(flag: FeatureFlag, vr: VariationOrRollout, context: Context) -> Tuple[Optional[int], bool]:
    var = vr.variation
    if var is not None:
        return (var, False)

    rollout = vr.rollout
    if rollout is None:
        return (None, False)
    variations = rollout.variations
    if len(variations) == 0:
        return (None, False)

    bucket = _bucket_context(rollout.seed, context, flag.key, flag.salt, rollout.bucket_by)
    is_experiment = rollout.is_experiment
    sum = 0.0
    for wv in variations:
        sum += wv.weight / 100000.0
        if bucket < sum:
            return (wv.variation, is_experiment and not wv.untracked)

    # The context's bucket value was greater than or equal to the end of the last bucket. This could happen due
    # to a rounding error, or due to the fact that we are scaling to 100000 rather than 99999, or the flag
    # data could contain buckets that don't actually add up to 100000. Rather than returning an error in
    # this case (or changing the scaling, which would potentially change the results for *all* contexts), we
    # will simply put the context in the last bucket.
    last = variations[-1]
    return (last.variation, is_experiment and not last.untracked)


def _bucket_context(seed: Optional[int], context: Context, key: str, salt: str, bucket_by: Optional[str]) -> float:
    """
    Computes a value in [0, 1) from a SHA-1 hash of the context's bucketing attribute and either
    the seed or the flag/segment key and salt. Returns 0.0 if the attribute is missing or is not
    a string or integer.
    """
    context_value = context.get(bucket_by or 'key')
    bucket_by_value = _bucketable_string_value(context_value)
    if bucket_by_value is None:
        return 0.0
    if seed is not None:
        prefix = str(seed)
    else:
        prefix = '%s.%s' % (key, salt)
    hash_key = '%s.%s' % (prefix, bucket_by_value)
    hash_val = int(hashlib.sha1(hash_key.encode('utf-8')).hexdigest()[:15], 16)
    return hash_val / __LONG_SCALE__


def _bucketable_string_value(u_value) -> Optional[str]:
    if isinstance(u_value, bool):
        return None
    if isinstance(u_value, (str, int)):
        return str(u_value)
    return None


def error_reason(error_kind: str) -> dict:
    return {'kind': 'ERROR', 'errorKind': error_kind}
