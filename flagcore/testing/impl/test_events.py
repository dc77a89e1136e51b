import pytest

from flagcore.context import Context
from flagcore.evaluation import EvaluationDetail
from flagcore.impl.events import EventFactory
from flagcore.testing.builders import FlagBuilder, FlagRuleBuilder

user = Context.create('x')
default_factory = EventFactory(False, lambda: 1000)
reasons_factory = EventFactory(True, lambda: 1000)


def make_flag(kind, should_track_events):
    rule_builder = FlagRuleBuilder().rollout({'variations': [{'variation': 0, 'weight': 50000}, {'variation': 1, 'weight': 50000}]})
    if kind == 'RULE_MATCH':
        rule_builder.track_events(should_track_events)

    flag_builder = FlagBuilder('feature').on(True).fallthrough_variation(0).variations(False, True).rules(rule_builder.build())
    if kind == 'FALLTHROUGH':
        flag_builder.track_events_fallthrough(should_track_events)
    return flag_builder.build()


@pytest.mark.parametrize(
    "reason, should_track, expected",
    [
        ({'kind': 'FALLTHROUGH'}, False, False),
        ({'kind': 'FALLTHROUGH'}, True, True),
        ({'kind': 'FALLTHROUGH', 'inExperiment': True}, False, True),
        ({'kind': 'RULE_MATCH', 'ruleIndex': 0}, False, False),
        ({'kind': 'RULE_MATCH', 'ruleIndex': 0}, True, True),
        ({'kind': 'RULE_MATCH', 'ruleIndex': 0, 'inExperiment': True}, False, True),
    ],
)
def test_experiment_forces_tracking_and_reason(reason, should_track, expected):
    flag = make_flag(reason['kind'], should_track)
    event = default_factory.new_eval_event(flag, user, EvaluationDetail('b', 1, reason), 'b')

    assert event.track_events is expected
    assert event.reason == (reason if expected else None)


def test_rule_index_out_of_range_is_not_experiment():
    flag = make_flag('RULE_MATCH', True)
    assert EventFactory.is_experiment(flag, {'kind': 'RULE_MATCH', 'ruleIndex': 5}) is False
    assert EventFactory.is_experiment(flag, None) is False


def test_eval_event_fields():
    flag = FlagBuilder('feature').version(7).on(True).variations('a', 'b').track_events(True).build()
    prereq_of = FlagBuilder('parent').build()
    detail = EvaluationDetail('b', 1, {'kind': 'FALLTHROUGH'})

    event = reasons_factory.new_eval_event(flag, user, detail, 'default', prereq_of)

    assert event.to_debugging_dict() == {
        'timestamp': 1000,
        'context': user.to_dict(),
        'key': 'feature',
        'flag': {'key': 'feature', 'version': 7},
        'variation': 1,
        'value': 'b',
        'reason': {'kind': 'FALLTHROUGH'},
        'default_value': 'default',
        'prereq_of': {'key': 'parent'},
        'track_events': True,
    }


def test_default_event():
    flag = FlagBuilder('feature').build()
    reason = {'kind': 'ERROR', 'errorKind': 'EXCEPTION'}

    event = reasons_factory.new_default_event(flag, user, 'default', reason)
    assert (event.key, event.variation, event.value, event.reason) == ('feature', None, 'default', reason)

    assert default_factory.new_default_event(flag, user, 'default', reason).reason is None


def test_unknown_flag_event():
    reason = {'kind': 'ERROR', 'errorKind': 'FLAG_NOT_FOUND'}

    event = reasons_factory.new_unknown_flag_event('missing', user, 'default', reason)

    assert event.flag is None
    assert event.debug_events_until_date is None
    assert (event.key, event.value, event.default_value, event.reason) == ('missing', 'default', 'default', reason)
    assert event.track_events is False
