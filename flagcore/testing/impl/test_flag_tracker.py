from flagcore.impl.flag_tracker import FlagTrackerImpl
from flagcore.impl.listeners import Listeners
from flagcore.interfaces import FlagChange
from flagcore.testing.test_util import SpyListener
from flagcore.value import Value


def test_can_add_and_remove_listeners():
    spy = SpyListener()
    listeners = Listeners()

    tracker = FlagTrackerImpl(listeners, lambda key, context: None)
    tracker.add_listener(spy)

    listeners.notify(FlagChange('flag-1'))
    listeners.notify(FlagChange('flag-2'))

    tracker.remove_listener(spy)

    listeners.notify(FlagChange('flag-3'))

    assert [s.key for s in spy.statuses] == ['flag-1', 'flag-2']


def test_flag_value_change_listener_notified_when_value_changes():
    responses = ['initial', 'second', 'second', 'final']

    def eval_fn(key, context):
        return responses.pop(0)

    listeners = Listeners()
    tracker = FlagTrackerImpl(listeners, eval_fn)

    spy = SpyListener()
    tracker.add_flag_value_change_listener('flag-key', None, spy)
    assert len(spy.statuses) == 0

    listeners.notify(FlagChange('flag-key'))
    assert len(spy.statuses) == 1

    # 'second' -> 'second' is not a change
    listeners.notify(FlagChange('flag-key'))
    assert len(spy.statuses) == 1

    listeners.notify(FlagChange('flag-key'))
    assert len(spy.statuses) == 2

    assert (spy.statuses[0].key, spy.statuses[0].old_value, spy.statuses[0].new_value) == ('flag-key', 'initial', 'second')
    assert (spy.statuses[1].key, spy.statuses[1].old_value, spy.statuses[1].new_value) == ('flag-key', 'second', 'final')


def test_flag_value_change_listener_ignores_other_flags():
    calls = []

    def eval_fn(key, context):
        calls.append(key)
        return len(calls)

    listeners = Listeners()
    tracker = FlagTrackerImpl(listeners, eval_fn)
    spy = SpyListener()
    tracker.add_flag_value_change_listener('flag-key', None, spy)

    listeners.notify(FlagChange('other-key'))

    assert calls == ['flag-key']
    assert spy.statuses == []


def test_flag_value_change_compares_by_json_value():
    responses = [1, 1.0, Value.of([1, 2]), [1, 2]]

    listeners = Listeners()
    tracker = FlagTrackerImpl(listeners, lambda key, context: responses.pop(0))
    spy = SpyListener()
    tracker.add_flag_value_change_listener('flag-key', None, spy)

    listeners.notify(FlagChange('flag-key'))
    assert spy.statuses == []

    listeners.notify(FlagChange('flag-key'))
    listeners.notify(FlagChange('flag-key'))
    assert len(spy.statuses) == 1


def test_flag_value_change_listener_returns_listener_we_can_unregister():
    responses = ['first', 'second', 'third']

    def eval_fn(key, context):
        return responses.pop(0)

    listeners = Listeners()
    tracker = FlagTrackerImpl(listeners, eval_fn)

    spy = SpyListener()
    created_listener = tracker.add_flag_value_change_listener('flag-key', None, spy)

    listeners.notify(FlagChange('flag-key'))
    assert len(spy.statuses) == 1

    tracker.remove_listener(created_listener)
    listeners.notify(FlagChange('flag-key'))
    assert len(spy.statuses) == 1
