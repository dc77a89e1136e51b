"""
This submodule contains the client class that provides most of the library's functionality.
"""

import threading
import traceback
from typing import Any, Callable, List, Optional, Tuple

from flagcore.config import Config
from flagcore.context import Context
from flagcore.evaluation import EvaluationDetail, FeatureFlagsState
from flagcore.hook import (
    EvaluationSeriesContext,
    Hook,
    _EvaluationWithHookResult
)
from flagcore.impl.datasystem.engine import DataSyncEngine
from flagcore.impl.evaluator import Evaluator, error_reason
from flagcore.impl.events import EventFactory, EventInputEvaluation
from flagcore.impl.model.feature_flag import FeatureFlag
from flagcore.impl.rwlock import ReadWriteLock
from flagcore.impl.util import log
from flagcore.interfaces import (
    DataSourceStatusProvider,
    DataStoreStatusProvider,
    FlagTracker,
    NullEventProcessor
)
from flagcore.value import Value, to_double
from flagcore.versioned_data_kind import FEATURES


class EvaluationResult:
    """
    The outcome of :func:`FlagClient.evaluate()`: the evaluation detail plus every event record the
    evaluation produced, including one for each prerequisite flag that was evaluated.
    """

    __slots__ = ['detail', 'events']

    def __init__(self, detail: EvaluationDetail, events: List[EventInputEvaluation]):
        self.detail = detail
        self.events = events

    def __repr__(self) -> str:
        return "EvaluationResult(detail=%s, events=%s)" % (self.detail, self.events)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_int(value: Any) -> Optional[int]:
    if _is_number(value) and (isinstance(value, int) or to_double(value).is_integer()):
        return int(value)
    return None


def _as_float(value: Any) -> Optional[float]:
    return to_double(value) if _is_number(value) else None


class FlagClient:
    """The feature flag client object.

    Applications should create one client at startup time and continue to use it throughout the
    lifetime of the application, rather than creating instances on the fly.

    Client instances are thread-safe.
    """

    def __init__(self, config: Config):
        """Constructs a new FlagClient and starts synchronizing data in the background.

        The constructor does not block; call :func:`initialize()` to wait for the first complete
        data set.

        :param config: the client configuration
        """
        self._config = config
        self._config._validate()

        self.__hooks_lock = ReadWriteLock()
        self.__hooks = list(config.hooks)  # type: List[Hook]

        self._event_processor = config.event_processor or NullEventProcessor()
        self._event_factory_default = EventFactory(False)
        self._event_factory_with_reasons = EventFactory(True)

        self._close_lock = threading.Lock()
        self._closed = False

        if self._config.offline:
            log.info("Started flag client in offline mode")

        if self._config.use_ldd:
            log.info("Started flag client in daemon mode")

        self._engine = DataSyncEngine(config)
        self._engine.set_flag_value_eval_fn(lambda key, context: self.variation(key, context, None))

        self._ready = threading.Event()
        self._engine.start(self._ready)

    def initialize(self, timeout: float) -> bool:
        """Blocks until the client has received its first complete data set, or until ``timeout``
        seconds have passed.

        A timeout does not stop the client; it keeps trying to connect in the background.

        :param timeout: the maximum number of seconds to wait
        :return: the value of :func:`is_initialized()` when the wait ends
        """
        if timeout > 60:
            log.warning(f"Client was configured to block for up to {timeout} seconds when initializing. We recommend blocking no longer than 60.")

        self._ready.wait(timeout)
        if self.is_initialized():
            log.info("Started flag client: OK")
            return True

        log.warning("Initialization timeout exceeded for flag client or an error occurred. Feature flags may not yet be available.")
        return False

    def get_sdk_key(self) -> Optional[str]:
        """Returns the configured SDK key."""
        return self._config.sdk_key

    def close(self):
        """Releases all threads and network connections used by the client.

        Calling this more than once has no further effect. Do not attempt to use the client after
        calling this method.
        """
        with self._close_lock:
            if self._closed:
                return
            self._closed = True

        log.info("Closing flag client..")
        self._event_processor.stop()
        self._engine.stop()

    # These magic methods allow a client object to be automatically cleaned up by the "with" scope operator
    def __enter__(self):
        return self

    def __exit__(self, type, value, traceback):
        self.close()

    def _send_event(self, event):
        self._event_processor.send_event(event)

    def is_offline(self) -> bool:
        """Returns true if the client is in offline mode."""
        return self._config.offline

    def is_initialized(self) -> bool:
        """Returns true if the client has received a complete data set.

        If this returns false, the client might still be starting up, it might be reconnecting
        after an unsuccessful attempt, or it might have received an unrecoverable error (such as an
        invalid SDK key) and given up.
        """
        return self.is_offline() or self._config.use_ldd or self._engine.initialized

    def flush(self):
        """Asks the configured event processor to deliver any pending events."""
        if self._config.offline:
            return
        return self._event_processor.flush()

    def variation(self, key: str, context: Context, default: Any) -> Any:
        """Calculates the value of a feature flag for a given context.

        :param key: the unique key for the feature flag
        :param context: the evaluation context
        :param default: the value to use if the flag cannot be evaluated
        :return: the variation for the given context, or the ``default`` value if the flag cannot be evaluated
        """

        def evaluate():
            detail, _, _ = self._evaluate_internal(key, context, default, self._event_factory_default)
            return _EvaluationWithHookResult(evaluation_detail=detail)

        return self.__evaluate_with_hooks(key=key, context=context, default_value=default, method="variation", block=evaluate).evaluation_detail.value

    def variation_detail(self, key: str, context: Context, default: Any) -> EvaluationDetail:
        """Calculates the value of a feature flag for a given context, and returns an object that
        describes the way the value was determined.

        :param key: the unique key for the feature flag
        :param context: the evaluation context
        :param default: the value to use if the flag cannot be evaluated
        :return: an :class:`flagcore.evaluation.EvaluationDetail` object that includes the feature
          flag value and evaluation reason
        """

        def evaluate():
            detail, _, _ = self._evaluate_internal(key, context, default, self._event_factory_with_reasons)
            return _EvaluationWithHookResult(evaluation_detail=detail)

        return self.__evaluate_with_hooks(key=key, context=context, default_value=default, method="variation_detail", block=evaluate).evaluation_detail

    def evaluate(self, key: str, context: Context, default: Any) -> EvaluationResult:
        """Evaluates a flag like :func:`variation_detail()` and also returns the event records the
        evaluation produced, in the order they were produced. The records are still passed to the
        configured event processor.
        """

        def evaluate():
            detail, _, events = self._evaluate_internal(key, context, default, self._event_factory_with_reasons)
            return _EvaluationWithHookResult(evaluation_detail=detail, results=events)

        result = self.__evaluate_with_hooks(key=key, context=context, default_value=default, method="evaluate", block=evaluate)
        return EvaluationResult(result.evaluation_detail, result.results)

    def bool_variation(self, key: str, context: Context, default: bool) -> bool:
        """Like :func:`variation()`, but returns ``default`` unless the flag value is a boolean."""
        return self.__typed_detail(key, context, default, "bool_variation", self._event_factory_default, lambda v: v if isinstance(v, bool) else None).value

    def bool_variation_detail(self, key: str, context: Context, default: bool) -> EvaluationDetail:
        return self.__typed_detail(key, context, default, "bool_variation_detail", self._event_factory_with_reasons, lambda v: v if isinstance(v, bool) else None)

    def int_variation(self, key: str, context: Context, default: int) -> int:
        """Like :func:`variation()`, but returns ``default`` unless the flag value is a whole number."""
        return self.__typed_detail(key, context, default, "int_variation", self._event_factory_default, _as_int).value

    def int_variation_detail(self, key: str, context: Context, default: int) -> EvaluationDetail:
        return self.__typed_detail(key, context, default, "int_variation_detail", self._event_factory_with_reasons, _as_int)

    def float_variation(self, key: str, context: Context, default: float) -> float:
        """Like :func:`variation()`, but returns ``default`` unless the flag value is a number."""
        return self.__typed_detail(key, context, default, "float_variation", self._event_factory_default, _as_float).value

    def float_variation_detail(self, key: str, context: Context, default: float) -> EvaluationDetail:
        return self.__typed_detail(key, context, default, "float_variation_detail", self._event_factory_with_reasons, _as_float)

    def string_variation(self, key: str, context: Context, default: str) -> str:
        """Like :func:`variation()`, but returns ``default`` unless the flag value is a string."""
        return self.__typed_detail(key, context, default, "string_variation", self._event_factory_default, lambda v: v if isinstance(v, str) else None).value

    def string_variation_detail(self, key: str, context: Context, default: str) -> EvaluationDetail:
        return self.__typed_detail(key, context, default, "string_variation_detail", self._event_factory_with_reasons, lambda v: v if isinstance(v, str) else None)

    def json_variation(self, key: str, context: Context, default: Any) -> Value:
        """Returns the flag value, of any JSON type, as a :class:`flagcore.value.Value`."""
        return self.json_variation_detail(key, context, default).value

    def json_variation_detail(self, key: str, context: Context, default: Any) -> EvaluationDetail:
        def evaluate():
            detail, _, _ = self._evaluate_internal(key, context, default, self._event_factory_with_reasons)
            return _EvaluationWithHookResult(evaluation_detail=EvaluationDetail(Value.of(detail.value), detail.variation_index, detail.reason))

        return self.__evaluate_with_hooks(key=key, context=context, default_value=default, method="json_variation_detail", block=evaluate).evaluation_detail

    def __typed_detail(self, key: str, context: Context, default: Any, method: str, event_factory: EventFactory, convert: Callable[[Any], Any]) -> EvaluationDetail:
        def evaluate():
            detail, _, _ = self._evaluate_internal(key, context, default, event_factory)
            converted = convert(detail.value)
            if converted is None:
                if detail.variation_index is not None:
                    log.warning("Flag \"%s\" has a value of the wrong type for %s; returning default value" % (key, method))
                    detail = EvaluationDetail(default, None, error_reason('WRONG_TYPE'))
                else:
                    detail = EvaluationDetail(default, detail.variation_index, detail.reason)
            else:
                detail = EvaluationDetail(converted, detail.variation_index, detail.reason)
            return _EvaluationWithHookResult(evaluation_detail=detail)

        return self.__evaluate_with_hooks(key=key, context=context, default_value=default, method=method, block=evaluate).evaluation_detail

    def _evaluate_internal(self, key: str, context: Context, default: Any, event_factory: EventFactory) -> Tuple[EvaluationDetail, Optional[FeatureFlag], List[EventInputEvaluation]]:
        events = []  # type: List[EventInputEvaluation]

        def send(event):
            events.append(event)
            self._send_event(event)

        if self._config.offline:
            return EvaluationDetail(default, None, error_reason('CLIENT_NOT_READY')), None, events

        snapshot = self._engine.store.snapshot()

        if not self.is_initialized():
            if snapshot.initialized:
                log.warning("Feature flag evaluation attempted before client has initialized - using last known values from the store for feature key: " + key)
            else:
                log.warning("Feature flag evaluation attempted before client has initialized! Store unavailable - returning default: " + str(default) + " for feature key: " + key)
                reason = error_reason('CLIENT_NOT_READY')
                send(event_factory.new_unknown_flag_event(key, context, default, reason))
                return EvaluationDetail(default, None, reason), None, events

        context_valid = context is not None and context.valid

        try:
            flag = snapshot.get_flag(key)
        except Exception as e:
            log.error("Unexpected error while retrieving feature flag \"%s\": %s" % (key, repr(e)))
            log.debug(traceback.format_exc())
            reason = error_reason('EXCEPTION')
            if context_valid:
                send(event_factory.new_unknown_flag_event(key, context, default, reason))
            return EvaluationDetail(default, None, reason), None, events

        if not flag:
            reason = error_reason('FLAG_NOT_FOUND')
            if context_valid:
                send(event_factory.new_unknown_flag_event(key, context, default, reason))
            return EvaluationDetail(default, None, reason), None, events

        if not context_valid:
            log.warning("Context was invalid for flag evaluation (%s); returning default value" % (context.error if context is not None else "no context"))
            return EvaluationDetail(default, None, error_reason('USER_NOT_SPECIFIED')), None, events

        try:
            evaluator = Evaluator(snapshot.get_flag, snapshot.get_segment)
            result = evaluator.evaluate(flag, context, event_factory)
            for event in result.events or []:
                send(event)
            detail = result.detail
            if detail.is_default_value():
                detail = EvaluationDetail(default, None, detail.reason)
            send(event_factory.new_eval_event(flag, context, detail, default))
            return detail, flag, events
        except Exception as e:
            log.error("Unexpected error while evaluating feature flag \"%s\": %s" % (key, repr(e)))
            log.debug(traceback.format_exc())
            reason = error_reason('EXCEPTION')
            send(event_factory.new_default_event(flag, context, default, reason))
            return EvaluationDetail(default, None, reason), flag, events

    def all_flags_state(self, context: Context, client_side_only: bool = False, with_reasons: bool = False, details_only_for_tracked_flags: bool = False) -> FeatureFlagsState:
        """Returns an object that encapsulates the state of all feature flags for a given context,
        including the flag values and also metadata that can be used on the front end.

        This method does not produce any events.

        :param context: the context requesting the feature flags
        :param client_side_only: set to True to limit it to only flags that are marked for use
          with client-side code
        :param with_reasons: set to True to include evaluation reasons in the state
        :param details_only_for_tracked_flags: set to True to omit metadata that is normally only
          used for event generation, such as flag versions and evaluation reasons, unless the flag
          has event tracking or debugging turned on
        :return: a FeatureFlagsState object (will never be None; its ``valid`` property will be False
          if the client is offline, has not been initialized, or the context is invalid)
        """
        if self._config.offline:
            log.warning("all_flags_state() called, but client is in offline mode. Returning empty state")
            return FeatureFlagsState(False)

        snapshot = self._engine.store.snapshot()

        if not self.is_initialized():
            if snapshot.initialized:
                log.warning("all_flags_state() called before client has finished initializing! Using last known values from the store")
            else:
                log.warning("all_flags_state() called before client has finished initializing! Store unavailable - returning empty state")
                return FeatureFlagsState(False)

        if context is None or not context.valid:
            log.warning("Context was invalid for all_flags_state (%s); returning default value" % (context.error if context is not None else "no context"))
            return FeatureFlagsState(False)

        try:
            flags_map = snapshot.all(FEATURES)
            if flags_map is None:
                raise ValueError("feature store error")
        except Exception as e:
            log.error("Unable to read flags for all_flag_state: %s" % repr(e))
            return FeatureFlagsState(False)

        state = FeatureFlagsState(True)
        evaluator = Evaluator(snapshot.get_flag, snapshot.get_segment)
        for key, flag in flags_map.items():
            if client_side_only and not flag.client_side:
                continue
            try:
                detail = evaluator.evaluate(flag, context, self._event_factory_default).detail
            except Exception as e:
                log.error("Error evaluating flag \"%s\" in all_flags_state: %s" % (key, repr(e)))
                log.debug(traceback.format_exc())
                detail = EvaluationDetail(None, None, error_reason('EXCEPTION'))

            requires_experiment_data = EventFactory.is_experiment(flag, detail.reason)
            flag_state = {
                'key': flag.key,
                'value': detail.value,
                'variation': detail.variation_index,
                'reason': detail.reason,
                'version': flag.version,
                'trackEvents': flag.track_events or requires_experiment_data,
                'trackReason': requires_experiment_data,
                'debugEventsUntilDate': flag.debug_events_until_date,
            }

            state.add_flag(flag_state, with_reasons, details_only_for_tracked_flags)

        return state

    def add_hook(self, hook: Hook):
        """
        Adds a hook to the client. To register a hook before the client starts, use the ``hooks``
        property of :class:`flagcore.config.Config`.

        :param hook: the hook; anything that is not a :class:`flagcore.hook.Hook` is ignored
        """
        if not isinstance(hook, Hook):
            return

        with self.__hooks_lock.write():
            self.__hooks.append(hook)

    def __evaluate_with_hooks(self, key: str, context: Context, default_value: Any, method: str, block: Callable[[], _EvaluationWithHookResult]) -> _EvaluationWithHookResult:
        with self.__hooks_lock.read():
            hooks = self.__hooks.copy()  # type: List[Hook]

        if len(hooks) == 0:
            return block()

        series_context = EvaluationSeriesContext(key=key, context=context, default_value=default_value, method=method)
        hook_data = self.__execute_before_evaluation(hooks, series_context)
        evaluation_result = block()
        self.__execute_after_evaluation(hooks, series_context, hook_data, evaluation_result.evaluation_detail)

        return evaluation_result

    def __execute_before_evaluation(self, hooks: List[Hook], series_context: EvaluationSeriesContext) -> List[dict]:
        return [self.__try_execute_stage("beforeEvaluation", hook, lambda: hook.before_evaluation(series_context, {})) for hook in hooks]

    def __execute_after_evaluation(self, hooks: List[Hook], series_context: EvaluationSeriesContext, hook_data: List[dict], evaluation_detail: EvaluationDetail) -> List[dict]:
        return [
            self.__try_execute_stage("afterEvaluation", hook, lambda: hook.after_evaluation(series_context, data, evaluation_detail))
            for (hook, data) in reversed(list(zip(hooks, hook_data)))
        ]

    def __try_execute_stage(self, method: str, hook: Hook, block: Callable[[], dict]) -> dict:
        try:
            return block()
        except Exception as e:
            try:
                hook_name = hook.metadata.name
            except Exception:
                hook_name = "unknown"
            log.error(f"An error occurred in {method} of the hook {hook_name}: {e}")
            return {}

    @property
    def data_source_status_provider(self) -> DataSourceStatusProvider:
        """
        Returns an interface for tracking the status of the data source.

        The data source is the mechanism used to get feature flag configurations, such as a
        streaming connection (the default) or poll requests.

        :return: The data source status provider
        """
        return self._engine.data_source_status_provider

    @property
    def data_store_status_provider(self) -> DataStoreStatusProvider:
        """
        Returns an interface for tracking the status of a persistent data store.

        These are only relevant for a persistent data store; with only the in-memory store the
        status is always available.

        :return: The data store status provider
        """
        return self._engine.data_store_status_provider

    @property
    def flag_tracker(self) -> FlagTracker:
        """
        Returns an interface for tracking changes in feature flag configurations.
        """
        return self._engine.flag_tracker


__all__ = ['FlagClient', 'EvaluationResult', 'Config']
