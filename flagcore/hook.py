from abc import ABCMeta, abstractmethod
from dataclasses import dataclass
from typing import Any

from flagcore.context import Context
from flagcore.evaluation import EvaluationDetail


@dataclass(frozen=True)
class EvaluationSeriesContext:
    """
    Read-only information about one evaluation, passed to every stage of a hook.
    """

    key: str  #: The flag key being evaluated.
    context: Context  #: The context the flag is evaluated for.
    default_value: Any  #: The default value passed to the variation method.
    method: str  #: Name of the client method that started the evaluation, e.g. "variation".


@dataclass(frozen=True)
class Metadata:
    name: str  #: A name identifying the hook in log messages.


class Hook(metaclass=ABCMeta):
    """
    Base class for evaluation hooks.

    ``before_evaluation`` runs before the flag is evaluated, in the order hooks were registered;
    ``after_evaluation`` runs afterwards in reverse order. Each stage receives the dict returned
    by the previous stage of the same hook. An exception raised by a stage is logged and the
    stage's data is replaced by an empty dict; it never changes the evaluation result.
    """

    @property
    @abstractmethod
    def metadata(self) -> Metadata:
        return Metadata(name='UNDEFINED')

    def before_evaluation(self, series_context: EvaluationSeriesContext, data: dict) -> dict:
        """
        :param series_context: information about the evaluation being performed
        :param data: the data passed from the previous stage; do not modify it
        :return: data for the next stage
        """
        return data

    def after_evaluation(self, series_context: EvaluationSeriesContext, data: dict, detail: EvaluationDetail) -> dict:
        """
        :param series_context: information about the evaluation being performed
        :param data: the data returned by ``before_evaluation``
        :param detail: the evaluation result; do not modify it
        :return: data for the next stage
        """
        return data


@dataclass
class _EvaluationWithHookResult:
    evaluation_detail: EvaluationDetail
    results: Any = None
