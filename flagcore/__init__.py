"""
The flagcore module contains the most common top-level entry points for the library.
"""

from flagcore.impl.util import log
from flagcore.version import VERSION

from .client import *
from .config import HTTPConfig
from .context import *
from .evaluation import EvaluationDetail, FeatureFlagsState
from .value import Value

__version__ = VERSION

__all__ = ['FlagClient', 'EvaluationResult', 'Config', 'HTTPConfig', 'Context', 'ContextBuilder', 'EvaluationDetail', 'FeatureFlagsState', 'Value', 'log']
