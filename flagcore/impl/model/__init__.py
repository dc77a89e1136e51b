from .clause import *
from .entity import *
from .feature_flag import *
from .segment import *
from .variation_or_rollout import *
