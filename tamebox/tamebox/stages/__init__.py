from .stage1 import repair_primordials
from .stage2 import tame_primordials
from .stage3 import accept_baseline

__all__ = ["repair_primordials", "tame_primordials", "accept_baseline"]
