from enum import Enum


class Stage(Enum):
    REPAIR = "repair"
    TAMING = "taming"
    ACCEPTANCE = "acceptance"


class BaselineState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    ABORTED = "aborted"
