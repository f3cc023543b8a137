from enum import Enum


class AlertType(str, Enum):
    INACTIVITY = "inactivity"
    STOPPAGE = "stoppage"


class AlertState(str, Enum):
    CLEAR = "clear"
    CONDITION_MET = "condition_met"
