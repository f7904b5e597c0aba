"""Exceptions raised by the simulation engine"""


class MarginRiskError(ValueError):
    """Base class for rejected engine input"""


class InvalidPositionError(MarginRiskError):
    """Position snapshot violates a precondition (bad threshold, NaN, negative leg)"""

    def __init__(self, position_id: str, field: str, value, reason: str):
        self.position_id = position_id
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid position {position_id!r}: {field}={value!r} ({reason})")


class InvalidScenarioError(MarginRiskError):
    """Shock parameters or range selection cannot be simulated"""


class ConfigError(MarginRiskError):
    """Engine configuration file is malformed"""
