"""
Scenario State - Selected shock parameters and the transitions a user drives

ScenarioState is an immutable value: every transition returns a new state.
ScenarioSession holds the current value for a viewing session and notifies
subscribers after each change so the host can re-run the engine.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, List, Optional

from ..config import DEFAULT_CONFIG
from ..errors import InvalidScenarioError
from .models import ScenarioRange, ShockParameters, validate_shock_pct

logger = logging.getLogger(__name__)


class ScenarioMode(str, Enum):
    INACTIVE = "Inactive"
    ACTIVE_POINT = "Active-Point"
    ACTIVE_RANGE = "Active-Range"


@dataclass(frozen=True)
class ScenarioState:
    """Shock selection for a viewing session"""

    is_active: bool = False
    shock_asset: str = DEFAULT_CONFIG.simulation.default_shock_asset
    shock_pct: float = 0.0
    range_selection: Optional[ScenarioRange] = None

    def __post_init__(self):
        validate_shock_pct(self.shock_pct)
        if self.range_selection is not None and not isinstance(self.range_selection, ScenarioRange):
            raise InvalidScenarioError(f"Range selection must be a ScenarioRange, got {self.range_selection!r}")

    @property
    def mode(self) -> ScenarioMode:
        if not self.is_active:
            return ScenarioMode.INACTIVE
        if self.range_selection is None:
            return ScenarioMode.ACTIVE_POINT
        return ScenarioMode.ACTIVE_RANGE

    def set_shock_asset(self, asset: str) -> "ScenarioState":
        if not isinstance(asset, str) or not asset:
            raise InvalidScenarioError(f"Shock asset must be a non-empty symbol, got {asset!r}")
        return replace(self, shock_asset=asset)

    def set_shock_pct(self, pct: float) -> "ScenarioState":
        """Moving the shock back to zero deactivates the scenario"""
        pct = validate_shock_pct(pct)
        return replace(self, shock_pct=pct, is_active=pct != 0)

    def activate_scenario(self, pct: float) -> "ScenarioState":
        """Select a single shock point, dropping any range"""
        return replace(self, is_active=True, shock_pct=validate_shock_pct(pct), range_selection=None)

    def set_range(self, range_selection: Optional[ScenarioRange]) -> "ScenarioState":
        return replace(self, range_selection=range_selection)

    def reset_scenario(self) -> "ScenarioState":
        return replace(self, is_active=False, shock_pct=0.0, range_selection=None)

    def toggle_scenario_mode(self) -> "ScenarioState":
        """
        Flip scenario mode

        Deactivating is a full reset; activating keeps whatever shock and
        range were held.
        """
        if self.is_active:
            return self.reset_scenario()
        return replace(self, is_active=True)

    def to_shock_parameters(self) -> ShockParameters:
        return ShockParameters(
            shock_asset=self.shock_asset,
            shock_pct=self.shock_pct,
            range_selection=self.range_selection,
            is_active=self.is_active,
        )


Listener = Callable[[ScenarioState], None]


class ScenarioSession:
    """Holds the current ScenarioState and notifies listeners on change"""

    def __init__(self, initial: Optional[ScenarioState] = None):
        self._state = initial if initial is not None else ScenarioState()
        self._listeners: List[Listener] = []

    @property
    def state(self) -> ScenarioState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a callback invoked with the new state after each change

        Args:
            listener: Callable taking the new ScenarioState

        Returns:
            Function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _apply(self, new_state: ScenarioState) -> ScenarioState:
        """
        Commit a new state and notify every listener

        The state is committed before listeners run. A failing listener does
        not stop the others; the first error is re-raised once all of them
        have been called.
        """
        if new_state == self._state:
            return self._state

        logger.debug(f"Scenario {self._state.mode.value} -> {new_state.mode.value} "
                     f"({new_state.shock_asset} {new_state.shock_pct:+.1f}%)")
        self._state = new_state

        first_error = None
        for listener in list(self._listeners):
            try:
                listener(new_state)
            except Exception as e:
                logger.error(f"Scenario listener {listener!r} failed: {e}")
                if first_error is None:
                    first_error = e

        if first_error is not None:
            raise first_error
        return new_state

    def set_shock_asset(self, asset: str) -> ScenarioState:
        return self._apply(self._state.set_shock_asset(asset))

    def set_shock_pct(self, pct: float) -> ScenarioState:
        return self._apply(self._state.set_shock_pct(pct))

    def activate_scenario(self, pct: float) -> ScenarioState:
        return self._apply(self._state.activate_scenario(pct))

    def set_range(self, range_selection: Optional[ScenarioRange]) -> ScenarioState:
        return self._apply(self._state.set_range(range_selection))

    def reset_scenario(self) -> ScenarioState:
        return self._apply(self._state.reset_scenario())

    def toggle_scenario_mode(self) -> ScenarioState:
        return self._apply(self._state.toggle_scenario_mode())
