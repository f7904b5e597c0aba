"""
Tests for the Scenario State machine and session
"""

import pytest

from margin_risk.errors import InvalidScenarioError
from margin_risk.stress.models import ScenarioRange, ShockParameters
from margin_risk.stress.scenario import ScenarioMode, ScenarioSession, ScenarioState


@pytest.fixture
def state():
    return ScenarioState()


@pytest.fixture
def selected_range():
    return ScenarioRange(min=-30, max=-10)


class TestInitialState:

    def test_defaults(self, state):
        assert state.is_active is False
        assert state.shock_asset == "SUI"
        assert state.shock_pct == 0
        assert state.range_selection is None
        assert state.mode == ScenarioMode.INACTIVE


class TestTransitions:
    """Each transition returns a new state"""

    def test_set_shock_pct_activates(self, state):
        new_state = state.set_shock_pct(-12)

        assert new_state.is_active is True
        assert new_state.shock_pct == -12
        assert new_state.mode == ScenarioMode.ACTIVE_POINT

    def test_set_shock_pct_zero_deactivates(self, state):
        new_state = state.set_shock_pct(-12).set_shock_pct(0)

        assert new_state.is_active is False
        assert new_state.shock_pct == 0

    def test_set_shock_pct_keeps_range(self, state, selected_range):
        new_state = state.set_range(selected_range).set_shock_pct(-12)

        assert new_state.range_selection == selected_range
        assert new_state.mode == ScenarioMode.ACTIVE_RANGE

    def test_activate_scenario_clears_range(self, state, selected_range):
        new_state = state.set_shock_pct(-5).set_range(selected_range).activate_scenario(-20)

        assert new_state.is_active is True
        assert new_state.shock_pct == -20
        assert new_state.range_selection is None
        assert new_state.mode == ScenarioMode.ACTIVE_POINT

    def test_activate_scenario_at_zero_stays_active(self, state):
        assert state.activate_scenario(0).is_active is True

    def test_set_range_does_not_change_activity(self, state, selected_range):
        inactive = state.set_range(selected_range)
        assert inactive.is_active is False
        assert inactive.range_selection == selected_range
        assert inactive.mode == ScenarioMode.INACTIVE

        active = state.activate_scenario(-20).set_range(selected_range)
        assert active.is_active is True
        assert active.mode == ScenarioMode.ACTIVE_RANGE

    def test_clear_range(self, state, selected_range):
        new_state = state.activate_scenario(-20).set_range(selected_range).set_range(None)

        assert new_state.range_selection is None
        assert new_state.mode == ScenarioMode.ACTIVE_POINT

    def test_reset_scenario(self, state, selected_range):
        new_state = state.activate_scenario(-20).set_range(selected_range).reset_scenario()

        assert new_state.is_active is False
        assert new_state.shock_pct == 0
        assert new_state.range_selection is None

    def test_reset_keeps_shock_asset(self, state):
        assert state.set_shock_asset("DEEP").activate_scenario(-20).reset_scenario().shock_asset == "DEEP"

    def test_set_shock_asset(self, state):
        new_state = state.activate_scenario(-20).set_shock_asset("ALL")

        assert new_state.shock_asset == "ALL"
        assert new_state.shock_pct == -20
        assert new_state.is_active is True

    def test_transitions_do_not_mutate(self, state):
        state.activate_scenario(-20)

        assert state == ScenarioState()


class TestToggle:
    """toggle_scenario_mode"""

    def test_deactivating_is_full_reset(self, state, selected_range):
        active = state.activate_scenario(-20).set_range(selected_range)

        toggled = active.toggle_scenario_mode()

        assert toggled.is_active is False
        assert toggled.shock_pct == 0
        assert toggled.range_selection is None

    def test_activating_keeps_held_values(self, selected_range):
        held = ScenarioState(shock_pct=-14, range_selection=selected_range)

        toggled = held.toggle_scenario_mode()

        assert toggled.is_active is True
        assert toggled.shock_pct == -14
        assert toggled.range_selection == selected_range
        assert toggled.mode == ScenarioMode.ACTIVE_RANGE

    def test_activating_from_initial(self, state):
        toggled = state.toggle_scenario_mode()

        assert toggled.is_active is True
        assert toggled.shock_pct == 0

    def test_double_toggle_from_active_resets(self, state):
        assert state.activate_scenario(-20).toggle_scenario_mode().toggle_scenario_mode().shock_pct == 0


class TestValidation:

    def test_invalid_pct(self, state):
        with pytest.raises(InvalidScenarioError):
            state.set_shock_pct(float("nan"))

        with pytest.raises(InvalidScenarioError):
            state.activate_scenario(-101)

    def test_invalid_asset(self, state):
        with pytest.raises(InvalidScenarioError):
            state.set_shock_asset("")

    def test_range_must_be_scenario_range(self, state):
        with pytest.raises(InvalidScenarioError):
            state.set_range({"min": -30, "max": -10})


class TestShockParameters:

    def test_to_shock_parameters(self, state, selected_range):
        params = state.activate_scenario(-20).set_range(selected_range).to_shock_parameters()

        assert params == ShockParameters(
            shock_asset="SUI", shock_pct=-20, range_selection=selected_range, is_active=True
        )


class TestScenarioSession:
    """Session holder notifies subscribers"""

    def test_initial_state(self):
        assert ScenarioSession().state == ScenarioState()

    def test_custom_initial_state(self):
        initial = ScenarioState(shock_asset="DEEP")

        assert ScenarioSession(initial).state.shock_asset == "DEEP"

    def test_listener_receives_new_state(self):
        session = ScenarioSession()
        received = []
        session.subscribe(received.append)

        session.activate_scenario(-20)
        session.set_range(ScenarioRange(-30, -10))
        session.reset_scenario()

        assert [s.mode for s in received] == [
            ScenarioMode.ACTIVE_POINT,
            ScenarioMode.ACTIVE_RANGE,
            ScenarioMode.INACTIVE,
        ]
        assert received[-1] is session.state

    def test_no_notification_without_change(self):
        session = ScenarioSession()
        received = []
        session.subscribe(received.append)

        session.reset_scenario()
        session.set_shock_pct(0)

        assert received == []

    def test_unsubscribe(self):
        session = ScenarioSession()
        received = []
        unsubscribe = session.subscribe(received.append)

        session.set_shock_pct(-10)
        unsubscribe()
        session.set_shock_pct(-20)

        assert len(received) == 1
        assert session.state.shock_pct == -20

    def test_toggle_and_asset_through_session(self):
        session = ScenarioSession()

        session.set_shock_asset("ALL")
        session.toggle_scenario_mode()
        assert session.state.is_active is True
        assert session.state.shock_asset == "ALL"

        session.toggle_scenario_mode()
        assert session.state.is_active is False

    def test_listener_errors_propagate(self):
        session = ScenarioSession()

        def failing(state):
            raise RuntimeError("listener failed")

        session.subscribe(failing)

        with pytest.raises(RuntimeError):
            session.set_shock_pct(-10)

    def test_failing_listener_does_not_block_others(self):
        session = ScenarioSession()
        received = []

        def failing(state):
            raise RuntimeError("listener failed")

        session.subscribe(failing)
        session.subscribe(received.append)

        with pytest.raises(RuntimeError, match="listener failed"):
            session.activate_scenario(-20)

        # Committed before notification, and the later listener still ran
        assert session.state.shock_pct == -20
        assert received == [session.state]

    def test_first_listener_error_is_raised(self):
        session = ScenarioSession()

        def first(state):
            raise RuntimeError("first")

        def second(state):
            raise ValueError("second")

        session.subscribe(first)
        session.subscribe(second)

        with pytest.raises(RuntimeError, match="first"):
            session.set_shock_pct(-10)

    def test_invalid_transition_keeps_state(self):
        session = ScenarioSession()
        session.activate_scenario(-20)

        with pytest.raises(InvalidScenarioError):
            session.set_shock_pct(float("inf"))

        assert session.state.shock_pct == -20
