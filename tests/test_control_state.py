"""
Tests for the control state snapshot format
"""

import pytest

from advanced_thermostat.control_state import (
    ActuatorState,
    ControlState,
    Mode,
    format_timestamp,
    parse_timestamp,
)


class TestEnums:

    @pytest.mark.parametrize("value,expected", [
        ("heat", Mode.HEAT),
        ("AUTO", Mode.AUTO),
        (" cool ", Mode.COOL),
        (Mode.OFF, Mode.OFF),
    ])
    def test_parse_mode(self, value, expected):
        assert Mode.parse(value) == expected

    def test_parse_unknown_mode(self):
        with pytest.raises(ValueError):
            Mode.parse("boost")

    def test_actuator_has_no_auto(self):
        with pytest.raises(ValueError):
            ActuatorState.parse("auto")


class TestSnapshot:

    def test_snapshot_fields(self):
        state = ControlState(mode=Mode.HEAT, actuator_state=ActuatorState.HEAT, target_temperature=21.0,
                             current_temperature=20.5, error=0.5, bias=100.0, budget=2000.0, updated=0.0)
        snapshot = state.to_snapshot()

        assert snapshot == {
            'mode': 'heat',
            'actuatorState': 'heat',
            'targetTemperature': 21.0,
            'currentTemperature': 20.5,
            'updated': '1970-01-01T00:00:00+00:00',
            'error': 0.5,
            'biasW': 100.0,
            'budgetJ': 2000.0,
        }

    def test_default_snapshot(self):
        snapshot = ControlState().to_snapshot()

        assert snapshot['mode'] == 'off'
        assert snapshot['targetTemperature'] == 20.0
        assert snapshot['currentTemperature'] is None
        assert snapshot['updated'] is None
        assert snapshot['error'] is None

    def test_partial_snapshot(self):
        """Test missing fields fall back to defaults one by one"""
        state = ControlState.from_snapshot({'mode': 'cool', 'budgetJ': -50.0})

        assert state.mode == Mode.COOL
        assert state.budget == -50.0
        assert state.actuator_state == ActuatorState.OFF
        assert state.target_temperature == 20.0
        assert state.bias == 0.0
        assert state.updated is None

    def test_corrupt_fields(self):
        """Test invalid values are replaced by defaults without raising"""
        state = ControlState.from_snapshot({
            'mode': 'turbo',
            'actuatorState': 42,
            'targetTemperature': 'warm',
            'currentTemperature': [],
            'updated': 'yesterday',
            'error': True,
            'biasW': {},
            'budgetJ': '12.5',
        })

        assert state.mode == Mode.OFF
        assert state.actuator_state == ActuatorState.OFF
        assert state.target_temperature == 20.0
        assert state.current_temperature is None
        assert state.updated is None
        assert state.error is None
        assert state.bias == 0.0
        assert state.budget == 12.5

    def test_non_finite_numbers(self):
        """Test NaN and infinite accumulators fall back to defaults"""
        state = ControlState.from_snapshot({
            'targetTemperature': float('inf'),
            'currentTemperature': 'NaN',
            'error': float('nan'),
            'biasW': float('-inf'),
            'budgetJ': float('nan'),
        })

        assert state.target_temperature == 20.0
        assert state.current_temperature is None
        assert state.error is None
        assert state.bias == 0.0
        assert state.budget == 0.0

    @pytest.mark.parametrize("snapshot", [None, {}, [], "state"])
    def test_unusable_snapshot(self, snapshot):
        assert ControlState.from_snapshot(snapshot) == ControlState()


class TestTimestamps:

    def test_format_none(self):
        assert format_timestamp(None) is None

    def test_round_trip(self):
        assert parse_timestamp(format_timestamp(1700000000.25)) == 1700000000.25

    def test_naive_timestamp_is_utc(self):
        assert parse_timestamp("1970-01-01T00:01:00") == 60.0

    def test_offset_timestamp(self):
        assert parse_timestamp("1970-01-01T01:00:00+01:00") == 0.0

    def test_numeric_timestamp(self):
        assert parse_timestamp(1234) == 1234.0
