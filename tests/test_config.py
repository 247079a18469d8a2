"""
Tests for controller configuration validation and loading
"""

import pytest

from advanced_thermostat.config import ConfigurationError, ControllerConfig


class TestValidation:
    """Test configurations the engine must refuse"""

    @pytest.mark.parametrize("threshold", [0.0, -1.0])
    def test_threshold_must_be_positive(self, threshold):
        with pytest.raises(ConfigurationError):
            ControllerConfig(heating_power=1000.0, budget_threshold=threshold)

    def test_needs_at_least_one_actuator(self):
        """Test a thermostat without heating or cooling is rejected"""
        with pytest.raises(ConfigurationError):
            ControllerConfig(heating_power=0.0, cooling_power=0.0, budget_threshold=1000.0)

    @pytest.mark.parametrize("overrides", [
        {'heating_power': -1.0},
        {'cooling_power': -1.0},
        {'k': -0.1},
        {'dt': 0.0},
        {'minimum_update_interval': 0.0},
    ])
    def test_invalid_values(self, overrides):
        params = dict(heating_power=1000.0, budget_threshold=1000.0)
        params.update(overrides)
        with pytest.raises(ConfigurationError):
            ControllerConfig(**params)

    def test_configuration_error_is_value_error(self):
        assert issubclass(ConfigurationError, ValueError)

    def test_capabilities(self):
        config = ControllerConfig(heating_power=1000.0, budget_threshold=1000.0)
        assert config.can_heat
        assert not config.can_cool

    def test_immutable(self):
        config = ControllerConfig(heating_power=1000.0, budget_threshold=1000.0)
        with pytest.raises(AttributeError):
            config.k = 5.0


class TestFromDict:
    """Test loading from the YAML mapping"""

    def test_energy_budget(self):
        config = ControllerConfig.from_dict({
            'heating_power': 2000,
            'cooling_power': 500,
            'pid': {'c_p': 1000, 'c_i': 0.5, 'c_d': 300000},
            'overshoot_compensation': {'k': 500, 'dt': 1.5},
            'budget_threshold': 75000,
            'minimum_update_interval': 600,
        })

        assert config.heating_power == 2000.0
        assert config.cooling_power == 500.0
        assert config.c_p == 1000.0
        assert config.c_i == 0.5
        assert config.c_d == 300000.0
        assert config.k == 500.0
        assert config.dt == 1.5
        assert config.budget_threshold == 75000.0
        assert config.minimum_update_interval == 600.0

    def test_defaults(self):
        """Test optional sections default to disabled"""
        config = ControllerConfig.from_dict({'heating_power': 1000, 'budget_threshold': 100})

        assert config.c_p == 0.0
        assert config.k == 0.0
        assert config.dt is None
        assert config.minimum_update_interval is None
        assert config.cooling_power == 0.0

    def test_time_budget(self):
        """Test the time variant: unit powers and a threshold in minutes"""
        config = ControllerConfig.from_dict({
            'budget_unit': 'time',
            'heating': True,
            'cooling': True,
            'budget_threshold': 5,
        })

        assert config.heating_power == 1.0
        assert config.cooling_power == 1.0
        assert config.budget_threshold == 300.0

    def test_time_budget_heating_only_by_default(self):
        config = ControllerConfig.from_dict({'budget_unit': 'time', 'budget_threshold': 2})

        assert config.heating_power == 1.0
        assert config.cooling_power == 0.0

    def test_missing_threshold(self):
        with pytest.raises(ConfigurationError, match="budget_threshold"):
            ControllerConfig.from_dict({'heating_power': 1000})

    def test_non_numeric_value(self):
        with pytest.raises(ConfigurationError):
            ControllerConfig.from_dict({'heating_power': 'lots', 'budget_threshold': 100})

    def test_unknown_unit(self):
        with pytest.raises(ConfigurationError, match="budget_unit"):
            ControllerConfig.from_dict({'budget_unit': 'kwh', 'budget_threshold': 100})

    @pytest.mark.parametrize("value", [None, [], "controller"])
    def test_not_a_mapping(self, value):
        with pytest.raises(ConfigurationError):
            ControllerConfig.from_dict(value)
