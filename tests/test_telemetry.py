"""
Tests for telemetry sinks
"""

import math
from unittest.mock import MagicMock, patch

import pandas as pd
from influxdb_client.rest import ApiException

from advanced_thermostat.control_state import ActuatorState, Mode
from advanced_thermostat.decision_record import DecisionRecord
from advanced_thermostat.telemetry import CsvTelemetry, InfluxTelemetry, build_telemetry


def make_record(**overrides):
    params = dict(
        timestamp=1700000000.0,
        trigger="timer",
        mode=Mode.HEAT,
        old_state=ActuatorState.OFF,
        new_state=ActuatorState.HEAT,
        target_temperature=22.0,
        current_temperature=20.0,
        error=2.0,
        elapsed=37.5,
        p_power=2000.0,
        i_power=0.0,
        d_power=0.0,
        p_energy=75000.0,
        i_energy=0.0,
        d_energy=0.0,
        delivered_energy=0.0,
        compensation_factor=1.0,
        budget=75000.0,
        duration=75.0,
        next_update_in=75.0,
    )
    params.update(overrides)
    return DecisionRecord(**params)


class TestInfluxTelemetry:
    """Test InfluxDB point creation and error handling"""

    @patch('advanced_thermostat.telemetry.InfluxDBClient')
    def test_point(self, mock_client_class):
        telemetry = InfluxTelemetry("http://localhost:8086", "token", "home", "heating", "living_room")
        line = telemetry.build_point(make_record()).to_line_protocol()

        assert line.startswith("thermostat,")
        assert "name=living_room" in line
        assert "mode=heat" in line
        assert 'actuator_state="heat"' in line
        assert "budget=75000" in line
        assert "duration=75" in line
        assert line.endswith("1700000000000000000")

    @patch('advanced_thermostat.telemetry.InfluxDBClient')
    def test_infinite_duration_and_missing_sample_are_skipped(self, mock_client_class):
        telemetry = InfluxTelemetry("http://localhost:8086", "token", "home", "heating", "living_room")
        record = make_record(duration=math.inf, current_temperature=None)
        line = telemetry.build_point(record).to_line_protocol()

        assert "duration=" not in line
        assert "current_temperature=" not in line
        assert "target_temperature=22" in line

    @patch('advanced_thermostat.telemetry.InfluxDBClient')
    def test_write(self, mock_client_class):
        mock_write_api = MagicMock()
        mock_client_class.return_value.write_api.return_value = mock_write_api

        telemetry = InfluxTelemetry("http://localhost:8086", "token", "home", "heating", "living_room")
        telemetry.write(make_record())

        mock_client_class.assert_called_once_with(url="http://localhost:8086", token="token", org="home")
        mock_write_api.write.assert_called_once()
        assert mock_write_api.write.call_args.kwargs['bucket'] == "heating"

    @patch('advanced_thermostat.telemetry.InfluxDBClient')
    def test_write_errors_are_logged(self, mock_client_class):
        """Test a rejected or unreachable database never stops the controller"""
        mock_write_api = MagicMock()
        mock_client_class.return_value.write_api.return_value = mock_write_api
        telemetry = InfluxTelemetry("http://localhost:8086", "token", "home", "heating", "living_room")

        mock_write_api.write.side_effect = ApiException(status=400, reason="bad")
        telemetry.write(make_record())

        mock_write_api.write.side_effect = ConnectionRefusedError("refused")
        telemetry.write(make_record())

        assert mock_write_api.write.call_count == 2

    @patch('advanced_thermostat.telemetry.InfluxDBClient')
    def test_close(self, mock_client_class):
        telemetry = InfluxTelemetry("http://localhost:8086", "token", "home", "heating", "living_room")
        telemetry.close()

        mock_client_class.return_value.close.assert_called_once()


class TestCsvTelemetry:
    """Test CSV export"""

    def test_appends_rows(self, tmp_path):
        path = tmp_path / "telemetry.csv"
        telemetry = CsvTelemetry(str(path))

        telemetry.write(make_record())
        telemetry.write(make_record(trigger="current temperature 21.0°C", new_state=ActuatorState.OFF, budget=-10.0))

        df = pd.read_csv(path)
        assert len(df) == 2
        assert list(df['actuator_state']) == ['heat', 'off']
        assert list(df['budget']) == [75000.0, -10.0]
        assert df['timestamp'][0] == '2023-11-14T22:13:20+00:00'


class TestBuildTelemetry:

    def test_disabled(self):
        assert build_telemetry(None, "living_room") is None
        assert build_telemetry({'type': 'none'}, "living_room") is None

    def test_unknown_type(self):
        assert build_telemetry({'type': 'graphite'}, "living_room") is None

    def test_csv(self, tmp_path):
        sink = build_telemetry({'type': 'csv', 'path': str(tmp_path / "out.csv")}, "living_room")

        assert isinstance(sink, CsvTelemetry)
        assert sink.path == str(tmp_path / "out.csv")

    @patch.dict('os.environ', {'INFLUXDB_TOKEN': 'from-env'})
    @patch('advanced_thermostat.telemetry.InfluxDBClient')
    def test_influxdb_token_from_environment(self, mock_client_class):
        sink = build_telemetry(
            {'type': 'influxdb', 'url': 'http://influx:8086', 'org': 'home', 'bucket': 'heating'},
            "living_room",
        )

        assert isinstance(sink, InfluxTelemetry)
        assert sink.bucket == 'heating'
        mock_client_class.assert_called_once_with(url='http://influx:8086', token='from-env', org='home')
