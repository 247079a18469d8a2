"""
Telemetry

Exports decision records to InfluxDB or to a CSV file.
"""

import logging
import math
import os

import pandas as pd
from influxdb_client import InfluxDBClient, Point
from influxdb_client.client.write_api import SYNCHRONOUS
from influxdb_client.rest import ApiException
from urllib3.exceptions import HTTPError

from .decision_record import DecisionRecord


MEASUREMENT = "thermostat"

# Telemetry values written as InfluxDB fields
NUMERIC_FIELDS = [
    'target_temperature',
    'current_temperature',
    'p_power',
    'i_power',
    'd_power',
    'compensation_factor',
    'budget',
    'duration',
]


class InfluxTelemetry:
    """Writes one point per decision to an InfluxDB v2 bucket"""

    def __init__(self, url: str, token: str, org: str, bucket: str, name: str):
        self.bucket = bucket
        self.name = name
        self.client = InfluxDBClient(url=url, token=token, org=org)
        self.write_api = self.client.write_api(write_options=SYNCHRONOUS)
        logging.info(f"InfluxDB telemetry: {url}, org={org}, bucket={bucket}")

    def build_point(self, record: DecisionRecord) -> Point:
        values = record.to_telemetry()
        p = (
            Point(MEASUREMENT)
            .tag("name", self.name)
            .tag("mode", values['mode'])
            .field("actuator_state", values['actuator_state'])
            .field("trigger", values['trigger'])
            .time(int(record.timestamp * 1e9))
        )
        for key in NUMERIC_FIELDS:
            value = values[key]
            # Infinite durations and missing samples are left out
            if value is None or math.isinf(value):
                continue
            p = p.field(key, float(value))
        return p

    def write(self, record: DecisionRecord):
        try:
            self.write_api.write(bucket=self.bucket, record=self.build_point(record))
        except ApiException as api_error:
            logging.error(f"InfluxDB rejected telemetry point: {api_error.status} {api_error.reason}")
        except (HTTPError, OSError) as e:
            logging.error(f"Failed to write telemetry to InfluxDB: {e}")

    def close(self):
        self.client.close()


class CsvTelemetry:
    """Appends one row per decision to a CSV file"""

    def __init__(self, path: str):
        self.path = path
        logging.info(f"CSV telemetry: {path}")

    def write(self, record: DecisionRecord):
        df = pd.DataFrame([record.to_telemetry()])
        try:
            df.to_csv(self.path, mode='a', header=not os.path.exists(self.path), index=False)
        except OSError as e:
            logging.error(f"Failed to write telemetry to {self.path}: {e}")

    def close(self):
        pass


def build_telemetry(config: dict, name: str):
    """
    Create the telemetry sink described by the `telemetry` config section.

    Args:
        config: Mapping with key `type` (influxdb, csv or none) and the
                sink's settings (url/token/org/bucket or path). The InfluxDB
                token may come from the INFLUXDB_TOKEN environment variable.
        name: Thermostat name used to tag InfluxDB points

    Returns:
        InfluxTelemetry, CsvTelemetry or None
    """
    if not config:
        return None

    sink_type = str(config.get('type', 'none')).lower()
    if sink_type == 'influxdb':
        return InfluxTelemetry(
            url=config['url'],
            token=config.get('token') or os.environ.get('INFLUXDB_TOKEN', ''),
            org=config['org'],
            bucket=config['bucket'],
            name=name,
        )
    if sink_type == 'csv':
        return CsvTelemetry(config.get('path', f'{name}_telemetry.csv'))
    if sink_type != 'none':
        logging.warning(f"Unknown telemetry type '{sink_type}', telemetry disabled")
    return None
