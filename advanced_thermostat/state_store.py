"""
State Store

Persists controller snapshots to a JSON file shared by all thermostats,
keyed by thermostat name.
"""

import json
import logging
import os


class JsonStateStore:
    """JSON file holding one snapshot per thermostat"""

    def __init__(self, path: str, name: str):
        """
        Args:
            path: Path to the JSON persistence file
            name: Key of this thermostat inside the file
        """
        self.path = path
        self.name = name

    def _read_all(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logging.warning(f"{self.name}: Failed to read persistence file {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            logging.warning(f"{self.name}: Persistence file {self.path} does not hold a JSON object")
            return {}
        return data

    def load(self) -> dict:
        """
        Load this thermostat's snapshot.

        Returns:
            dict: Persisted snapshot, or {} when nothing usable was found
        """
        if not os.path.exists(self.path):
            logging.info(f"{self.name}: No persisted state found, using defaults")
            return {}

        snapshot = self._read_all().get(self.name)
        if not isinstance(snapshot, dict):
            logging.info(f"{self.name}: No state for this thermostat in {self.path}")
            return {}

        logging.debug(f"{self.name}: State loaded from {self.path}")
        return snapshot

    def save(self, snapshot: dict):
        """Save this thermostat's snapshot, keeping the other entries in the file"""
        data = self._read_all()
        data[self.name] = snapshot

        try:
            with open(self.path, 'w') as f:
                json.dump(data, f, indent=2)
            logging.debug(f"{self.name}: State saved to {self.path}")
        except (OSError, TypeError, ValueError) as e:
            logging.error(f"{self.name}: Failed to persist state: {e}")
