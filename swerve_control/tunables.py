"""Read-only tunable parameter lookup.

Gains, tolerances, slew rates and trapezoid constraints are owned by an
external store (dashboard, config file). The core only reads them with a
numeric default, so a missing or malformed key never surfaces as an error.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

from .table import PubSubTable


class TunableStore:
    """Key → number lookup with defaults.

    Lookup order: live table (if attached) → static values → caller default.

    Attributes:
        table: Optional live table, typically fed by the table bridge.
    """

    def __init__(
        self,
        values: Optional[Mapping[str, float]] = None,
        table: Optional[PubSubTable] = None,
    ) -> None:
        self._values: Dict[str, float] = {}
        self.table = table
        for key, value in (values or {}).items():
            self._store(key, value)

    @classmethod
    def from_json(
        cls, path: Union[str, Path], table: Optional[PubSubTable] = None
    ) -> "TunableStore":
        """Load static values from a flat JSON object of numbers.

        Raises:
            FileNotFoundError: If the file does not exist.
            ValueError: If the file is not a JSON object.
        """
        path = Path(path)
        with open(path) as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Tunables file must contain a JSON object: {path}")
        logging.info(f"Loaded {len(data)} tunables from {path}")
        return cls(data, table=table)

    def _store(self, key: str, value: object) -> None:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            logging.warning(f"Ignoring non-numeric tunable {key}={value!r}")
            return
        self._values[key] = float(value)

    def get(self, key: str, default: float) -> float:
        """Current value for ``key``, or ``default`` if it is absent."""
        if self.table is not None and self.table.contains(key):
            return self.table.get_number(key, self._values.get(key, default))
        return self._values.get(key, default)

    def update(self, key: str, value: float) -> None:
        """Change a value on behalf of the external owner (dashboards, tests)."""
        self._store(key, value)

    def __contains__(self, key: str) -> bool:
        if self.table is not None and self.table.contains(key):
            return True
        return key in self._values
