import pathlib
import re
import sys
from datetime import datetime, timezone

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from services.visits import Visit

FIXED_NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

_CELL_REF = re.compile(r"([A-Z]+)(\d+)")


class InMemorySheet:
    """Row-level stand-in for SheetsClient."""

    def __init__(self, rows=None):
        self.rows = [list(row) for row in rows or []]
        self.calls = []
        self.error = None

    def _record(self, *call):
        self.calls.append(call)
        if self.error is not None:
            raise self.error

    def get_values(self, range_):
        self._record("get", range_)
        if range_.endswith("!A:A"):
            return [[row[0]] if row and row[0] != "" else [] for row in self.rows]
        return [list(row) for row in self.rows]

    def append_values(self, range_, rows, value_input_option="USER_ENTERED"):
        self._record("append", range_, value_input_option)
        self.rows.extend(list(row) for row in rows)

    def update_values(self, range_, rows, value_input_option="USER_ENTERED"):
        self._record("update", range_, value_input_option)
        start = range_.split("!", 1)[1].split(":", 1)[0]
        column_letters, row_number = _CELL_REF.match(start).groups()
        column = ord(column_letters) - ord("A")
        target = self.rows[int(row_number) - 1]
        values = list(rows[0])
        if len(target) < column + len(values):
            target.extend([""] * (column + len(values) - len(target)))
        target[column:column + len(values)] = values

    def delete_row(self, tab, row_index):
        self._record("delete", tab, row_index)
        del self.rows[row_index]


def make_visit(**overrides):
    defaults = {
        "id": "v-1",
        "pharmacy_name": "Central Pharmacy",
        "timestamp": "2025-05-01T10:00:00.000Z",
        "actions": [],
    }
    defaults.update(overrides)
    return Visit(**defaults)


@pytest.fixture()
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture()
def sheet():
    return InMemorySheet()
