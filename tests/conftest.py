from __future__ import annotations

from functools import lru_cache
import os
import re
import sys
from typing import Any

import pytest

from xlcopilot.actions.models import Grid, RangeSnapshot
from xlcopilot.shared.a1 import parse_range
from xlcopilot.store.base import GridCommand, GridOp

IS_WINDOWS = sys.platform == "win32"
SKIP_COM_TESTS = os.getenv("SKIP_COM_TESTS") == "1"
FORCE_COM_TESTS = os.getenv("FORCE_COM_TESTS") == "1"


def _markexpr_requests_com(markexpr: str) -> bool:
    """Return True when markexpr explicitly requests the ``com`` marker."""
    tokens = re.findall(r"[A-Za-z_][A-Za-z0-9_]*", markexpr.lower())
    for index, token in enumerate(tokens):
        if token != "com":
            continue
        prev = tokens[index - 1] if index > 0 else ""
        if prev != "not":
            return True
    return False


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers to avoid pytest warnings."""
    markexpr = getattr(config.option, "markexpr", "") or ""
    if _markexpr_requests_com(markexpr):
        os.environ.pop("SKIP_COM_TESTS", None)
    config.addinivalue_line("markers", "com: requires Excel COM (Windows + Excel).")


@lru_cache(maxsize=1)
def _has_excel_com() -> bool:
    """Return True if Excel COM can be opened via xlwings."""
    try:
        import xlwings as xw

        app = xw.App(add_book=False, visible=False)
        app.quit()
        return True
    except Exception:
        return False


def _com_skip_reason() -> str | None:
    """
    Return a skip reason for COM-marked tests, or None when they should run.

    If FORCE_COM_TESTS=1 and COM is unavailable, raises RuntimeError to fail fast.
    """
    if SKIP_COM_TESTS:
        return "COM tests skipped via SKIP_COM_TESTS=1."
    if not IS_WINDOWS:
        return "COM tests require Windows."
    if not _has_excel_com():
        if FORCE_COM_TESTS:
            raise RuntimeError("Excel COM is unavailable but FORCE_COM_TESTS=1 is set.")
        return "Excel COM is unavailable."
    return None


def pytest_runtest_setup(item: pytest.Item) -> None:
    """Skip COM-marked tests when Excel is not reachable."""
    if item.get_closest_marker("com") is not None:
        reason = _com_skip_reason()
        if reason:
            pytest.skip(reason)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class FakeGridStore:
    """In-memory grid store that records every call.

    Cells hold raw content; text starting with ``=`` is a formula whose value
    reads back as None, like an uncalculated workbook.
    """

    def __init__(self, active_sheet: str = "Sheet1") -> None:
        self.active_sheet = active_sheet
        self.cells: dict[tuple[str, int, int], Any] = {}
        self.calls: list[tuple[str, object]] = []
        self.results: dict[GridOp, object] = {}
        self.failures: dict[GridOp, Exception] = {}
        self.read_failures: set[str] = set()
        self.write_failures: set[str] = set()

    @property
    def commands(self) -> list[GridCommand]:
        return [call for name, call in self.calls if isinstance(call, GridCommand)]

    def ops(self) -> list[str]:
        return [command.op for command in self.commands]

    def set(self, address: str, grid: Grid) -> None:
        target = parse_range(address)
        sheet = target.sheet or self.active_sheet
        for row_offset, row in enumerate(grid):
            for column_offset, content in enumerate(row):
                key = (sheet, target.anchor.row + row_offset, target.anchor.column + column_offset)
                self.cells[key] = content

    def get(self, address: str) -> Grid:
        target = parse_range(address)
        sheet = target.sheet or self.active_sheet
        return [
            [
                self.cells.get((sheet, row, column), "")
                for column in range(target.anchor.column, target.end.column + 1)
            ]
            for row in range(target.anchor.row, target.end.row + 1)
        ]

    async def read_range(self, address: str) -> RangeSnapshot:
        self.calls.append(("read_range", address))
        if address in self.read_failures:
            raise RuntimeError(f"cannot read {address}")
        formulas = self.get(address)
        values = [
            [
                None if isinstance(content, str) and content.startswith("=") else content
                for content in row
            ]
            for row in formulas
        ]
        return RangeSnapshot(
            address=parse_range(address).address, values=values, formulas=formulas
        )

    async def write_range(
        self,
        address: str,
        *,
        values: Grid | None = None,
        formulas: Grid | None = None,
    ) -> None:
        self.calls.append(("write_range", address))
        if address in self.write_failures:
            raise RuntimeError(f"cannot write {address}")
        grid = formulas if formulas is not None else values
        assert grid is not None
        self.set(address, grid)

    async def submit(self, command: GridCommand) -> object:
        self.calls.append(("submit", command))
        if command.op in self.failures:
            raise self.failures[command.op]
        return self.results.get(command.op)


@pytest.fixture
def fake_store() -> FakeGridStore:
    return FakeGridStore()
