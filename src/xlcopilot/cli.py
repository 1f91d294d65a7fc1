from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import sys
from typing import Literal

import anyio
from pydantic import BaseModel, Field, ValidationError, field_validator

from .actions.models import Action, BatchResult
from .actions.normalize import coerce_actions
from .context import ExecutionContext
from .store.base import GridStore
from .store.openpyxl_store import OpenpyxlGridStore

logger = logging.getLogger(__name__)

Backend = Literal["openpyxl", "com"]

EXIT_OK = 0
EXIT_FAILED_ACTIONS = 1
EXIT_USAGE = 2


class RunnerConfig(BaseModel):
    """Configuration for one command-line batch run."""

    workbook: Path = Field(..., description="Workbook to modify.")
    actions: Path = Field(..., description="JSON batch file.")
    out: Path | None = Field(
        default=None, description="Output path (defaults to overwriting workbook)."
    )
    select: list[int] | None = Field(
        default=None, description="Indexes of actions to apply (default: all)."
    )
    sheet: str | None = Field(default=None, description="Active sheet name.")
    backend: Backend = Field(default="openpyxl", description="Grid store backend.")
    log_level: str = Field(default="INFO", description="Logging level.")
    log_file: Path | None = Field(default=None, description="Optional log file path.")

    @field_validator("select", mode="before")
    @classmethod
    def _parse_select(cls, value: object) -> object:
        if isinstance(value, str):
            parts = [part.strip() for part in value.split(",") if part.strip()]
            return [int(part) for part in parts]
        return value


def main(argv: list[str] | None = None) -> int:
    """Run a batch of actions against a workbook.

    Args:
        argv: Optional CLI arguments for testing.

    Returns:
        Exit code (0 when every selected action applied, 1 when any failed,
        2 for usage or I/O errors).
    """
    try:
        config = _parse_args(argv)
    except ValidationError as exc:
        print(f"Invalid arguments: {exc}", file=sys.stderr)
        return EXIT_USAGE
    _configure_logging(config)
    try:
        actions = load_actions(config.actions)
    except (OSError, ValueError) as exc:
        logger.error("Could not read actions from %s: %s", config.actions, exc)
        return EXIT_USAGE
    try:
        result = anyio.run(run_batch, config, actions)
    except (OSError, ValueError, KeyError) as exc:
        logger.error("Batch run failed: %s", exc)
        return EXIT_USAGE
    print(format_result(result))
    return EXIT_OK if result.failed_count == 0 else EXIT_FAILED_ACTIONS


def load_actions(path: Path) -> list[Action]:
    """Read a JSON batch file (a list, or an object with ``actions``)."""
    with path.open(encoding="utf-8") as handle:
        data = json.load(handle)
    return coerce_actions(data)


async def run_batch(config: RunnerConfig, actions: list[Action]) -> BatchResult:
    """Propose, select and apply the batch, then save the workbook."""
    destination = config.out or config.workbook
    if config.backend == "com":
        from .store.xlwings_store import open_xlwings_store

        with open_xlwings_store(config.workbook, active_sheet=config.sheet) as store:
            result = await _apply(store, config, actions)
            store.save(destination)
        return result
    openpyxl_store = OpenpyxlGridStore.from_path(
        config.workbook, active_sheet=config.sheet
    )
    result = await _apply(openpyxl_store, config, actions)
    openpyxl_store.save(destination)
    return result


async def _apply(
    store: GridStore, config: RunnerConfig, actions: list[Action]
) -> BatchResult:
    context = ExecutionContext(store)
    preview = context.propose(actions)
    if config.select is not None:
        preview.select_all(False)
        for index in config.select:
            if not 0 <= index < len(actions):
                raise ValueError(
                    f"--select index {index} is outside the batch (0-{len(actions) - 1})."
                )
            preview.set_selected(index, True)
    logger.info("Applying %d of %d action(s)", preview.selected_count, len(actions))
    return await context.apply()


def format_result(result: BatchResult) -> str:
    """Render the summary line followed by one line per outcome."""
    lines = [result.summary()]
    for outcome in result.outcomes:
        label = f"[{outcome.index}] {outcome.kind} {outcome.target}".rstrip()
        status = "ok" if outcome.status == "applied" else "FAILED"
        line = f"{label}: {status}"
        if outcome.message:
            line = f"{line} - {outcome.message}"
        if outcome.error is not None and outcome.error.hint:
            line = f"{line} (hint: {outcome.error.hint})"
        lines.append(line)
    return "\n".join(lines)


def _parse_args(argv: list[str] | None) -> RunnerConfig:
    """Parse CLI arguments into runner config.

    Args:
        argv: Optional CLI argument list.

    Returns:
        Parsed runner configuration.
    """
    parser = argparse.ArgumentParser(
        prog="xlcopilot", description="Apply a batch of spreadsheet actions."
    )
    parser.add_argument("--workbook", type=Path, required=True, help="Workbook path.")
    parser.add_argument(
        "--actions", type=Path, required=True, help="JSON batch file path."
    )
    parser.add_argument("--out", type=Path, help="Output workbook path.")
    parser.add_argument(
        "--select", help="Comma-separated action indexes to apply (e.g. 0,2)."
    )
    parser.add_argument("--sheet", help="Active sheet for unqualified targets.")
    parser.add_argument(
        "--backend",
        choices=["openpyxl", "com"],
        default="openpyxl",
        help="Grid store backend (openpyxl/com).",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR).",
    )
    parser.add_argument("--log-file", type=Path, help="Optional log file path.")
    args = parser.parse_args(argv)
    return RunnerConfig(
        workbook=args.workbook,
        actions=args.actions,
        out=args.out,
        select=args.select,
        sheet=args.sheet,
        backend=args.backend,
        log_level=args.log_level,
        log_file=args.log_file,
    )


def _configure_logging(config: RunnerConfig) -> None:
    """Configure logging for the runner process.

    Args:
        config: Runner configuration.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if config.log_file is not None:
        handlers.append(logging.FileHandler(config.log_file))
    logging.basicConfig(
        level=config.log_level.upper(),
        handlers=handlers,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


if __name__ == "__main__":
    raise SystemExit(main())
