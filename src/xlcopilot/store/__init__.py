from __future__ import annotations

from .base import GridCommand, GridOp, GridStore
from .openpyxl_store import OpenpyxlGridStore

__all__ = ["GridCommand", "GridOp", "GridStore", "OpenpyxlGridStore"]
