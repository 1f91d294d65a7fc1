"""Action handlers grouped by catalog category.

Every handler is ``async (store, target, payload) -> str | None``.
"""

from __future__ import annotations
