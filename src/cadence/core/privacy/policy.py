"""Privacy policy for the weekly summary handed to narrative generation.

The summary built by ``narrative.build_weekly_summary`` may leave the process
(for instance to a text generator). What it carries depends on the mode:

- strict:   rule outputs only; no free text the user typed, no remaining
            distance to target, numbers rounded to one decimal
- standard: adds the bad-week reasons the user picked, keeps notes out
- explicit: everything, including free-form notes
"""

from __future__ import annotations

import copy
from typing import Any, Literal

PrivacyMode = Literal["strict", "standard", "explicit"]

PRIVACY_MODES: tuple[str, ...] = ("strict", "standard", "explicit")


def _round_floats(obj: Any, ndigits: int = 2) -> Any:
    if isinstance(obj, float):
        return round(obj, ndigits)
    if isinstance(obj, dict):
        return {k: _round_floats(v, ndigits=ndigits) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_round_floats(v, ndigits=ndigits) for v in obj]
    return obj


def minimize_weekly_summary(
    summary: dict[str, Any],
    privacy_mode: PrivacyMode,
) -> dict[str, Any]:
    """Return a copy of ``summary`` reduced to what ``privacy_mode`` allows.

    Raises:
        ValueError: Unknown privacy mode.
    """
    if privacy_mode not in PRIVACY_MODES:
        raise ValueError(f"Unknown privacy mode: {privacy_mode!r}")

    if privacy_mode == "explicit":
        return copy.deepcopy(summary)

    minimized = {k: copy.deepcopy(v) for k, v in summary.items() if k != "user_context"}
    user_context = summary.get("user_context") or {}

    if privacy_mode == "strict":
        progress = minimized.get("progress")
        if progress:
            progress.pop("remaining_change", None)
        return _round_floats(minimized, ndigits=1)

    # standard
    minimized["user_context"] = {
        "bad_week_reasons": list(user_context.get("bad_week_reasons") or []),
    }
    return _round_floats(minimized, ndigits=2)
