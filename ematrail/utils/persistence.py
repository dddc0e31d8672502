"""
State persistence utilities.

Live sessions need to remember their completed trades across restarts so
the running statistics can be rebuilt by replaying them.  This module
provides simple JSON‑based load/save functions for that purpose, plus
the conversion between the trade history and its JSON form.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ..execution.models import CompletedTrade, trade_from_dict, trade_to_dict

logger = logging.getLogger(__name__)


def load_state(path: str) -> Optional[Dict[str, Any]]:
    """Load a JSON state file.

    Parameters
    ----------
    path : str
        Path to the JSON file.

    Returns
    -------
    dict or None
        The state dictionary if the file exists, otherwise `None`.
    """
    file_path = Path(path)
    if not file_path.exists():
        return None
    with file_path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def save_state(path: str, state: Dict[str, Any]) -> None:
    """Write a JSON state file to disk.

    The file is written to a temporary sibling first and then renamed,
    so a crash mid-write never leaves a truncated state file behind.
    """
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = file_path.with_suffix(file_path.suffix + ".tmp")
    with tmp_path.open("w", encoding="utf-8") as fh:
        json.dump(state, fh, ensure_ascii=False, indent=2, sort_keys=True)
    tmp_path.replace(file_path)


def load_history(path: str) -> List[CompletedTrade]:
    """Completed trades saved by a previous session, oldest first.

    A corrupt file is logged and treated as empty.
    """
    try:
        state = load_state(path)
    except (OSError, ValueError) as exc:
        logger.error("Could not read state file %s: %s", path, exc)
        return []
    if not state:
        return []
    return [trade_from_dict(item) for item in state.get('trades', [])]


def save_history(path: str, trades: Sequence[CompletedTrade]) -> None:
    save_state(path, {'trades': [trade_to_dict(t) for t in trades]})
