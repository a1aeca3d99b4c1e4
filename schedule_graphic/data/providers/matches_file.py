from __future__ import annotations

import json
from pathlib import Path

from schedule_graphic.core.config import settings
from schedule_graphic.core.logger import get_logger
from schedule_graphic.data.models import Match, parse_matches

log = get_logger("providers.matches_file")

_MATCH_LIST_KEYS = ("selected_matches", "matches", "upcoming_matches")


def _extract_list(payload: object) -> object:
    if isinstance(payload, dict):
        for key in _MATCH_LIST_KEYS:
            if key in payload:
                return payload[key]
        return []
    return payload


def load_current_matches(path: str | Path | None = None) -> list[Match]:
    """Current match list as written by the match-data server.

    The file holds either ``{"selected_matches": [...]}`` or a bare list.
    A missing or unreadable file yields an empty schedule.
    """
    file_path = Path(path or settings.matches_file)
    if not file_path.exists():
        log.warning("matches_file_missing path=%s", file_path)
        return []
    try:
        payload = json.loads(file_path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        log.exception("matches_file_unreadable path=%s", file_path)
        return []
    return parse_matches(_extract_list(payload))
