import logging
from typing import Any, Dict, Iterable, List, Optional

import requests
from flask import current_app, has_app_context

from .models import db, Player

logger = logging.getLogger(__name__)


def coerce_single(value: Any) -> Optional[Any]:
    """
    Normalize a joined relation that may arrive as a record, a list of records,
    or nothing into one optional record. Apply at the boundary only.
    """
    if not value:
        return None
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def uniq_non_null(values: Iterable[Optional[str]]) -> List[str]:
    seen = []
    for v in values:
        if v and v not in seen:
            seen.append(v)
    return seen


def short_id(identifier: str) -> str:
    return identifier[:8]


class ProfileDirectory:
    """
    Best-effort display names for players.

    The local gamertag wins; otherwise an external profile service is asked
    when one is configured. A failed lookup never fails the caller.
    """

    def __init__(self, base_url: str = None, timeout: float = None):
        if base_url is None and has_app_context():
            base_url = current_app.config.get('PROFILE_SERVICE_URL', '')
        if timeout is None and has_app_context():
            timeout = current_app.config.get('PROFILE_SERVICE_TIMEOUT', 3)
        self.base_url = (base_url or '').rstrip('/')
        self.timeout = timeout or 3

    def resolve_display_name(self, player_id: str) -> Optional[str]:
        player = db.session.get(Player, player_id)
        if player and player.gamertag and player.gamertag.strip():
            return player.gamertag.strip()
        return self._fetch_remote(player_id)

    def display_name(self, player_id: Optional[str]) -> Optional[str]:
        if not player_id:
            return None
        return self.resolve_display_name(player_id) or short_id(player_id)

    def hydrate(self, player_ids: Iterable[Optional[str]]) -> Dict[str, str]:
        """Map every non-null id to a display name in one pass over the local table."""
        ids = uniq_non_null(player_ids)
        if not ids:
            return {}

        names = {}
        for player in Player.query.filter(Player.id.in_(ids)).all():
            if player.gamertag and player.gamertag.strip():
                names[player.id] = player.gamertag.strip()

        for pid in ids:
            if pid not in names:
                names[pid] = self._fetch_remote(pid) or short_id(pid)
        return names

    def _fetch_remote(self, player_id: str) -> Optional[str]:
        if not self.base_url:
            return None
        try:
            resp = requests.get(f"{self.base_url}/profiles/{player_id}", timeout=self.timeout)
            if resp.status_code != 200:
                return None
            profile = coerce_single(resp.json())
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Profile lookup failed for {player_id}: {e}")
            return None

        if not isinstance(profile, dict):
            return None
        gamertag = (profile.get('gamertag') or '').strip()
        return gamertag or None
