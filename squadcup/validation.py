from typing import Optional, Sequence, Tuple

from flask import current_app, has_app_context

from shared.errors import ValidationError, MissingAsset
from .models import TEAM_SIZE, Tournament


def is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def require_name(name: Optional[str], field: str = 'name') -> str:
    cleaned = (name or '').strip()
    if not cleaned:
        raise ValidationError(f"{field} is required")
    return cleaned


def max_maps_for(tournament: Tournament) -> int:
    if tournament.max_maps:
        return tournament.max_maps
    if has_app_context():
        return current_app.config.get('MAX_MAPS_PER_TOURNAMENT', 15)
    return 15


def require_map_number(map_number, max_maps: int) -> int:
    if not is_int(map_number):
        raise ValidationError("map_number must be an integer")
    if map_number < 1 or map_number > max_maps:
        raise ValidationError(f"map_number must be between 1 and {max_maps}")
    return map_number


def require_placement(placement) -> int:
    if not is_int(placement):
        raise ValidationError("placement must be an integer")
    if placement < 1:
        raise ValidationError("placement must be 1 or higher")
    return placement


def require_kills(kills: Sequence) -> Tuple[int, int, int]:
    if kills is None or isinstance(kills, (str, bytes)) or len(kills) != TEAM_SIZE:
        raise ValidationError(f"kills must list exactly {TEAM_SIZE} values")
    for k in kills:
        if not is_int(k):
            raise ValidationError("kills must be integers")
        if k < 0:
            raise ValidationError("kills must be 0 or higher")
    return tuple(kills)


def require_image_ref(image_ref: Optional[str]) -> str:
    ref = (image_ref or '').strip() if isinstance(image_ref, str) else ''
    if not ref:
        raise MissingAsset("A scoreboard image must be uploaded before submitting")
    return ref
