"""Client-side filtering and ordering of court and game listings.

Games pass through the facet reductions in a fixed order (game type, skill
level, time window, radius). A facet whose ``all`` flag is set is skipped; a
facet with nothing selected empties the result. Ordering by scheduled time is
a separate pass applied after filtering.
"""

from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta
from typing import Optional, TypeVar

from .constants import (
    LEVELS,
    NO_DISTANCE_SENTINEL,
    RADIUS_OPTIONS,
    SOON_WINDOW_END_HOURS,
    SOON_WINDOW_START_HOURS,
    THIS_WEEK_DAYS,
    GameType,
    TimeWindow,
)
from .location import calculate_distance, format_distance
from .logging_config import get_logger
from .models import UserLocation
from .schemas import (
    Court,
    Game,
    GameFilters,
    GameTypeFacet,
    SkillLevelFacet,
    TimeWindowFacet,
)

G = TypeVar('G', bound=Game)
logger = get_logger(__name__)

ONE_MS = timedelta(milliseconds=1)


def _as_list(entities: Iterable[G] | Mapping[str, G]) -> list[G]:
    if isinstance(entities, Mapping):
        return list(entities.values())
    return list(entities)


def annotate_court_distances(
    courts: Iterable[Court] | Mapping[str, Court],
    location: Optional[UserLocation],
) -> list[Court]:
    """
    Attach distances from the user to each court and order courts by proximity.

    Courts without coordinates get the sentinel distance so they sort last.
    With no location the courts are returned unchanged and in their
    original order.

    Args:
        courts: Courts as fetched from the backend
        location: User position, or None if it could not be obtained

    Returns:
        New list of (copied) courts sorted by ``distance_value`` ascending
    """
    courts = _as_list(courts)
    if location is None:
        logger.info('No user location; skipping distance annotation')
        return courts

    annotated = []
    for court in courts:
        if court.has_coordinates:
            miles = calculate_distance(location.latitude, location.longitude, court.latitude, court.longitude)
            annotated.append(court.model_copy(update={'distance': format_distance(miles), 'distance_value': miles}))
        else:
            annotated.append(court.model_copy(update={'distance': None, 'distance_value': NO_DISTANCE_SENTINEL}))

    annotated.sort(key=lambda c: c.distance_value)
    return annotated


def annotate_game_distances(games: Iterable[G] | Mapping[str, G], courts: Iterable[Court]) -> list[G]:
    """
    Copy each game's court distance onto the game.

    Only courts that were annotated with a real distance count; games at
    unknown or unlocated courts keep ``distance_value`` None.
    """
    distances = {
        c.id: c.distance_value
        for c in courts
        if c.distance_value is not None and c.distance_value != NO_DISTANCE_SENTINEL
    }
    return [
        g.model_copy(update={'distance_value': distances[g.court_id]}) if g.court_id in distances else g
        for g in _as_list(games)
    ]


def filter_by_game_type(games: Iterable[G], facet: GameTypeFacet) -> list[G]:
    """Keep games of the selected type(s)."""
    games = _as_list(games)
    if facet.all:
        return games
    if not facet.singles and not facet.doubles:
        return []

    wanted = set()
    if facet.singles:
        wanted.add(GameType.SINGLES)
    if facet.doubles:
        wanted.add(GameType.DOUBLES)
    return [g for g in games if g.game_type in wanted]


def filter_by_skill_level(games: Iterable[G], facet: SkillLevelFacet) -> list[G]:
    """Keep games whose level (case-insensitive) is one of the selected levels."""
    games = _as_list(games)
    if facet.all:
        return games

    selected = facet.selected()
    if not selected:
        return []
    return [g for g in games if g.skill_level.lower() in selected]


def time_window_bounds(window: TimeWindow, now: datetime) -> tuple[datetime, datetime]:
    """
    Inclusive bounds of a time window.

    - soon: one to two hours from now
    - today: local midnight to the last millisecond of the day
    - thisWeek: local midnight to the last millisecond of the seventh day
    """
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)

    if window == TimeWindow.SOON:
        return now + timedelta(hours=SOON_WINDOW_START_HOURS), now + timedelta(hours=SOON_WINDOW_END_HOURS)
    if window == TimeWindow.TODAY:
        return start_of_day, start_of_day + timedelta(days=1) - ONE_MS
    if window == TimeWindow.THIS_WEEK:
        return start_of_day, start_of_day + timedelta(days=THIS_WEEK_DAYS) - ONE_MS
    raise ValueError(f'Unknown time window: {window}')


def selected_windows(facet: TimeWindowFacet) -> list[TimeWindow]:
    windows = []
    if facet.soon:
        windows.append(TimeWindow.SOON)
    if facet.today:
        windows.append(TimeWindow.TODAY)
    if facet.this_week:
        windows.append(TimeWindow.THIS_WEEK)
    return windows


def filter_by_time_window(
    games: Iterable[G],
    facet: TimeWindowFacet,
    now: Optional[datetime] = None,
) -> list[G]:
    """
    Keep games that fall inside any selected window.

    Args:
        games: Games to filter
        facet: Time-window selections
        now: Reference local time (default: current local time)

    Returns:
        Games matching at least one selected window
    """
    games = _as_list(games)
    if facet.all:
        return games

    windows = selected_windows(facet)
    if not windows:
        return []

    now = now or datetime.now()
    bounds = [time_window_bounds(w, now) for w in windows]

    kept = []
    for game in games:
        at = game.scheduled_at()
        if any(start <= at <= end for start, end in bounds):
            kept.append(game)
    return kept


def filter_by_radius(games: Iterable[G], radius: Optional[float]) -> list[G]:
    """
    Keep games within ``radius`` miles.

    Games with no known distance are kept, since there is nothing to
    compare. A radius of None disables the facet.
    """
    games = _as_list(games)
    if radius is None:
        return games
    return [g for g in games if g.distance_value is None or g.distance_value <= radius]


def apply_filters(
    games: Iterable[G] | Mapping[str, G],
    filters: GameFilters,
    now: Optional[datetime] = None,
) -> list[G]:
    """Run every facet reduction in order, stopping early once nothing is left."""
    result = _as_list(games)

    result = filter_by_game_type(result, filters.game_types)
    if not result:
        return []
    result = filter_by_skill_level(result, filters.skill_levels)
    if not result:
        return []
    result = filter_by_time_window(result, filters.time_windows, now)
    if not result:
        return []
    return filter_by_radius(result, filters.radius)


def sort_by_schedule(games: Iterable[G] | Mapping[str, G]) -> list[G]:
    """Order games by combined date and time, earliest first."""
    return sorted(_as_list(games), key=lambda g: g.scheduled_at())


def filter_and_sort_games(
    games: Iterable[G] | Mapping[str, G],
    filters: GameFilters,
    now: Optional[datetime] = None,
) -> list[G]:
    """Filter games by ``filters`` and order the survivors by scheduled time."""
    return sort_by_schedule(apply_filters(games, filters, now))


def toggle_game_type(filters: GameFilters, choice: str) -> GameFilters:
    """
    Select a game-type option.

    'all' turns on both types; 'singles' or 'doubles' selects only that one.
    """
    if choice == 'all':
        facet = GameTypeFacet(singles=True, doubles=True, all=True)
    elif choice in ('singles', 'doubles'):
        facet = GameTypeFacet(singles=choice == 'singles', doubles=choice == 'doubles', all=False)
    else:
        raise ValueError(f'Invalid game type option: {choice}')
    return filters.model_copy(update={'game_types': facet})


def _toggle_multi(current: dict[str, bool], options: list[str], choice: str) -> dict[str, bool]:
    """Shared toggle rule for the skill-level and time-window groups."""
    if choice == 'all':
        value = not current['all']
        return {**{opt: value for opt in options}, 'all': value}

    if choice not in options:
        raise ValueError(f'Invalid option: {choice}')

    if current['all']:
        # Leaving "all": keep only the option that was tapped
        return {**{opt: opt == choice for opt in options}, 'all': False}

    updated = {**current, choice: not current[choice], 'all': False}
    if all(updated[opt] for opt in options):
        updated['all'] = True
    return updated


def toggle_skill_level(filters: GameFilters, choice: str) -> GameFilters:
    """Toggle one skill level (or 'all')."""
    current = filters.skill_levels.model_dump()
    facet = SkillLevelFacet(**_toggle_multi(current, LEVELS, choice))
    return filters.model_copy(update={'skill_levels': facet})


def toggle_time_window(filters: GameFilters, choice: str) -> GameFilters:
    """Toggle one time window ('soon', 'today', 'thisWeek') or 'all'."""
    options = [w.value for w in TimeWindow]
    current = filters.time_windows.model_dump(by_alias=True)
    facet = TimeWindowFacet(**_toggle_multi(current, options, choice))
    return filters.model_copy(update={'time_windows': facet})


def select_radius(filters: GameFilters, radius: float) -> GameFilters:
    """Choose one of the offered search radii (miles)."""
    if radius not in RADIUS_OPTIONS:
        raise ValueError(f'Radius must be one of {RADIUS_OPTIONS}, got {radius}')
    return filters.model_copy(update={'radius': radius})
