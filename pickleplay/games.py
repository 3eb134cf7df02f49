"""Game creation, listing and housekeeping against the games tables."""

from datetime import date, datetime, timedelta
from typing import Optional

from pydantic import ValidationError

from .backend import BackendClient
from .constants import GAME_USERS_TABLE, GAMES_TABLE, GameStatus, GameType
from .errors import BackendError, ErrorKind
from .logging_config import get_logger
from .models import OperationResult
from .schemas import Game, GamePlayer, GameWithPlayers, NewGame

logger = get_logger(__name__)

SCHEDULE_ORDER = 'scheduled_date.asc,scheduled_time.asc'
PLAYERS_SELECT = '*,game_users(user_id,role,status,team,profiles(first_name,last_name,pickleball_level))'


def _parse_games(rows: list[dict], model=Game) -> list:
    """Validate rows, skipping (and logging) any the backend returned malformed."""
    games = []
    for row in rows:
        try:
            games.append(model.model_validate(row))
        except ValidationError as e:
            logger.warning(f'Skipping malformed game row {row.get("id")}: {e.error_count()} errors')
    return games


def _players_from_row(row: dict) -> list[GamePlayer]:
    players = []
    for link in row.get('game_users') or []:
        profile = link.get('profiles') or {}
        players.append(GamePlayer(
            user_id=link['user_id'],
            role=link.get('role') or 'player',
            status=link.get('status') or 'pending',
            team=link.get('team'),
            first_name=profile.get('first_name'),
            last_name=profile.get('last_name'),
            pickleball_level=profile.get('pickleball_level'),
        ))
    return players


class GameService:
    """Reads and writes game rows for the signed-in user."""

    def __init__(self, backend: BackendClient):
        self.backend = backend

    def create_game(self, game: NewGame) -> OperationResult:
        """
        Insert a game and register its creator as a player.

        Returns:
            OperationResult whose ``value`` is the new game id
        """
        try:
            rows = self.backend.insert(GAMES_TABLE, game.model_dump(mode='json', exclude_none=True))
        except BackendError as e:
            logger.error(f'Error creating game: {e.message}')
            return OperationResult.failed(e.message, e.kind)

        if not rows:
            return OperationResult.failed('Game was not created. Please try again.')

        game_id = rows[0]['id']
        try:
            self.backend.insert(GAME_USERS_TABLE, {
                'game_id': game_id,
                'user_id': game.creator_id,
                'role': 'creator',
                'status': 'confirmed',
                'team': 'A',
            })
        except BackendError as e:
            logger.warning(f'Game {game_id} created but creator link failed: {e.message}')

        logger.info(f'Created {game.game_type.value} game {game_id} on {game.scheduled_date} {game.scheduled_time}')
        return OperationResult.ok(game_id)

    def get_user_schedules(self, user_id: str) -> list[Game]:
        """Games created by ``user_id``, earliest first."""
        rows = self.backend.query(GAMES_TABLE, filters={'creator_id': user_id}, order_by=SCHEDULE_ORDER)
        return _parse_games(rows)

    def get_user_games(self, user_id: str) -> list[GameWithPlayers]:
        """Games ``user_id`` has joined as a player (not as creator)."""
        links = self.backend.query(
            GAME_USERS_TABLE,
            select='game_id',
            filters={'user_id': user_id, 'role': 'player'},
        )
        game_ids = [link['game_id'] for link in links]
        if not game_ids:
            return []

        rows = self.backend.query(
            GAMES_TABLE,
            select=PLAYERS_SELECT,
            filters={'id': ('in', game_ids)},
            order_by=SCHEDULE_ORDER,
        )
        return self._with_players(rows)

    def get_available_games_with_details(self, user_id: str) -> list[GameWithPlayers]:
        """
        Open games created by other users, with their players attached.

        Games the user has already joined are left out.
        """
        rows = self.backend.query(
            GAMES_TABLE,
            select=PLAYERS_SELECT,
            filters={'status': GameStatus.OPEN.value, 'creator_id': ('neq', user_id)},
            order_by=SCHEDULE_ORDER,
        )
        games = self._with_players(rows)
        available = [g for g in games if all(p.user_id != user_id for p in g.players)]
        logger.debug(f'{len(available)} of {len(games)} open games available to {user_id}')
        return available

    def _with_players(self, rows: list[dict]) -> list[GameWithPlayers]:
        games = []
        for row in rows:
            players = _players_from_row(row)
            fields = {k: v for k, v in row.items() if k != 'game_users'}
            games.extend(_parse_games([{**fields, 'players': players}], GameWithPlayers))
        return games

    def join_game(self, game_id: str, user_id: str) -> OperationResult:
        try:
            self.backend.insert(GAME_USERS_TABLE, {
                'game_id': game_id,
                'user_id': user_id,
                'role': 'player',
                'status': 'pending',
            })
        except BackendError as e:
            logger.error(f'Error joining game {game_id}: {e.message}')
            return OperationResult.failed(e.message or 'Failed to join game', e.kind)
        return OperationResult.ok(game_id)

    def leave_game(self, game_id: str, user_id: str) -> OperationResult:
        try:
            self.backend.delete(GAME_USERS_TABLE, {'game_id': game_id, 'user_id': user_id, 'role': 'player'})
        except BackendError as e:
            logger.error(f'Error leaving game {game_id}: {e.message}')
            return OperationResult.failed(e.message or 'Failed to cancel game', e.kind)
        return OperationResult.ok()

    def delete_schedule(self, schedule_id: str, user_id: str) -> OperationResult:
        """Delete a game the user created."""
        try:
            deleted = self.backend.delete(GAMES_TABLE, {'id': schedule_id, 'creator_id': user_id})
        except BackendError as e:
            logger.error(f'Error deleting schedule {schedule_id}: {e.message}')
            return OperationResult.failed(e.message or 'Failed to delete schedule', e.kind)

        if not deleted:
            return OperationResult.failed('Schedule not found', ErrorKind.EXTERNAL)
        logger.info(f'User {user_id} deleted schedule {schedule_id}')
        return OperationResult.ok(schedule_id)

    def cleanup_expired_games(self, now: Optional[datetime] = None) -> int:
        """
        Remove open games whose start time has passed.

        Args:
            now: Reference local time (default: current local time)

        Returns:
            Number of games removed
        """
        now = now or datetime.now()
        rows = self.backend.query(
            GAMES_TABLE,
            select='id,scheduled_date,scheduled_time,creator_id,game_type,skill_level',
            filters={'status': GameStatus.OPEN.value, 'scheduled_date': ('lte', now.date().isoformat())},
        )

        removed = 0
        for game in _parse_games(rows):
            if game.scheduled_at() >= now:
                continue
            try:
                self.backend.delete(GAMES_TABLE, {'id': game.id})
                removed += 1
            except BackendError as e:
                logger.warning(f'Could not remove expired game {game.id}: {e.message}')

        if removed:
            logger.info(f'Removed {removed} expired games')
        return removed


def format_game_datetime(game_date: str, game_time: str, today: Optional[date] = None) -> str:
    """
    Human-readable game start.

    Example:
        >>> format_game_datetime('2026-10-18', '18:00', today=date(2026, 10, 16))
        'Oct 18 at 6:00 PM'
    """
    today = today or date.today()
    try:
        time_part = game_time if len(game_time) > 5 else f'{game_time}:00'
        when = datetime.fromisoformat(f'{game_date}T{time_part}')
    except (TypeError, ValueError):
        return f'{game_date} at {game_time}'

    time_str = when.strftime('%I:%M %p').lstrip('0')
    if when.date() == today:
        return f'Today at {time_str}'
    if when.date() == today + timedelta(days=1):
        return f'Tomorrow at {time_str}'
    return f'{when.strftime("%b")} {when.day} at {time_str}'


def get_game_type_display(game: Game) -> str:
    creator = game.creator_name or 'Player'
    if game.game_type == GameType.SINGLES:
        return f'Singles vs {creator}'
    if game.partner_name:
        return f'Doubles vs {creator} & {game.partner_name}'
    return f'Doubles with {creator} (need partner)'


def get_user_initials(name: Optional[str]) -> str:
    parts = (name or '').split()
    if len(parts) >= 2:
        return f'{parts[0][0]}{parts[-1][0]}'.upper()
    if len(parts) == 1:
        return parts[0][0].upper()
    return 'U'
