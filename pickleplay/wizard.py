"""Create-game wizard.

The wizard is an explicit state machine. ``WizardState`` names the step being
shown, the accumulated draft and the steps already visited; ``transition`` is
a pure function from (state, event) to the next state. ``CreateGameWizard``
owns one state for the lifetime of a creation session and performs the
validation and the final submission around it.

Step order:

    singles: TYPE_SELECT -> LEVEL_SELECT -> COURT_SELECT -> SCHEDULE -> REVIEW
    doubles: TYPE_SELECT -> PARTNER_SELECT [-> CREATE_PARTNER] -> LEVEL_SELECT
             -> COURT_SELECT -> SCHEDULE -> REVIEW

On the doubles path any of LEVEL_SELECT, COURT_SELECT and SCHEDULE whose
field is already filled (e.g. after going back) is skipped.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional, Union

from .constants import GameType, PlayerLevel
from .errors import (
    BackendError,
    DraftValidationError,
    ErrorKind,
    InvalidTransitionError,
)
from .logging_config import get_logger
from .models import GameDraft, OperationResult
from .schemas import Court, NewGame, NewPartner, Partner
from .validators import (
    normalize_phone_number,
    validate_partner_form,
    validate_schedule_time,
    validate_submission,
)

logger = get_logger(__name__)


class WizardStep(str, Enum):
    TYPE_SELECT = 'type_select'
    PARTNER_SELECT = 'partner_select'
    CREATE_PARTNER = 'create_partner'
    LEVEL_SELECT = 'level_select'
    COURT_SELECT = 'court_select'
    SCHEDULE = 'schedule'
    REVIEW = 'review'


SINGLES_SEQUENCE = {
    WizardStep.TYPE_SELECT: WizardStep.LEVEL_SELECT,
    WizardStep.LEVEL_SELECT: WizardStep.COURT_SELECT,
    WizardStep.COURT_SELECT: WizardStep.SCHEDULE,
    WizardStep.SCHEDULE: WizardStep.REVIEW,
}

# Doubles steps that are skipped once their field is filled, in order
DOUBLES_FIELD_STEPS = [
    (WizardStep.LEVEL_SELECT, 'player_level'),
    (WizardStep.COURT_SELECT, 'court_id'),
    (WizardStep.SCHEDULE, 'scheduled_time'),
]


# Events

@dataclass(frozen=True)
class TypeSelected:
    game_type: GameType


@dataclass(frozen=True)
class PartnerSelected:
    partner_name: str
    partner_id: Optional[str] = None


@dataclass(frozen=True)
class CreateNewPartnerChosen:
    pass


@dataclass(frozen=True)
class PartnerCreated:
    partner_name: str
    partner_id: Optional[str] = None


@dataclass(frozen=True)
class LevelSelected:
    level: PlayerLevel


@dataclass(frozen=True)
class CourtSelected:
    court_id: str


@dataclass(frozen=True)
class Scheduled:
    scheduled_time: str


@dataclass(frozen=True)
class StepCompleted:
    """Generic step result: merge ``changes`` into the draft and move on."""
    changes: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Back:
    pass


WizardEvent = Union[
    TypeSelected,
    PartnerSelected,
    CreateNewPartnerChosen,
    PartnerCreated,
    LevelSelected,
    CourtSelected,
    Scheduled,
    StepCompleted,
    Back,
]

ACCEPTED_EVENTS = {
    WizardStep.TYPE_SELECT: (TypeSelected, StepCompleted),
    WizardStep.PARTNER_SELECT: (PartnerSelected, CreateNewPartnerChosen, StepCompleted),
    WizardStep.CREATE_PARTNER: (PartnerCreated, StepCompleted),
    WizardStep.LEVEL_SELECT: (LevelSelected, StepCompleted),
    WizardStep.COURT_SELECT: (CourtSelected, StepCompleted),
    WizardStep.SCHEDULE: (Scheduled, StepCompleted),
    WizardStep.REVIEW: (),
}


@dataclass(frozen=True)
class WizardState:
    step: WizardStep = WizardStep.TYPE_SELECT
    draft: GameDraft = field(default_factory=GameDraft)
    history: tuple[WizardStep, ...] = ()
    is_creating_new_partner: bool = False

    @property
    def cursor(self) -> int:
        """1-based position of the current step along the path taken."""
        return len(self.history) + 1


def _event_changes(event: WizardEvent) -> dict[str, Any]:
    if isinstance(event, TypeSelected):
        return {'game_type': event.game_type}
    if isinstance(event, LevelSelected):
        return {'player_level': event.level}
    if isinstance(event, CourtSelected):
        return {'court_id': event.court_id}
    if isinstance(event, Scheduled):
        return {'scheduled_time': event.scheduled_time}
    if isinstance(event, StepCompleted):
        changes = dict(event.changes)
        try:
            if changes.get('game_type') is not None:
                changes['game_type'] = GameType(changes['game_type'])
            if changes.get('player_level') is not None:
                changes['player_level'] = PlayerLevel(str(changes['player_level']).lower())
        except ValueError as e:
            raise InvalidTransitionError(str(e)) from e
        return changes
    return {}


def next_step(step: WizardStep, draft: GameDraft, creating_partner: bool = False) -> WizardStep:
    """
    Decide which step follows ``step`` for the given draft.

    Raises:
        InvalidTransitionError: If the draft does not say which path to take
    """
    if step == WizardStep.REVIEW:
        raise InvalidTransitionError('Review is the last step')

    if draft.game_type is None:
        raise InvalidTransitionError('Choose singles or doubles first')

    if draft.game_type == GameType.SINGLES:
        if step not in SINGLES_SEQUENCE:
            raise InvalidTransitionError(f'Step {step.value} is not part of a singles game')
        return SINGLES_SEQUENCE[step]

    if step == WizardStep.TYPE_SELECT:
        return WizardStep.PARTNER_SELECT
    if step == WizardStep.PARTNER_SELECT and creating_partner:
        return WizardStep.CREATE_PARTNER

    # Fields owned by steps at or before the current one don't cause a skip back
    order = [s for s, _ in DOUBLES_FIELD_STEPS]
    remaining = DOUBLES_FIELD_STEPS[order.index(step) + 1:] if step in order else DOUBLES_FIELD_STEPS
    for candidate, field_name in remaining:
        if getattr(draft, field_name) is None:
            return candidate
    return WizardStep.REVIEW


def transition(state: WizardState, event: WizardEvent) -> WizardState:
    """
    Apply one user action to the wizard state.

    Args:
        state: Current state
        event: User action from the step currently shown

    Returns:
        New state; ``state`` is not modified

    Raises:
        InvalidTransitionError: If the current step does not accept ``event``
    """
    if isinstance(event, Back):
        if not state.history:
            raise InvalidTransitionError('Already at the first step')
        return WizardState(
            step=state.history[-1],
            draft=state.draft,
            history=state.history[:-1],
            is_creating_new_partner=False,
        )

    if not isinstance(event, ACCEPTED_EVENTS[state.step]):
        raise InvalidTransitionError(f'{type(event).__name__} is not valid on step {state.step.value}')

    if isinstance(event, CreateNewPartnerChosen):
        creating = True
    elif isinstance(event, (PartnerSelected, PartnerCreated)):
        creating = False
    else:
        creating = state.is_creating_new_partner

    if isinstance(event, (PartnerSelected, PartnerCreated)):
        draft = state.draft.with_partner(event.partner_name, event.partner_id)
    else:
        draft = state.draft.merge(**_event_changes(event))
    return WizardState(
        step=next_step(state.step, draft, creating),
        draft=draft,
        history=state.history + (state.step,),
        is_creating_new_partner=creating,
    )


@dataclass
class SubmissionOutcome:
    """Result of the review step's submit action."""
    success: bool
    game_id: Optional[str] = None
    message: Optional[str] = None
    kind: Optional[ErrorKind] = None
    errors: list[str] = field(default_factory=list)
    stale: bool = False

    @property
    def requires_login(self) -> bool:
        return self.kind == ErrorKind.SESSION_EXPIRED


def to_local_datetime(value: Union[str, datetime]) -> datetime:
    """Parse an ISO-8601 timestamp (or datetime) into naive local time."""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError as e:
            raise DraftValidationError(f'Invalid date and time: {value}') from e
    if value.tzinfo is not None:
        value = value.astimezone().replace(tzinfo=None)
    return value


class CreateGameWizard:
    """
    Controller for one create-game session.

    Collaborators:
        auth: object with ``get_current_user()`` and ``get_profile(user_id)``
        games: object with ``create_game(NewGame) -> OperationResult``
        partners: optional object with ``create_partner(user_id, NewPartner)``;
            when given, partners created in the wizard are also saved
    """

    def __init__(
        self,
        auth,
        games,
        courts: Optional[list[Court]] = None,
        partners=None,
        on_game_created: Optional[Callable[[str], None]] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.auth = auth
        self.games = games
        self.partners = partners
        self.courts = list(courts or [])
        self.on_game_created = on_game_created
        self.clock = clock
        self.state = WizardState()
        self._generation = 0
        self.is_submitting = False

    @property
    def step(self) -> WizardStep:
        return self.state.step

    @property
    def cursor(self) -> int:
        return self.state.cursor

    @property
    def draft(self) -> GameDraft:
        return self.state.draft

    @property
    def is_creating_new_partner(self) -> bool:
        return self.state.is_creating_new_partner

    def dispatch(self, event: WizardEvent) -> WizardState:
        self.state = transition(self.state, event)
        logger.debug(f'Wizard moved to {self.state.step.value} (cursor {self.state.cursor})')
        return self.state

    def advance(self) -> WizardState:
        """Move to the next step without changing the draft."""
        return self.dispatch(StepCompleted())

    def retreat(self) -> bool:
        """Go back one step. Returns False when already on the first step."""
        try:
            self.dispatch(Back())
        except InvalidTransitionError:
            return False
        return True

    def apply_step_result(self, **changes: Any) -> WizardState:
        """Merge ``changes`` into the draft (never clearing set fields) and advance."""
        return self.dispatch(StepCompleted(changes))

    def close(self) -> None:
        """Discard the draft; any submission still in flight is ignored."""
        self._generation += 1
        self.state = WizardState()
        self.is_submitting = False

    def set_courts(self, courts: list[Court]) -> None:
        self.courts = list(courts)

    # Step callbacks

    def select_type(self, game_type: Union[GameType, str]) -> WizardState:
        try:
            game_type = GameType(game_type)
        except ValueError as e:
            raise DraftValidationError(f'Invalid game type: {game_type}') from e
        return self.dispatch(TypeSelected(game_type))

    def select_partner(self, partner: Union[Partner, str]) -> WizardState:
        if isinstance(partner, Partner):
            return self.dispatch(PartnerSelected(partner.partner_name, partner.id))
        if not partner or not partner.strip():
            raise DraftValidationError('Partner Required: Please choose a partner.')
        return self.dispatch(PartnerSelected(partner.strip()))

    def choose_create_partner(self) -> WizardState:
        return self.dispatch(CreateNewPartnerChosen())

    def create_partner(self, first_name: str, last_name: str, level: str) -> WizardState:
        """
        Attach a newly entered partner to the draft.

        Raises:
            DraftValidationError: If the form is incomplete
        """
        errors = validate_partner_form(first_name, last_name, level)
        if errors:
            raise DraftValidationError(errors[0])

        full_name = f'{first_name.strip()} {last_name.strip()}'
        partner_id = self._save_partner(full_name, PlayerLevel(level.lower()))
        return self.dispatch(PartnerCreated(full_name, partner_id))

    def _save_partner(self, full_name: str, level: PlayerLevel) -> Optional[str]:
        if self.partners is None:
            return None
        try:
            user = self.auth.get_current_user()
            if user is None:
                return None
            result = self.partners.create_partner(user.id, NewPartner(partner_name=full_name, partner_level=level))
        except BackendError as e:
            logger.warning(f'Could not save partner {full_name}: {e.message}')
            return None
        if not result.success:
            logger.warning(f'Could not save partner {full_name}: {result.error}')
            return None
        return result.value

    def select_level(self, level: Union[PlayerLevel, str]) -> WizardState:
        try:
            level = PlayerLevel(level.lower() if isinstance(level, str) else level)
        except ValueError as e:
            raise DraftValidationError(f'Invalid skill level: {level}') from e
        return self.dispatch(LevelSelected(level))

    def select_court(self, court_id: str) -> WizardState:
        if not court_id:
            raise DraftValidationError('Court Required: Please choose a court.')
        if self.courts and self.find_court(court_id) is None:
            raise DraftValidationError(f'Unknown court: {court_id}')
        return self.dispatch(CourtSelected(court_id))

    def schedule(self, when: Union[str, datetime]) -> WizardState:
        """
        Record the chosen date and time.

        Raises:
            DraftValidationError: If no skill level is set yet, or the time is
                in the past or outside court hours
        """
        if self.draft.player_level is None:
            raise DraftValidationError('Level Required: Please select a skill level before scheduling.')

        scheduled = to_local_datetime(when).replace(second=0, microsecond=0)
        errors = validate_schedule_time(scheduled, now=self.clock())
        if errors:
            raise DraftValidationError(errors[0])

        return self.dispatch(Scheduled(scheduled.isoformat()))

    # Submission

    def find_court(self, court_id: Optional[str]) -> Optional[Court]:
        return next((c for c in self.courts if c.id == court_id), None)

    def build_game_record(self, creator_id: str, notes: Optional[str], phone: str) -> NewGame:
        """Convert the finished draft into the record sent to the game service."""
        draft = self.draft
        scheduled = to_local_datetime(draft.scheduled_time)
        court = self.find_court(draft.court_id)
        is_doubles = draft.game_type == GameType.DOUBLES

        notes = (notes or '').strip() or (
            f'Looking for {draft.game_type.value} players at {draft.player_level.value} level'
        )

        return NewGame(
            creator_id=creator_id,
            game_type=draft.game_type,
            skill_level=draft.player_level,
            court_id=draft.court_id,
            venue_name=court.name if court else 'Unknown Court',
            venue_address=court.address if court else '',
            city=court.city if court else '',
            scheduled_date=scheduled.strftime('%Y-%m-%d'),
            scheduled_time=scheduled.strftime('%H:%M'),
            notes=notes,
            phone_number=normalize_phone_number(phone),
            partner_name=draft.partner_name if is_doubles else None,
            partner_id=draft.partner_id if is_doubles else None,
            max_players=4 if is_doubles else 2,
            current_players=2 if is_doubles and draft.has_partner else 1,
        )

    def submit(self, notes: Optional[str], phone: Optional[str]) -> SubmissionOutcome:
        """
        Validate the draft and create the game.

        Validation failures never reach the game service. Backend failures
        leave the draft intact so the user can retry; on success the draft is
        discarded and ``on_game_created`` receives the new id.
        """
        if self.step != WizardStep.REVIEW:
            return SubmissionOutcome(
                success=False,
                kind=ErrorKind.VALIDATION,
                message='Incomplete Information: Please ensure all previous steps are completed.',
            )

        errors = validate_submission(self.draft, notes, phone)
        if errors:
            return SubmissionOutcome(success=False, kind=ErrorKind.VALIDATION, message=errors[0], errors=errors)

        self.state = WizardState(
            step=self.state.step,
            draft=self.draft.merge(notes=(notes or '').strip() or None, phone_number=normalize_phone_number(phone)),
            history=self.state.history,
            is_creating_new_partner=self.state.is_creating_new_partner,
        )

        generation = self._generation
        self.is_submitting = True
        try:
            result = self._create_game(notes, phone)
        finally:
            if generation == self._generation:
                self.is_submitting = False

        if generation != self._generation:
            logger.info('Wizard closed during submission; ignoring result')
            return SubmissionOutcome(success=result.success, game_id=result.value, stale=True)

        if result.success:
            game_type = self.draft.game_type.value
            self.state = WizardState()
            if self.on_game_created:
                self.on_game_created(result.value)
            return SubmissionOutcome(
                success=True,
                game_id=result.value,
                message=f'Game Created! Your {game_type} game has been scheduled successfully.',
            )

        if result.session_expired:
            return SubmissionOutcome(
                success=False,
                kind=ErrorKind.SESSION_EXPIRED,
                message='Session Expired: Please log in again to create a game.',
            )

        return SubmissionOutcome(
            success=False,
            kind=result.kind or ErrorKind.EXTERNAL,
            message=f'Creation Failed: {result.error or "Could not create game. Please try again."}',
        )

    def _create_game(self, notes: Optional[str], phone: str) -> OperationResult:
        try:
            user = self.auth.get_current_user()
            profile = self.auth.get_profile(user.id) if user else None
            if user is None or profile is None:
                return OperationResult.failed('Please log in to create a game.', ErrorKind.SESSION_EXPIRED)

            record = self.build_game_record(user.id, notes, phone)
            return self.games.create_game(record)
        except BackendError as e:
            logger.error(f'Error creating game: {e.message}')
            return OperationResult.failed(e.message, e.kind)
