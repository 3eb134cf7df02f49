"""Validation functions for wizard input and game submission."""

import re
from datetime import datetime

from .constants import (
    COURT_CLOSE_HOUR,
    COURT_OPEN_HOUR,
    LEVELS,
    NOTES_MAX_LENGTH,
    GameType,
)
from .models import GameDraft


def normalize_phone_number(phone: str) -> str:
    """Strip everything but digits (e.g. '+1 (555) 123-4567' -> '15551234567')."""
    return re.sub(r'\D', '', phone or '')


def validate_phone_number(phone: str | None) -> bool:
    """
    Check a US phone number.

    A blank value is treated as valid here; whether the number is required
    is a separate check made on submission.

    Args:
        phone: Phone number as typed by the user

    Returns:
        True for blank input, 10 digits, or 11 digits with a leading 1
    """
    if not phone or not phone.strip():
        return True

    digits = normalize_phone_number(phone)
    return len(digits) == 10 or (len(digits) == 11 and digits.startswith('1'))


def validate_notes(notes: str | None) -> list[str]:
    """Check the optional notes field against the length limit."""
    if notes and len(notes) > NOTES_MAX_LENGTH:
        return [f'Notes must be {NOTES_MAX_LENGTH} characters or fewer ({len(notes)} entered)']
    return []


def validate_partner_form(first_name: str, last_name: str, level: str) -> list[str]:
    """
    Validate the create-partner form.

    Args:
        first_name: Partner's first name
        last_name: Partner's last name
        level: Partner's skill level id

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = []

    if not first_name or not first_name.strip():
        errors.append("Name Required: Please enter the partner's first name.")
    if not last_name or not last_name.strip():
        errors.append("Last Name Required: Please enter the partner's last name.")
    if not level:
        errors.append("Level Required: Please select the partner's skill level.")
    elif level.lower() not in LEVELS:
        errors.append(f'Invalid level: {level}')

    return errors


def validate_schedule_time(scheduled: datetime, now: datetime | None = None) -> list[str]:
    """
    Validate a chosen game time.

    Checks:
    - The time is not before the moment of scheduling
    - The hour falls within court operating hours (6:00 AM to 11:59 PM)

    Args:
        scheduled: Chosen local date and time
        now: Moment of scheduling (default: current local time)

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = []
    now = now or datetime.now()

    if scheduled < now:
        errors.append('Invalid Time: The game cannot be scheduled in the past.')

    if not COURT_OPEN_HOUR <= scheduled.hour <= COURT_CLOSE_HOUR:
        errors.append(
            'Invalid Time: Courts are open from 6:00 AM to 11:59 PM. '
            'Please select a time within operating hours.'
        )

    return errors


def validate_submission(draft: GameDraft, notes: str | None, phone: str | None) -> list[str]:
    """
    Validate a completed draft before it is handed to the game service.

    Checks:
    - Skill level chosen
    - Phone number present and well-formed
    - Notes within the length limit
    - Earlier steps complete (type, court, time)
    - Doubles games carry a partner

    Args:
        draft: Accumulated wizard draft
        notes: Notes typed on the review step
        phone: Phone number typed on the review step

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = []

    if draft.player_level is None:
        errors.append('Level Required: Please select a skill level before scheduling.')

    if not phone or not phone.strip():
        errors.append('Phone Required: Please enter your phone number to continue.')
    elif not validate_phone_number(phone):
        errors.append('Invalid Phone: Please enter a valid 10-digit US phone number.')

    errors.extend(validate_notes(notes))

    if draft.game_type is None or draft.court_id is None or draft.scheduled_time is None:
        errors.append('Incomplete Information: Please ensure all previous steps are completed.')

    if draft.game_type == GameType.DOUBLES and not draft.has_partner:
        errors.append("Partner Required: Please provide your partner's name for doubles games.")

    return errors
