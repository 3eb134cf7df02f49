"""Account sign-up, sign-in and profile access."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .backend import BackendClient
from .constants import PROFILES_TABLE
from .errors import BackendError, ErrorKind
from .logging_config import get_logger
from .models import AuthUser, OperationResult
from .schemas import Profile

logger = get_logger(__name__)

# Backend message fragment -> message shown to the user
SIGN_IN_MESSAGES = {
    'Invalid login credentials': 'Invalid email or password. Please check your credentials and try again.',
    'Email not confirmed': 'Please check your email and confirm your account before signing in.',
    'Too many requests': 'Too many login attempts. Please wait a moment and try again.',
}


def friendly_sign_in_error(message: str) -> str:
    for fragment, friendly in SIGN_IN_MESSAGES.items():
        if fragment in message:
            return friendly
    return message or 'Error signing in'


@dataclass
class AuthResult:
    success: bool
    user: Optional[AuthUser] = None
    profile: Optional[Profile] = None
    error: Optional[str] = None


class AuthService:
    """Sign-in state and the signed-in user's profile."""

    def __init__(self, backend: BackendClient):
        self.backend = backend

    def get_current_user(self) -> Optional[AuthUser]:
        return self.backend.get_user()

    def get_profile(self, user_id: str) -> Optional[Profile]:
        """
        Profile for ``user_id``.

        The sign-in record's metadata is used when it belongs to this user;
        otherwise the profiles table is read. Returns None if neither has it.
        """
        record = self.backend.get_user_record()
        if record and record.get('id') == user_id:
            metadata = record.get('user_metadata') or {}
            first_name = metadata.get('first_name') or 'User'
            last_name = metadata.get('last_name') or ''
            return Profile(
                id=user_id,
                email=record.get('email') or '',
                first_name=first_name,
                last_name=last_name,
                full_name=f'{first_name} {last_name}'.strip(),
                pickleball_level=metadata.get('pickleball_level') or 'beginner',
                city=metadata.get('city'),
                avatar_url=metadata.get('avatar_url'),
                created_at=record.get('created_at'),
                updated_at=record.get('updated_at'),
            )

        try:
            row = self.backend.query(PROFILES_TABLE, filters={'id': user_id}, single=True)
        except BackendError as e:
            logger.error(f'Error fetching profile for {user_id}: {e.message}')
            return None
        return Profile.model_validate(row) if row else None

    def sign_up(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        level: str,
        city: Optional[str] = None,
    ) -> AuthResult:
        """
        Create an account and its profile.

        The profile is written directly when the backend did not create one
        for the new user.
        """
        metadata = {'first_name': first_name, 'last_name': last_name, 'pickleball_level': level.lower()}
        if city:
            metadata['city'] = city

        try:
            payload = self.backend.sign_up(email, password, metadata)
        except BackendError as e:
            logger.error(f'Signup error: {e.message}')
            return AuthResult(success=False, error=e.message or 'Error creating account')

        user_data = payload.get('user') or (payload if payload.get('id') else None)
        if not user_data:
            return AuthResult(success=False, error='No user data returned')

        user = AuthUser(id=user_data['id'], email=user_data.get('email') or email)
        logger.info(f'User created: {user.id}')

        profile = self.get_profile(user.id)
        if profile is None:
            profile = Profile(
                id=user.id,
                email=user.email,
                first_name=first_name,
                last_name=last_name,
                full_name=f'{first_name} {last_name}'.strip(),
                pickleball_level=level.lower(),
                city=city,
                created_at=datetime.now().isoformat(),
            )
            try:
                self.backend.insert(PROFILES_TABLE, profile.model_dump(exclude={'full_name', 'created_at', 'updated_at'}))
            except BackendError as e:
                # Confirmation-pending accounts have no session to write with
                logger.warning(f'Could not create profile row: {e.message}')

        return AuthResult(success=True, user=user, profile=profile)

    def sign_in(self, email: str, password: str) -> AuthResult:
        try:
            self.backend.sign_in(email, password)
        except BackendError as e:
            logger.error(f'Sign-in error: {e.message}')
            return AuthResult(success=False, error=friendly_sign_in_error(e.message))

        user = self.backend.get_user()
        if user is None:
            return AuthResult(
                success=False,
                error='No user data returned from signin. Please check your credentials.',
            )

        profile = self.get_profile(user.id)
        if profile is None:
            return AuthResult(success=False, user=user, error='User profile not found. Please contact support.')

        logger.info(f'User signed in: {user.id}')
        return AuthResult(success=True, user=user, profile=profile)

    def sign_out(self) -> OperationResult:
        self.backend.sign_out()
        return OperationResult.ok()

    def refresh_session(self) -> bool:
        return self.backend.refresh_session() is not None

    def update_profile(self, user_id: str, updates: dict) -> OperationResult:
        try:
            self.backend.update(PROFILES_TABLE, updates, {'id': user_id})
        except BackendError as e:
            logger.error(f'Error updating profile: {e.message}')
            return OperationResult.failed(e.message or 'Error updating profile', e.kind)
        return OperationResult.ok()

    def update_password(self, new_password: str) -> OperationResult:
        if len(new_password) < 6:
            return OperationResult.failed('Password must be at least 6 characters.', ErrorKind.VALIDATION)
        try:
            self.backend.update_user({'password': new_password})
        except BackendError as e:
            logger.error(f'Error updating password: {e.message}')
            return OperationResult.failed(e.message, e.kind)
        return OperationResult.ok()
