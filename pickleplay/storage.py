"""Avatar upload and the image-picker timeout guard."""

import concurrent.futures
import mimetypes
import time
from pathlib import Path
from typing import Any, Callable, Optional

from .backend import BackendClient
from .constants import AVATARS_BUCKET, PICKER_TIMEOUT_SECONDS
from .errors import BackendError, ErrorKind, PickerTimeoutError, SessionExpiredError
from .logging_config import get_logger
from .models import OperationResult

logger = get_logger(__name__)

BUCKET_MISSING_HINT = (
    'The avatars storage bucket does not exist. '
    'Create the avatars bucket in the storage dashboard and try again.'
)
PICKER_TIMEOUT_MESSAGE = 'Camera launch timeout - this often happens in simulators'


def generate_avatar_filename(source: str | Path, now: Optional[float] = None) -> str:
    """Unique object name for an avatar, keeping the source file's extension."""
    ext = Path(source).suffix.lstrip('.').lower() or 'jpg'
    stamp = int((now if now is not None else time.time()) * 1000)
    return f'avatar_{stamp}.{ext}'


def _is_bucket_missing(error: BackendError) -> bool:
    return error.status_code in (400, 404) and 'bucket' in error.message.lower()


class AvatarUploader:
    """Uploads profile pictures to the avatars bucket."""

    def __init__(self, backend: BackendClient, bucket: str = AVATARS_BUCKET):
        self.backend = backend
        self.bucket = bucket

    def upload_avatar(self, image_path: str | Path, filename: Optional[str] = None) -> OperationResult:
        """
        Upload a local image and return its public URL.

        The signed-in user's token is tried first; if there is no session or
        that upload is rejected, the anonymous key is used.

        Returns:
            OperationResult whose ``value`` is the public URL
        """
        path = Path(image_path)
        try:
            content = path.read_bytes()
        except OSError as e:
            logger.error(f'Cannot read image {path}: {e}')
            return OperationResult.failed(f'Could not read the selected image: {e}', ErrorKind.VALIDATION)

        filename = filename or generate_avatar_filename(path)
        content_type = mimetypes.guess_type(path.name)[0] or 'image/jpeg'

        try:
            token = self.backend.access_token()
        except SessionExpiredError:
            logger.info('No session for avatar upload; using anonymous key')
            token = None

        attempts = [token, None] if token else [None]
        last_error = None
        for attempt_token in attempts:
            try:
                url = self.backend.upload(self.bucket, filename, content, content_type, token=attempt_token)
            except BackendError as e:
                last_error = e
                logger.warning(f'Avatar upload failed ({"user" if attempt_token else "anonymous"} credentials): {e.message}')
                if _is_bucket_missing(e):
                    break
                continue
            logger.info(f'Avatar uploaded: {url}')
            return OperationResult.ok(url)

        if _is_bucket_missing(last_error):
            return OperationResult.failed(BUCKET_MISSING_HINT, last_error.kind)
        return OperationResult.failed(f'Failed to upload profile picture: {last_error.message}', last_error.kind)


def pick_image_with_timeout(launcher: Callable[[], Any], timeout: float = PICKER_TIMEOUT_SECONDS) -> Any:
    """
    Run a native picker and give up if it has not returned in ``timeout`` seconds.

    Raises:
        PickerTimeoutError: If the picker did not return in time
    """
    executor = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix='picker')
    future = executor.submit(launcher)
    try:
        return future.result(timeout=timeout)
    except concurrent.futures.TimeoutError as e:
        logger.error(f'Picker did not respond within {timeout}s')
        raise PickerTimeoutError(PICKER_TIMEOUT_MESSAGE) from e
    finally:
        # A hung picker thread is abandoned rather than joined
        executor.shutdown(wait=False)
