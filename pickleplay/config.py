"""Client configuration management."""

import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

from .schemas import AppConfig
from .utils import load_json

# Environment variable -> AppConfig field
ENV_OVERRIDES = {
    'SUPABASE_URL': 'supabase_url',
    'SUPABASE_ANON_KEY': 'supabase_anon_key',
    'PICKLEPLAY_DEFAULT_CITY': 'default_city',
    'PICKLEPLAY_AVATARS_BUCKET': 'avatars_bucket',
    'PICKLEPLAY_STORE_PATH': 'store_path',
}


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """
    Load client configuration.

    Settings come from the JSON file named by ``PICKLEPLAY_CONFIG`` (if set),
    then environment variables (a ``.env`` file in the working directory is
    read first). Configuration is cached after first load.

    Returns:
        AppConfig object with validated settings

    Raises:
        FileNotFoundError: If PICKLEPLAY_CONFIG points to a missing file
        ValueError: If the config file has invalid structure

    Example:
        from pickleplay.config import get_config
        config = get_config()
        print(f"Backend: {config.supabase_url}")
    """
    load_dotenv(Path.cwd() / '.env')

    values = {}
    config_path = os.getenv('PICKLEPLAY_CONFIG')
    if config_path:
        values = load_json(config_path, schema=AppConfig).model_dump()

    for env_key, field_name in ENV_OVERRIDES.items():
        env_value = os.getenv(env_key)
        if env_value:
            values[field_name] = env_value

    return AppConfig(**values)


def get_backend_url() -> str:
    """Get the hosted backend base URL from config."""
    return get_config().supabase_url


def get_default_city() -> str:
    """Get the city used when the profile has none."""
    return get_config().default_city


def clear_config_cache() -> None:
    """
    Clear the configuration cache.

    Use this if the environment or config file changes at runtime.
    """
    get_config.cache_clear()
