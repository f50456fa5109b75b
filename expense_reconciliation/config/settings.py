"""
Environment-based settings.

Values are read from the process environment after loading a ``.env``
file, if one exists. Unset variables fall back to the BatchSettings
defaults.
"""

import os
from typing import Callable, Mapping, Optional, TypeVar

from dotenv import load_dotenv

from expense_reconciliation.models import BatchSettings, ConfigurationError, RecognitionConfig

import logging
logger = logging.getLogger(__name__)

T = TypeVar('T')

BATCH_SETTINGS_ENV = {
    'max_concurrency': ('RECON_MAX_CONCURRENCY', int),
    'request_timeout': ('RECON_REQUEST_TIMEOUT', float),
    'retry_attempts': ('RECON_RETRY_ATTEMPTS', int),
    'retry_base_delay': ('RECON_RETRY_BASE_DELAY', float),
    'max_memory_mb': ('RECON_MAX_MEMORY_MB', int),
    'max_file_size_mb': ('RECON_MAX_FILE_SIZE_MB', int),
}


def _read(environ: Mapping[str, str], name: str, convert: Callable[[str], T]) -> Optional[T]:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return convert(raw.strip())
    except ValueError:
        raise ConfigurationError(f"Environment variable {name} has an invalid value: {raw!r}")


def load_batch_settings(environ: Optional[Mapping[str, str]] = None,
                        use_dotenv: bool = True) -> BatchSettings:
    """
    Build BatchSettings from the environment.

    Args:
        environ: Mapping to read instead of ``os.environ``
        use_dotenv: Load a ``.env`` file first (ignored when ``environ`` is given)

    Returns:
        BatchSettings with overrides applied

    Raises:
        ConfigurationError: If a variable holds a malformed number
    """
    if environ is None:
        if use_dotenv:
            load_dotenv()
        environ = os.environ

    overrides = {}
    for field_name, (env_name, convert) in BATCH_SETTINGS_ENV.items():
        value = _read(environ, env_name, convert)
        if value is not None:
            overrides[field_name] = value

    if overrides:
        logger.info(f"Batch settings overridden from environment: {sorted(overrides)}")
    return BatchSettings(**overrides)


def load_recognition_config(environ: Optional[Mapping[str, str]] = None,
                            use_dotenv: bool = True) -> Optional[RecognitionConfig]:
    """
    Build a default RecognitionConfig from the environment.

    Returns:
        RecognitionConfig, or None if ``RECOGNITION_ENDPOINT`` is not set
    """
    if environ is None:
        if use_dotenv:
            load_dotenv()
        environ = os.environ

    endpoint = environ.get('RECOGNITION_ENDPOINT')
    if not endpoint:
        logger.debug("RECOGNITION_ENDPOINT is not set; requests must carry their own api_config")
        return None

    return RecognitionConfig(
        endpoint=endpoint,
        api_key=environ.get('RECOGNITION_API_KEY', ""),
        model=environ.get('RECOGNITION_MODEL', "")
    )
