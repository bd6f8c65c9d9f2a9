import logging
from typing import Iterable, Optional, Union


NOISY_LOGGERS = ('aiohttp.access', 'uvicorn.access', 'asyncio')


def resolve_level(level: Union[int, str, None]) -> int:
    if isinstance(level, int):
        return level
    if level:
        named = logging.getLevelName(str(level).strip().upper())
        if isinstance(named, int):
            return named
    return logging.INFO


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_format: Optional[str] = None,
    quiet: Iterable[str] = NOISY_LOGGERS,
) -> None:
    """
    Configure process-wide logging once, from the main entrypoint.

    ``level`` may be a number or a name such as ``"DEBUG"`` read from config.
    Access and event-loop loggers never log below WARNING.
    """
    if logging.getLogger().handlers:
        return

    resolved = resolve_level(level)
    fmt = log_format or "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=resolved, format=fmt)
    for name in quiet:
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))
