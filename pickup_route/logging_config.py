import logging
from rich.logging import RichHandler

NOISY = ("aiohttp.access", "aiohttp.client")


def configure(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_time=False, show_path=False, markup=False)],
    )
    # request lines drown the routing messages at INFO
    if logging.getLogger().level <= logging.INFO:
        for name in NOISY:
            logging.getLogger(name).setLevel(logging.WARNING)
