from __future__ import annotations

import asyncio
import logging

from .config import load_settings
from .service import RelayService


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs every webhook and balance request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)


async def _main() -> None:
    settings = load_settings()
    configure_logging(settings.log_level)
    await RelayService(settings).run()


def main() -> None:
    try:
        asyncio.run(_main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
