"""
Family Calendar Assistant — Entry Point.

Single entry point: `python main.py` starts the bot for the messenger
selected by MESSENGER_PROVIDER (signal | telegram).
"""

import logging

from famcal.config import settings

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
# httpx logs every poll request at INFO
logging.getLogger("httpx").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def main() -> None:
    if settings.MESSENGER_PROVIDER == "telegram":
        from famcal.bot.telegram_bot import main as run_bot
    elif settings.MESSENGER_PROVIDER == "signal":
        from famcal.bot.signal_bot import main as run_bot
    else:
        raise SystemExit(
            f"ERROR: Unknown MESSENGER_PROVIDER={settings.MESSENGER_PROVIDER!r}. "
            "Supported: signal, telegram"
        )
    run_bot()


if __name__ == "__main__":
    main()
