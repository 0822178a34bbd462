"""Command line entry point."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .app import StartupError, StatsBoardApp
from .config import ConfigError, load_settings


def main() -> None:
    parser = argparse.ArgumentParser(description="Post scanner statistics to Discord channels")
    parser.add_argument("--config", default="config.toml", help="Путь к файлу конфигурации")
    parser.add_argument(
        "--state-file",
        default="message_ids.json",
        help="Файл с идентификаторами опубликованных сводок",
    )
    parser.add_argument("--log-level", default="INFO", help="Уровень логирования")
    args = parser.parse_args()

    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    logging.basicConfig(level=log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        settings = load_settings(Path(args.config))
    except ConfigError as exc:
        parser.error(str(exc))

    logger = logging.getLogger(__name__)
    app = StatsBoardApp(settings=settings, state_path=Path(args.state_file))
    try:
        asyncio.run(app.run())
    except StartupError as exc:
        logger.error("%s", exc)
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Остановка по запросу пользователя")


if __name__ == "__main__":
    main()
