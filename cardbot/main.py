import sys
from pathlib import Path
sys.path.append(str(Path(__file__).resolve().parent.parent))


import asyncio
import logging

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.types import BotCommand

from cardbot.config import Config, load_config
from cardbot.handlers import router
from cardbot.service import CardIssuer
from cardbot.utils.ledger import Ledger
from cardbot.utils.storage import CardStore

logger = logging.getLogger(__name__)


def build_issuer(config: Config) -> CardIssuer:
    if not config.background_path.is_file():
        # Issuance fails with MissingAssetError until the template is in place.
        logger.error("Card background %s not found", config.background_path)
    return CardIssuer(
        store=CardStore(config.cards_dir, config.mirror_dir),
        ledger=Ledger(config.ledger_file),
        background_path=config.background_path,
        counter_file=config.counter_file,
        font_path=config.font_path,
    )


async def set_commands(bot: Bot) -> None:
    await bot.set_my_commands([
        BotCommand(command="start", description="Start"),
        BotCommand(command="new", description="Nowa karta mieszkańca"),
        BotCommand(command="edit", description="Korekta wpisu w rejestrze"),
        BotCommand(command="card", description="Podgląd karty po numerze"),
        BotCommand(command="cancel", description="Przerwij operację"),
    ])


async def main() -> None:
    config = load_config()
    bot = Bot(
        token=config.bot_token,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML),
    )
    dp = Dispatcher(issuer=build_issuer(config))
    dp.include_router(router)

    await set_commands(bot)
    logger.info("🤖 Bot started. Cards: %s, mirror: %s", config.cards_dir, config.mirror_dir)
    await dp.start_polling(bot)


def run() -> None:
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())


if __name__ == "__main__":
    run()
