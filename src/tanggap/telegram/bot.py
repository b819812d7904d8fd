import logging

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode

from tanggap.config import settings
from tanggap.telegram.handlers import setup_handlers

logger = logging.getLogger(__name__)


class OperatorBot:
    def __init__(self, token: str | None = None):
        self.token = token or settings.telegram_bot_token
        self.bot = Bot(
            token=self.token,
            default=DefaultBotProperties(parse_mode=ParseMode.HTML, link_preview_is_disabled=True),
        )
        self.dp = Dispatcher()
        setup_handlers(self.dp)

    async def start(self) -> None:
        logger.info("Starting operator bot...")
        try:
            await self.dp.start_polling(self.bot)
        finally:
            await self.bot.session.close()

    async def stop(self) -> None:
        await self.dp.stop_polling()
        await self.bot.session.close()
