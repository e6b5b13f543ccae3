from loguru import logger
from telegram import Update
from telegram.ext import Application, ContextTypes, MessageHandler, filters

from app.bot.router import ConversationRouter
from app.messaging.messenger import Dispatcher


def build_bot_app(token: str, router: ConversationRouter, dispatcher: Dispatcher) -> Application:
    """Polling transport: every text message (commands included) goes through the router."""

    async def handle_message(update: Update, context: ContextTypes.DEFAULT_TYPE):
        if update.message is None or not update.message.text:
            return
        chat_id = str(update.message.chat_id)
        logger.info("Telegram message from {}: {}", chat_id, update.message.text)
        await update.message.chat.send_action("typing")
        outbox = await router.handle(chat_id, update.message.text)
        await dispatcher.dispatch(outbox)

    app = Application.builder().token(token).build()
    app.add_handler(MessageHandler(filters.TEXT, handle_message))
    return app
