"""Telegram relay bot: forwards chat commands and text to the active Claude session."""

import asyncio
import logging
import re
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from telegram import Update
from telegram.error import Conflict, TelegramError
from telegram.ext import (
    Application,
    CommandHandler,
    MessageHandler,
    ContextTypes,
    filters,
)

from .config import AppConfig, ConfigError, save_chat_id
from .formatter import chunk_lines, escape_html, truncate_tail
from .screen_parser import find_plan_path, strip_ansi
from .session_registry import SessionRegistry
from .tmux_controller import TmuxController, TmuxError

logger = logging.getLogger(__name__)

SESSION_NAME_RE = re.compile(r'^[a-zA-Z0-9][a-zA-Z0-9-]*$')
OPTION_COMMAND_RE = re.compile(r'^/(\d+)$')

TELEGRAM_MAX_MESSAGE = 4096
SCREEN_LINES = 40
SCREEN_MAX_CHARS = 3800
PLAN_CHUNK_CHARS = 3800

HELP_TEXT = "\n".join([
    "<b>claude-tg commands:</b>",
    "",
    "/allow - Approve a permission prompt",
    "/deny - Deny a permission prompt",
    "/1, /2, ... - Select a numbered option",
    "/stop - Send Ctrl+C to interrupt Claude",
    "/escape - Send Escape key",
    "/status - Show all active sessions",
    "/sessions - Same as /status",
    "/switch &lt;name&gt; - Switch active session",
    "/rename &lt;name&gt; - Rename the active session",
    "/screen - Show recent terminal output",
    "/plan - View the current plan",
    "/help - Show this message",
    "",
    "Any other text is sent as input to the active Claude session.",
])


class TelegramBot:
    """Telegram relay for claude-tg sessions."""

    def __init__(
        self,
        config: AppConfig,
        registry: SessionRegistry,
        tmux: TmuxController,
    ):
        """
        Initialize the relay.

        Args:
            config: Loaded configuration (token, chat id, paths)
            registry: Shared session registry
            tmux: Terminal bridge used to drive sessions
        """
        self.config = config
        self.registry = registry
        self.tmux = tmux
        self.application: Optional[Application] = None
        self.bot = None

        # Messages sent before this instant were queued while no relay was polling.
        # Whole seconds, matching the precision of Telegram message dates.
        self.started_at = datetime.now(timezone.utc).replace(microsecond=0)
        self.exit_code = 0
        self.stop_event = asyncio.Event()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _reply(self, update: Update, text: str, html: bool = False):
        await update.effective_message.reply_text(text, parse_mode="HTML" if html else None)

    async def _check_chat(self, update: Update) -> bool:
        """Filter stale messages, register the first chat, and reject others."""
        message = update.effective_message
        if message is None or update.effective_chat is None:
            return False

        if message.date < self.started_at:
            logger.debug(f"Ignoring message sent before bot start: {message.date}")
            return False

        chat_id = update.effective_chat.id
        if not self.config.chat_id:
            try:
                save_chat_id(self.config, chat_id)
            except (OSError, ConfigError) as e:
                logger.error(f"Failed to save chat id {chat_id}: {e}")
                await self._reply(update, f"❌ Failed to save chat id: {e}")
                return False
            await self._reply(
                update,
                "✅ Chat ID saved. You will now receive Claude Code notifications here.\n\n"
                "Send /help to see available commands.",
            )
            return False

        if str(chat_id) != str(self.config.chat_id):
            logger.warning(f"Unauthorized: chat_id={chat_id}")
            await self._reply(update, "⛔ Unauthorized. This bot is configured for a different chat.")
            return False

        return True

    async def _live_session(self, update: Update, unregister_dead: bool = False) -> Optional[str]:
        """Active session name if it is still running; replies with a warning otherwise."""
        active = self.registry.get_active()
        if not active:
            await self._reply(update, "⚠️ No active sessions. Start one with: <code>claude-tg</code>", html=True)
            return None

        if not self.tmux.session_exists(active):
            if unregister_dead:
                self.registry.unregister(active)
            await self._reply(
                update,
                f"⚠️ Session <code>{escape_html(active)}</code> is no longer running.",
                html=True,
            )
            return None

        return active

    def _log_command(self, update: Update):
        text = update.effective_message.text or ""
        if text.startswith("/"):
            logger.info(f"[{self.registry.load().active or '-'}] command: {text.split()[0]}")

    async def _send_control(self, update: Update, action, done_text: str):
        """Shared body of /stop, /allow, /deny and /escape."""
        if not await self._check_chat(update):
            return
        self._log_command(update)
        active = await self._live_session(update)
        if not active:
            return

        try:
            action(active)
            await self._reply(update, done_text.format(name=escape_html(active)), html=True)
        except TmuxError as e:
            logger.error(f"[{active}] control key failed: {e}")
            await self._reply(update, f"❌ Failed: {e}")

    async def send_long_message(self, update: Update, title: str, content: str):
        """Send ``content`` in <pre> blocks, split on line boundaries if too long."""
        escaped = escape_html(content)
        single = f"<b>{title}</b>\n<pre>{escaped}</pre>"
        if len(single) <= TELEGRAM_MAX_MESSAGE:
            await self._reply(update, single, html=True)
            return

        chunks = chunk_lines(escaped, PLAN_CHUNK_CHARS)
        await self._reply(update, f"<b>{title}</b>\n<pre>{chunks[0]}</pre>", html=True)
        for chunk in chunks[1:]:
            await self._reply(update, f"<pre>{chunk}</pre>", html=True)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def _cmd_help(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /help (and /start)."""
        if not await self._check_chat(update):
            return
        await self._reply(update, HELP_TEXT, html=True)

    async def _cmd_stop(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /stop - interrupt Claude with Ctrl+C."""
        await self._send_control(update, self.tmux.send_interrupt, "⏹ [{name}] Sent Ctrl+C")

    async def _cmd_allow(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /allow - confirm the highlighted (first) permission option."""
        await self._send_control(update, self.tmux.send_enter, "✅ [{name}] Approved permission")

    async def _cmd_deny(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /deny - dismiss the permission dialog."""
        await self._send_control(update, self.tmux.send_escape, "❌ [{name}] Denied permission")

    async def _cmd_escape(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /escape."""
        await self._send_control(update, self.tmux.send_escape, "⏹ [{name}] Sent Escape")

    async def _cmd_status(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /status and /sessions - list live sessions."""
        if not await self._check_chat(update):
            return

        registry = self.registry.list_sessions()
        if not registry.sessions:
            await self._reply(update, "🔴 No active sessions.")
            return

        lines = [f"🟢 <b>{len(registry.sessions)} active session(s):</b>", ""]
        for name in registry.sessions:
            icon = "🟢" if self.tmux.session_exists(name) else "🔴"
            if name == registry.active:
                lines.append(f"{icon} <code>{escape_html(name)}</code> ◀ active")
            else:
                lines.append(f"{icon} <code>/switch {escape_html(name)}</code>")

        await self._reply(update, "\n".join(lines), html=True)

    async def _cmd_switch(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /switch <name>."""
        if not await self._check_chat(update):
            return
        self._log_command(update)

        if not context.args:
            await self._reply(update, "Usage: <code>/switch claude-0214-1352</code>", html=True)
            return

        target = context.args[0]
        registry = self.registry.list_sessions()
        if target not in registry.sessions:
            available = ", ".join(f"<code>{escape_html(n)}</code>" for n in registry.sessions)
            await self._reply(
                update,
                f"⚠️ Session <code>{escape_html(target)}</code> not found.\n\nAvailable: {available}",
                html=True,
            )
            return

        self.registry.set_active(target)
        await self._reply(update, f"✅ Switched to <code>{escape_html(target)}</code>", html=True)

    async def _cmd_rename(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /rename <name> - rename the active session in tmux and the registry."""
        if not await self._check_chat(update):
            return
        self._log_command(update)

        if not context.args:
            await self._reply(update, "Usage: <code>/rename my-project</code>", html=True)
            return

        new_name = context.args[0]
        if not SESSION_NAME_RE.match(new_name):
            await self._reply(update, "⚠️ Invalid name. Use only letters, numbers, and hyphens.")
            return

        active = self.registry.get_active()
        if not active:
            await self._reply(update, "⚠️ No active sessions.")
            return

        if new_name in self.registry.load().sessions:
            await self._reply(
                update,
                f"⚠️ Name <code>{escape_html(new_name)}</code> is already in use.",
                html=True,
            )
            return

        try:
            self.tmux.rename_session(active, new_name)
        except TmuxError as e:
            logger.error(f"[{active}] rename failed: {e}")
            await self._reply(update, f"❌ Failed to rename: {e}")
            return

        try:
            renamed = self.registry.rename(active, new_name)
        except OSError as e:
            logger.error(f"[{active}] registry rename failed: {e}")
            renamed = False

        if not renamed:
            # Put tmux back so the registry and tmux still agree
            try:
                self.tmux.rename_session(new_name, active)
            except TmuxError as e:
                logger.error(f"[{new_name}] could not restore tmux name {active}: {e}")
            await self._reply(update, "❌ Failed to rename: session list changed, try again.")
            return

        await self._reply(
            update,
            f"✅ Renamed <code>{escape_html(active)}</code> → <code>{escape_html(new_name)}</code>",
            html=True,
        )

    async def _cmd_screen(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /screen - show the bottom of the terminal."""
        if not await self._check_chat(update):
            return
        self._log_command(update)
        active = await self._live_session(update)
        if not active:
            return

        try:
            output = strip_ansi(self.tmux.capture_pane(active, SCREEN_LINES)).strip()
        except TmuxError as e:
            logger.error(f"[{active}] screen capture failed: {e}")
            await self._reply(update, f"❌ Failed to capture screen: {e}")
            return

        if not output:
            await self._reply(update, f"<i>[{escape_html(active)}] Screen is empty</i>", html=True)
            return

        await self._reply(
            update,
            f"<b>[{escape_html(active)}]</b>\n<pre>{escape_html(truncate_tail(output, SCREEN_MAX_CHARS))}</pre>",
            html=True,
        )

    async def _cmd_plan(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /plan - send the plan file referenced by the approval prompt."""
        if not await self._check_chat(update):
            return
        self._log_command(update)
        active = await self._live_session(update)
        if not active:
            return

        try:
            plan_ref = find_plan_path(self.tmux.capture_pane(active, 50))
            if not plan_ref:
                await self._reply(
                    update,
                    "⚠️ No plan file found in terminal. Is there a plan approval prompt visible?",
                )
                return

            content = Path(plan_ref).expanduser().read_text(encoding="utf-8").strip()
        except (TmuxError, OSError) as e:
            logger.error(f"[{active}] plan read failed: {e}")
            await self._reply(update, f"❌ Failed to read plan: {e}")
            return

        if not content:
            await self._reply(update, "<i>Plan file is empty.</i>", html=True)
            return

        logger.info(f"[{active}] viewed plan: {plan_ref}")
        await self.send_long_message(update, f"📋 [{escape_html(active)}] Plan", content)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def _handle_option(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /1, /2, ... - pick a numbered option in the on-screen menu."""
        if not await self._check_chat(update):
            return
        self._log_command(update)
        m = OPTION_COMMAND_RE.match(update.effective_message.text or "")
        if not m:
            return
        number = int(m.group(1))

        active = await self._live_session(update)
        if not active:
            return

        try:
            self.tmux.select_option(active, number)
            logger.info(f"[{active}] selected option {number}")
            await self._reply(update, f"✅ [{escape_html(active)}] Selected option {number}", html=True)
        except TmuxError as e:
            logger.error(f"[{active}] select option failed: {e}")
            await self._reply(update, f"❌ Failed: {e}")

    async def _handle_text(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Forward free text (and unknown slash commands) to the active session."""
        if not await self._check_chat(update):
            return
        text = update.effective_message.text
        if not text:
            return
        self._log_command(update)

        active = await self._live_session(update, unregister_dead=True)
        if not active:
            return

        try:
            self.tmux.send_keys(active, text)
            logger.info(f"[{active}] input sent to tmux")
            await self._reply(
                update,
                f"📤 [{escape_html(active)}] Sent:\n<code>{escape_html(text)}</code>",
                html=True,
            )
        except TmuxError as e:
            logger.error(f"[{active}] send_keys failed: {e}")
            await self._reply(update, f"❌ Failed to send: {e}")

    async def _handle_photo(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Save a photo to the uploads dir and point Claude at it."""
        if not await self._check_chat(update):
            return
        message = update.effective_message
        if not message.photo:
            return

        active = await self._live_session(update, unregister_dead=True)
        if not active:
            return

        photo = message.photo[-1]  # largest size
        caption = message.caption or ""

        try:
            uploads_dir = self.config.uploads_path
            uploads_dir.mkdir(parents=True, exist_ok=True)

            tg_file = await context.bot.get_file(photo.file_id)
            ext = Path(tg_file.file_path or "").suffix or ".jpg"
            filename = f"telegram-{int(time.time() * 1000)}{ext}"
            save_path = uploads_dir / filename
            await tg_file.download_to_drive(save_path)

            text = f"{caption} (see image: {save_path})" if caption else f"Please look at this image: {save_path}"
            self.tmux.send_keys(active, text)
        except (TelegramError, OSError, TmuxError) as e:
            logger.error(f"[{active}] photo download failed: {e}")
            await self._reply(update, f"❌ Failed to download photo: {e}")
            return

        await self._reply(
            update,
            f"📷 [{escape_html(active)}] Saved photo to <code>{escape_html(filename)}</code> and sent to Claude.",
            html=True,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _on_polling_error(self, error: TelegramError):
        """Called by the updater for every polling failure."""
        if isinstance(error, Conflict):
            logger.error("Another bot instance is running with the same token, exiting")
            self.exit_code = 1
            self.stop_event.set()
            return
        logger.error(f"Polling error: {error}")

    def _register_handlers(self):
        app = self.application
        app.add_handler(CommandHandler("start", self._cmd_help))
        app.add_handler(CommandHandler("help", self._cmd_help))
        app.add_handler(CommandHandler("stop", self._cmd_stop))
        app.add_handler(CommandHandler("allow", self._cmd_allow))
        app.add_handler(CommandHandler("deny", self._cmd_deny))
        app.add_handler(CommandHandler("escape", self._cmd_escape))
        app.add_handler(CommandHandler("status", self._cmd_status))
        app.add_handler(CommandHandler("sessions", self._cmd_status))
        app.add_handler(CommandHandler("switch", self._cmd_switch))
        app.add_handler(CommandHandler("rename", self._cmd_rename))
        app.add_handler(CommandHandler("screen", self._cmd_screen))
        app.add_handler(CommandHandler("plan", self._cmd_plan))

        new_messages = filters.UpdateType.MESSAGE
        app.add_handler(MessageHandler(new_messages & filters.Regex(OPTION_COMMAND_RE), self._handle_option))
        app.add_handler(MessageHandler(new_messages & filters.PHOTO, self._handle_photo))
        # Unknown slash commands (/compact, /clear, ...) are forwarded as input
        app.add_handler(MessageHandler(new_messages & filters.TEXT, self._handle_text))

    async def start(self):
        """Start polling."""
        self.application = Application.builder().token(self.config.bot_token).build()
        self.bot = self.application.bot
        self._register_handlers()

        await self.application.initialize()
        await self.application.start()
        await self.application.updater.start_polling(error_callback=self._on_polling_error)
        logger.info("Telegram bot started")

    async def stop(self):
        """Stop polling. In-flight handlers are not awaited."""
        if self.application:
            await self.application.updater.stop()
            await self.application.stop()
            await self.application.shutdown()
            logger.info("Telegram bot stopped")

    async def run(self) -> int:
        """Poll until stopped; returns the process exit code."""
        await self.start()
        try:
            await self.stop_event.wait()
        finally:
            await self.stop()
        return self.exit_code
