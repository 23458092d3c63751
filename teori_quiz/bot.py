import discord
from discord.ext import commands
import logging
import asyncio
from typing import Optional, Set
import os

from .data_manager import DataManager
from .config_manager import ConfigManager
from .quiz_controller import QuizController, format_time
from .session_store import FileStore, MemoryStore, SessionStore
from .models import QuizMode, Session, SessionMode

logger = logging.getLogger(__name__)

COLOR_INFO = 0x6699ff
COLOR_ACTIVE = 0x00aa55
COLOR_DONE = 0xffaa00
COLOR_ERROR = 0xff0000


def _progress_bar(percent: int, width: int = 20) -> str:
    filled = max(0, min(width, round(percent / 100 * width)))
    return "█" * filled + "░" * (width - filled)


def render_session(session: Session, duration: int, categories=None) -> discord.Embed:
    """Build the embed shown for a session state."""
    if session.mode is SessionMode.MENU:
        embed = discord.Embed(
            title="🚗 Theory Test: Menu",
            description="Choose a mode to begin.",
            color=COLOR_INFO
        )
        embed.add_field(name="/train", value="Practise one category", inline=False)
        embed.add_field(name="/test", value="Timed test drawn from every category", inline=False)
        return embed

    if session.mode is SessionMode.CATEGORY_SELECT:
        listing = "\n".join(f"• {c}" for c in categories) if categories else "No categories available"
        embed = discord.Embed(
            title="📚 Choose a category",
            description=listing,
            color=COLOR_INFO
        )
        embed.set_footer(text="Use /category <name>, or /menu to go back")
        return embed

    if session.mode is SessionMode.CONFIRM:
        embed = discord.Embed(
            title=f"📚 Training: {session.selected_category}",
            description="Use /begin to start training, or /menu to go back.",
            color=COLOR_INFO
        )
        return embed

    if session.mode is SessionMode.FINISHED:
        embed = discord.Embed(
            title="🏁 Quiz complete!",
            description=f"Score: **{session.score}** of {session.total_questions}",
            color=COLOR_DONE
        )
        embed.add_field(name="Time left", value=format_time(session.time_remaining_seconds), inline=False)
        embed.set_footer(text="Use /menu to return to the menu")
        return embed

    question = session.current_question
    percent = round(session.time_remaining_seconds / duration * 100) if duration else 0
    embed = discord.Embed(
        title=f"Question {session.current_index + 1} / {session.total_questions}",
        description=question.prompt if question else "",
        color=COLOR_ACTIVE
    )

    if question is not None:
        lines = []
        for i, option in enumerate(question.options):
            marker = f"**{i + 1}.**"
            if session.selected_option is not None:
                if i == question.answer_index:
                    marker = "✅"
                elif i == session.selected_option:
                    marker = "❌"
            lines.append(f"{marker} {option}")
        embed.add_field(name="Options", value="\n".join(lines), inline=False)

        if session.selected_option is not None and question.explanation:
            embed.add_field(name="Explanation", value=question.explanation, inline=False)

        if question.image and question.image.startswith(("http://", "https://")):
            embed.set_image(url=question.image)

    clock = format_time(session.time_remaining_seconds)
    if not session.timer_running:
        clock += " (paused, use /resume)"
    embed.add_field(name="⏱️ Time", value=f"{clock}\n{_progress_bar(percent)}", inline=False)
    embed.set_footer(
        text="Use /next to continue" if session.selected_option is not None else "Use /answer <number>"
    )
    return embed


class QuizBot(commands.Bot):
    """Discord front end for a single theory quiz session"""

    def __init__(self, config=None, config_manager: Optional[ConfigManager] = None):
        intents = discord.Intents.none()
        intents.guilds = True  # Required for slash commands

        command_prefix = '!'
        if config and 'bot' in config:
            command_prefix = config['bot'].get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,
            intents=intents,
            help_command=None
        )

        self.app_config = config or {}

        self.data_manager: Optional[DataManager] = None
        self.config_manager: Optional[ConfigManager] = config_manager
        self.session_store: Optional[SessionStore] = None
        self.quiz_controller: Optional[QuizController] = None

        self._last_channel_id: Optional[int] = self._configured_channel_id()
        self._background_tasks: Set[asyncio.Task] = set()

    async def setup_hook(self):
        """Called when the bot is starting up"""
        try:
            logger.info("Setting up bot components...")

            if self.config_manager is None:
                self.config_manager = ConfigManager()
                if self.app_config:
                    self.apply_configuration()

            self.data_manager = DataManager(self.config_manager.get_questions_file())
            self.data_manager.load_questions()

            storage_directory = self.config_manager.get_storage_directory()
            backend = FileStore(storage_directory) if storage_directory else MemoryStore()
            self.session_store = SessionStore(backend)

            self.quiz_controller = QuizController(self.data_manager, self.session_store, self.config_manager)
            self.quiz_controller.add_expiry_listener(self.on_session_expired)
            self.quiz_controller.restore_saved_session()

            await self.setup_commands()

            logger.info("Bot setup completed successfully")

        except Exception as e:
            logger.error(f"Error during bot setup: {e}")
            raise

    def _configured_channel_id(self) -> Optional[int]:
        """Channel for expiry announcements before anyone has used a command."""
        channel_id = self.app_config.get('bot', {}).get('announce_channel_id')
        if channel_id is None:
            return None
        if isinstance(channel_id, bool) or not isinstance(channel_id, int):
            logger.warning(f"Ignoring bot.announce_channel_id {channel_id!r}, expected an integer id")
            return None
        return channel_id

    def apply_configuration(self):
        """Apply settings from configuration file to the config manager."""
        errors = self.config_manager.apply_config(self.app_config)
        for error in errors:
            logger.warning(f"Ignoring configuration value: {error}")
        if not errors:
            logger.info("Configuration applied successfully")

    async def setup_commands(self):
        """Register all slash commands"""

        @self.tree.command(name="help", description="Display available commands")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @self.tree.command(name="menu", description="Return to the menu")
        async def menu_command(interaction: discord.Interaction):
            await self.handle_menu(interaction)

        @self.tree.command(name="train", description="Practise a single category")
        async def train_command(interaction: discord.Interaction):
            await self.handle_train(interaction)

        @self.tree.command(name="test", description="Start a timed test")
        async def test_command(interaction: discord.Interaction):
            await self.handle_test(interaction)

        @self.tree.command(name="category", description="Choose the category to train on")
        async def category_command(interaction: discord.Interaction, name: str):
            await self.handle_category(interaction, name)

        @self.tree.command(name="begin", description="Start training the chosen category")
        async def begin_command(interaction: discord.Interaction):
            await self.handle_begin(interaction)

        @self.tree.command(name="answer", description="Answer the current question")
        async def answer_command(interaction: discord.Interaction, option: int):
            await self.handle_answer(interaction, option)

        @self.tree.command(name="next", description="Go to the next question")
        async def next_command(interaction: discord.Interaction):
            await self.handle_next(interaction)

        @self.tree.command(name="resume", description="Resume the countdown of a restored session")
        async def resume_command(interaction: discord.Interaction):
            await self.handle_resume(interaction)

        @self.tree.command(name="status", description="Show the current session")
        async def status_command(interaction: discord.Interaction):
            await self.handle_status(interaction)

        logger.info("Slash commands registered successfully")

    async def on_ready(self):
        """Called when the bot has successfully connected to Discord"""
        logger.info(f"Bot logged in as {self.user}")
        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync commands: {e}")

    def render(self) -> discord.Embed:
        return render_session(
            self.quiz_controller.session,
            self.quiz_controller.settings.session_duration_seconds,
            self.quiz_controller.categories
        )

    async def _respond(self, interaction: discord.Interaction, embed: discord.Embed, ephemeral: bool = False):
        self._last_channel_id = interaction.channel_id
        if interaction.response.is_done():
            await interaction.followup.send(embed=embed, ephemeral=ephemeral)
        else:
            await interaction.response.send_message(embed=embed, ephemeral=ephemeral)

    async def _run_intent(self, interaction: discord.Interaction, intent, hint: str, *args):
        """Forward one intent and reply with the resulting state, or a hint if it was ignored."""
        try:
            before = self.quiz_controller.session
            after = intent(*args)
            if after == before:
                await self.send_warning_response(interaction, hint)
                return
            await self._respond(interaction, self.render())
        except discord.HTTPException as e:
            logger.error(f"Discord API error handling {intent.__name__}: {e}")
        except Exception as e:
            logger.error(f"Error handling {intent.__name__}: {e}")
            await self.send_error_response(interaction, "Something went wrong, please try again")

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        try:
            embed = discord.Embed(
                title="📖 Theory Quiz: Commands",
                color=COLOR_INFO
            )
            embed.add_field(name="/train", value="Practise one category", inline=False)
            embed.add_field(
                name="/test",
                value=f"Timed test with up to {self.config_manager.get_test_question_count()} questions",
                inline=False
            )
            embed.add_field(name="/category <name>", value="Choose a training category", inline=False)
            embed.add_field(name="/begin", value="Start training", inline=False)
            embed.add_field(name="/answer <number>", value="Answer the current question", inline=False)
            embed.add_field(name="/next", value="Next question", inline=False)
            embed.add_field(name="/status", value="Show the current session", inline=False)
            embed.add_field(name="/menu", value="Back to the menu", inline=False)
            embed.set_footer(
                text=f"Sessions last {self.config_manager.get_session_duration() // 60} minutes"
            )
            await self._respond(interaction, embed)
        except discord.HTTPException as e:
            logger.error(f"Failed to send help: {e}")

    async def handle_menu(self, interaction: discord.Interaction):
        """Handle /menu command"""
        await self._run_intent(
            interaction,
            self.quiz_controller.return_to_menu,
            "You can only return to the menu from category selection or the result screen."
        )

    async def handle_train(self, interaction: discord.Interaction):
        """Handle /train command"""
        await self._run_intent(
            interaction,
            self.quiz_controller.choose_mode,
            "Training can only be chosen from the menu. Use /status to see where you are.",
            QuizMode.TRAIN
        )

    async def handle_test(self, interaction: discord.Interaction):
        """Handle /test command"""
        await self._run_intent(
            interaction,
            self.quiz_controller.choose_mode,
            "A test can only be started from the menu. Use /status to see where you are.",
            QuizMode.TEST
        )

    async def handle_category(self, interaction: discord.Interaction, name: str):
        """Handle /category command"""
        categories = self.quiz_controller.categories
        match = next((c for c in categories if c.lower() == name.strip().lower()), None)
        if match is None:
            listing = ", ".join(categories) if categories else "none"
            await self.send_error_response(
                interaction,
                f"Unknown category `{name}`. Available: {listing}",
                "❌ Unknown Category"
            )
            return

        await self._run_intent(
            interaction,
            self.quiz_controller.choose_category,
            "Use /train first to choose a category.",
            match
        )

    async def handle_begin(self, interaction: discord.Interaction):
        """Handle /begin command"""
        await self._run_intent(
            interaction,
            self.quiz_controller.confirm_start,
            "Choose a category with /category before starting."
        )

    async def handle_answer(self, interaction: discord.Interaction, option: int):
        """Handle /answer command, options are numbered from 1"""
        await self._run_intent(
            interaction,
            self.quiz_controller.select_option,
            "That answer was not accepted. The question may already be answered or the number is out of range.",
            option - 1
        )

    async def handle_next(self, interaction: discord.Interaction):
        """Handle /next command"""
        await self._run_intent(
            interaction,
            self.quiz_controller.advance,
            "Answer the current question before moving on."
        )

    async def handle_resume(self, interaction: discord.Interaction):
        """Handle /resume command"""
        await self._run_intent(
            interaction,
            self.quiz_controller.resume_timer,
            "There is no paused session to resume."
        )

    async def handle_status(self, interaction: discord.Interaction):
        """Handle /status command"""
        try:
            await self._respond(interaction, self.render())
        except discord.HTTPException as e:
            logger.error(f"Failed to send status: {e}")
        except Exception as e:
            logger.error(f"Error in status command: {e}")
            await self.send_error_response(interaction, "Failed to get quiz status", "❌ Status Error")

    def on_session_expired(self, session: Session):
        """Expiry listener: announce the result in the last channel used."""
        if self._last_channel_id is None:
            logger.warning(
                "Session expired with no channel to announce in; "
                "set bot.announce_channel_id to announce expiry after a restart"
            )
            return
        task = asyncio.create_task(self._announce_expiry(session))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _announce_expiry(self, session: Session):
        channel = self.get_channel(self._last_channel_id)
        if channel is None:
            logger.warning(f"Channel {self._last_channel_id} not available for expiry message")
            return
        embed = render_session(session, self.quiz_controller.settings.session_duration_seconds)
        embed.title = "⏰ Time is up!"
        try:
            await channel.send(embed=embed)
        except discord.HTTPException as e:
            logger.error(f"Failed to announce expiry: {e}")

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send formatted error response to user"""
        try:
            embed = discord.Embed(
                title=title,
                description=message,
                color=COLOR_ERROR
            )
            embed.set_footer(text="Use /help for available commands")
            await self._respond(interaction, embed, ephemeral=True)
        except discord.HTTPException:
            logger.error("Failed to send error response to user")

    async def send_warning_response(self, interaction: discord.Interaction, message: str, title: str = "⚠️ Not now"):
        """Send formatted warning response to user"""
        try:
            embed = discord.Embed(
                title=title,
                description=message,
                color=COLOR_DONE
            )
            await self._respond(interaction, embed, ephemeral=True)
        except discord.HTTPException:
            logger.error("Failed to send warning response to user")


async def run_bot(token=None, config=None, config_manager=None):
    """Run the bot with proper error handling"""
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = QuizBot(config, config_manager)

    try:
        logger.info("Starting theory quiz bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
