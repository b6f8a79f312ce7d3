"""
Discord Commands for the Daily Raffle
Slash commands for admins and members plus the persistent "Use Ticket" button
"""

import logging
from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands
from discord.ui import View

from . import config
from .errors import RaffleError
from .status import build_entries_text, build_history_fields, build_status_text, truncate
from .store import RaffleStore
from .workflow import MemberDirectory, RaffleService

logger = logging.getLogger(__name__)

GENERIC_ERROR = "There was an error while executing this command! Please try again later."
RAFFLE_COLOR = discord.Color.gold()
RECENT_WINNER_MARKER = "\n\n**Recent Winner:**"


class GuildMemberDirectory(MemberDirectory):
    """Non-bot members of a Discord guild (needs the members intent)"""

    def __init__(self, guild):
        self.guild = guild

    async def list_member_ids(self):
        return [str(member.id) async for member in self.guild.fetch_members(limit=None) if not member.bot]


def build_raffle_embed(state, title=None, description=None, recent_winner=None):
    """Embed for the public raffle post"""
    description = description or config.DEFAULT_RAFFLE_DESCRIPTION
    if recent_winner:
        description += f"{RECENT_WINNER_MARKER} {recent_winner.user_tag} won **{recent_winner.prize_name}**!"

    embed = discord.Embed(
        title=truncate(title or config.DEFAULT_RAFFLE_TITLE, config.EMBED_TITLE_LIMIT),
        description=truncate(description, config.EMBED_DESCRIPTION_LIMIT),
        color=RAFFLE_COLOR,
    )
    embed.add_field(name="Raffle Status", value=build_status_text(state), inline=False)
    return embed


class RaffleJoinView(View):
    """Button view for the raffle post"""

    def __init__(self, cog):
        super().__init__(timeout=None)  # Persistent view
        self.cog = cog

    @discord.ui.button(
        style=discord.ButtonStyle.primary,
        label="Use Ticket",
        emoji="🎟️",
        custom_id=config.JOIN_BUTTON_CUSTOM_ID
    )
    async def join_button(self, interaction: discord.Interaction, button: discord.ui.Button):
        """Handle use-ticket button click"""
        try:
            await self.cog.handle_redeem(interaction)
        except Exception as e:
            logger.error(f"Error handling raffle button interaction: {e}", exc_info=True)
            if not interaction.response.is_done():
                await interaction.response.send_message(GENERIC_ERROR, ephemeral=True)
            else:
                await interaction.edit_original_response(content=GENERIC_ERROR)


def _is_admin(interaction):
    perms = getattr(interaction.user, "guild_permissions", None)
    return bool(perms and perms.administrator)


class RaffleCommands(commands.Cog):
    """Discord commands for the raffle - one raffle per server"""

    raffle = app_commands.Group(
        name="raffle",
        description="Raffle commands for Daily raffle bot",
        guild_only=True,
    )

    def __init__(self, bot, service):
        self.bot = bot
        self.service = service

    # ========================================
    # HELPERS
    # ========================================

    async def _reply(self, interaction, content=None, embed=None):
        if interaction.response.is_done():
            await interaction.edit_original_response(content=content, embed=embed)
        else:
            await interaction.response.send_message(content=content, embed=embed, ephemeral=True)

    async def _require_admin(self, interaction):
        if _is_admin(interaction):
            return True
        await self._reply(interaction, "🚫 Only administrators can use this command.")
        return False

    async def _fail(self, interaction, error, action):
        if isinstance(error, RaffleError):
            logger.info(f"Raffle {action} refused in guild {interaction.guild_id}: {error}")
            await self._reply(interaction, error.user_message)
        else:
            logger.error(f"Error during raffle {action}: {error}", exc_info=True)
            await self._reply(interaction, GENERIC_ERROR)

    async def _fetch_channel(self, channel_id):
        channel = self.bot.get_channel(int(channel_id))
        if channel is None:
            channel = await self.bot.fetch_channel(int(channel_id))
        return channel

    # ========================================
    # ADMIN COMMANDS
    # ========================================

    @raffle.command(name="start", description="Start a new raffle and define prizes (e.g., 'Nitro:10, Gift Card:5')")
    @app_commands.describe(
        prizes="Comma-separated list of 'Prize Name:Chance', e.g., 'Nitro:10, Gift Card:5'",
        description="Custom description for the raffle embed",
        title="Custom title for the raffle embed",
    )
    async def raffle_start(
        self,
        interaction: discord.Interaction,
        prizes: str,
        description: Optional[app_commands.Range[str, 1, config.EMBED_DESCRIPTION_LIMIT]] = None,
        title: Optional[app_commands.Range[str, 1, config.EMBED_TITLE_LIMIT]] = None,
    ):
        await interaction.response.defer(ephemeral=True)
        if not await self._require_admin(interaction):
            return

        channel = interaction.channel
        if channel is None or not hasattr(channel, "send"):
            await self._reply(interaction, "🚫 Failed to start raffle: Could not access the channel to send the message.")
            return

        # Post first, commit second: a raffle is only active once its button exists
        try:
            preview = await self.service.preview_start(interaction.guild_id, prizes)
        except Exception as e:
            await self._fail(interaction, e, "start")
            return

        try:
            message = await channel.send(
                embed=build_raffle_embed(preview, title, description),
                view=RaffleJoinView(self),
            )
        except discord.HTTPException as e:
            logger.error(f"Could not post raffle in guild {interaction.guild_id}: {e}")
            await self._reply(interaction, "🚫 Failed to start raffle: the raffle post could not be sent here.")
            return

        try:
            state = await self.service.start(
                interaction.guild_id, prizes, title, description,
                message=(message.id, message.channel.id),
            )
        except Exception as e:
            await self._delete_post(message)
            await self._fail(interaction, e, "start")
            return

        logger.info(f"🎟️ Raffle started in guild {interaction.guild_id} with {len(state.prizes)} prizes")
        await self._reply(interaction, "✅ Raffle started successfully!")

    async def _delete_post(self, message):
        try:
            await message.delete()
        except discord.HTTPException as e:
            logger.error(f"Could not remove orphaned raffle post {message.id}: {e}")

    @raffle.command(name="end", description="End the current raffle and clear all data")
    async def raffle_end(self, interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True)
        if not await self._require_admin(interaction):
            return

        try:
            summary = await self.service.end(interaction.guild_id)
        except Exception as e:
            await self._fail(interaction, e, "end")
            return

        logger.info(
            f"🏁 Raffle ended in guild {interaction.guild_id}: "
            f"{summary.total_entries} tickets, {len(summary.winners)} winners"
        )
        await self._reply(
            interaction,
            f"✅ Raffle ended and all data cleared. History saved!\n"
            f"• Tickets distributed: {summary.total_entries}\n"
            f"• Winners: {len(summary.winners)}"
        )

    @raffle.command(name="add-tickets", description="Add raffle tickets to a user or everyone")
    @app_commands.describe(
        amount="The number of tickets to add",
        user="The user to give tickets to (leave empty for everyone)",
    )
    async def raffle_add_tickets(
        self,
        interaction: discord.Interaction,
        amount: app_commands.Range[int, 1],
        user: Optional[discord.Member] = None,
    ):
        await interaction.response.defer(ephemeral=True)
        if not await self._require_admin(interaction):
            return

        try:
            if user is not None:
                if user.bot:
                    await self._reply(interaction, "🚫 Bots can't take part in the raffle.")
                    return
                balances = await self.service.grant_tickets(interaction.guild_id, amount, user_id=user.id)
                await self._reply(
                    interaction,
                    f"✅ Added {amount} tickets to {user}. They now have {balances[str(user.id)]} tickets."
                )
            else:
                balances = await self.service.grant_tickets(
                    interaction.guild_id, amount, member_directory=GuildMemberDirectory(interaction.guild)
                )
                await self._reply(interaction, f"✅ Added {amount} tickets to all {len(balances)} non-bot members.")
        except Exception as e:
            await self._fail(interaction, e, "add-tickets")

    @raffle.command(name="set-winner-channel", description="Sets the channel where raffle winners will be announced publicly.")
    @app_commands.describe(channel="The channel to send winner announcements to.")
    async def raffle_set_winner_channel(self, interaction: discord.Interaction, channel: discord.TextChannel):
        await interaction.response.defer(ephemeral=True)
        if not await self._require_admin(interaction):
            return

        try:
            await self.service.set_announce_channel(interaction.guild_id, channel.id)
        except Exception as e:
            await self._fail(interaction, e, "set-winner-channel")
            return

        await self._reply(interaction, f"✅ Winner announcements will now be sent to {channel.mention}.")

    @raffle.command(name="set-max-wins", description="Sets maximum wins per user or per prize type (0 for no limit).")
    @app_commands.rename(kind="type")
    @app_commands.describe(
        kind="Set limit for 'user' or 'prize'.",
        amount="The maximum number of wins (0 for no limit).",
    )
    @app_commands.choices(kind=[
        app_commands.Choice(name="User", value="user"),
        app_commands.Choice(name="Prize", value="prize"),
    ])
    async def raffle_set_max_wins(
        self,
        interaction: discord.Interaction,
        kind: app_commands.Choice[str],
        amount: app_commands.Range[int, 0],
    ):
        await interaction.response.defer(ephemeral=True)
        if not await self._require_admin(interaction):
            return

        try:
            await self.service.set_max_wins(interaction.guild_id, kind.value, amount)
        except Exception as e:
            await self._fail(interaction, e, "set-max-wins")
            return

        label = "user" if kind.value == "user" else "prize type"
        await self._reply(
            interaction,
            f"✅ Maximum wins per {label} set to {'no limit' if amount == 0 else amount}."
        )

    # ========================================
    # PUBLIC COMMANDS
    # ========================================

    @raffle.command(name="entries", description="See all raffle entries and their current ticket counts")
    async def raffle_entries(self, interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True)
        try:
            state = await self.service.list_entries(interaction.guild_id)
        except Exception as e:
            await self._fail(interaction, e, "entries")
            return

        embed = discord.Embed(
            title="🎯 Raffle Status & Entries",
            description=build_status_text(state),
            color=discord.Color.teal(),
            timestamp=discord.utils.utcnow(),
        )
        embed.add_field(name="Ticket Holders", value=build_entries_text(state), inline=False)
        await self._reply(interaction, embed=embed)

    @app_commands.command(name="raffle-history", description="Shows the history of past raffles.")
    @app_commands.guild_only()
    async def raffle_history(self, interaction: discord.Interaction):
        await interaction.response.defer(ephemeral=True)
        try:
            summaries = await self.service.history(interaction.guild_id)
        except Exception as e:
            await self._fail(interaction, e, "history")
            return

        if not summaries:
            await self._reply(interaction, "📜 No raffle history available yet.")
            return

        embed = discord.Embed(
            title="📜 Raffle History",
            color=discord.Color.dark_blue(),
            timestamp=discord.utils.utcnow(),
        )
        for name, value in build_history_fields(summaries):
            embed.add_field(name=name, value=value, inline=False)
        await self._reply(interaction, embed=embed)

    # ========================================
    # TICKET REDEMPTION
    # ========================================

    async def handle_redeem(self, interaction: discord.Interaction):
        """Spend one ticket for the member who clicked the raffle button"""
        await interaction.response.defer(ephemeral=True)
        if interaction.guild is None:
            await self._reply(interaction, "This can only be used in a server.")
            return

        user = interaction.user
        try:
            result = await self.service.redeem(interaction.guild_id, user.id, str(user))
        except Exception as e:
            await self._fail(interaction, e, "redeem")
            return

        logger.info(f"🎉 {user} won {result.prize.name} in guild {interaction.guild_id}")
        await self._reply(
            interaction,
            f"🎉 You won **{result.prize.name}**! You have {result.remaining_tickets} tickets left."
        )

        await self._announce_winner(interaction, result)
        await self._refresh_raffle_post(result.state, result.winner)

    async def _announce_winner(self, interaction, result):
        """Public announcement, or a DM to the owner when no channel is set"""
        state = result.state
        user_tag = result.winner.user_tag

        if state.announce_channel_id:
            try:
                channel = await self._fetch_channel(state.announce_channel_id)
                embed = discord.Embed(
                    title="🏆 Raffle Winner!",
                    description=f"{user_tag} just won **{result.prize.name}**!",
                    color=discord.Color.green(),
                    timestamp=discord.utils.utcnow(),
                )
                embed.set_footer(text=f"Tickets left: {result.remaining_tickets}")
                await channel.send(embed=embed)
            except Exception as e:
                logger.error(f"Could not send winner announcement to channel {state.announce_channel_id}: {e}")
            return

        try:
            guild = interaction.guild
            owner = guild.owner or await guild.fetch_member(guild.owner_id)
            await owner.send(
                f"{user_tag} just won **{result.prize.name}** in the raffle! "
                f"They have {result.remaining_tickets} tickets left.\n"
                f"Server: {guild.name}"
            )
        except Exception as e:
            logger.error(f"Could not send DM to guild owner: {e}")

    async def _refresh_raffle_post(self, state, recent_winner):
        binding = state.message_binding
        if not binding:
            return

        try:
            channel = await self._fetch_channel(binding.channel_id)
            message = await channel.fetch_message(int(binding.message_id))
            # Keep the admin's custom title and description
            current = message.embeds[0] if message.embeds else None
            description = None
            if current and current.description:
                description = current.description.split(RECENT_WINNER_MARKER)[0]
            embed = build_raffle_embed(
                state,
                title=current.title if current else None,
                description=description,
                recent_winner=recent_winner,
            )
            await message.edit(embed=embed, view=RaffleJoinView(self))
        except Exception as e:
            logger.error(f"Failed to update raffle embed message: {e}")


async def setup(bot, engine):
    """Add raffle commands and the persistent button view to the bot"""
    service = RaffleService(RaffleStore(engine))
    cog = RaffleCommands(bot, service)
    await bot.add_cog(cog)
    bot.add_view(RaffleJoinView(cog))
    logger.info("✅ Raffle commands loaded")
    return cog
