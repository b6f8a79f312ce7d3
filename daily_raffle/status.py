"""
Raffle Status Text
Builds the text shown on the raffle post, the entries view and the history view
"""

from datetime import datetime

from . import config


def truncate(text, limit=config.EMBED_FIELD_LIMIT):
    """Trim text to fit a Discord embed field"""
    if len(text) <= limit:
        return text
    return text[:limit - 1] + "…"


def _limit_text(limit):
    return str(limit) if limit > 0 else "No Limit"


def format_prize_line(prize, total_weight, wins=None):
    share = (prize.weight / total_weight * 100) if total_weight > 0 else 0
    line = f"• **{prize.name}** (Chance: {prize.weight}, {share:.1f}%)"
    if wins is not None:
        line += f" - Won: {wins} times"
    return line


def build_status_text(state, recent_winners=None):
    """
    Status block for the raffle post and the entries command

    Args:
        state: RaffleState to describe
        recent_winners: How many of the latest winners to list

    Returns:
        str: Markdown text, at most one embed field long
    """
    recent_winners = recent_winners or config.RECENT_WINNERS_SHOWN

    status = f"**Active:** {'✅ Yes' if state.active else '❌ No'}\n"
    status += f"**Tickets Distributed:** {state.tickets_distributed}\n"
    status += f"**Tickets Remaining:** {state.total_tickets}\n"
    status += f"**Max Wins Per User:** {_limit_text(state.max_wins_per_user)}\n"
    status += f"**Max Wins Per Prize:** {_limit_text(state.max_wins_per_prize)}\n\n"

    status += "**Prizes & Wins:**\n"
    if not state.prizes:
        status += "No prizes configured.\n"
    else:
        total_weight = sum(p.weight for p in state.prizes)
        for prize in state.prizes:
            status += format_prize_line(prize, total_weight, state.prize_wins_count.get(prize.name, 0)) + "\n"

    status += "\n**Recent Winners:**\n"
    if state.current_winners:
        recent = state.current_winners[-recent_winners:]
        status += "\n".join(f"• {w.user_tag} won **{w.prize_name}**" for w in recent)
    else:
        status += "No winners yet in this raffle.\n"

    return truncate(status)


def build_entries_text(state, mention=lambda user_id: f"<@{user_id}>"):
    """Ticket holders, largest balance first"""
    holders = sorted(
        ((user_id, count) for user_id, count in state.tickets.items() if count > 0),
        key=lambda item: item[1],
        reverse=True,
    )
    if not holders:
        return "No one is holding tickets right now."

    lines = [f"{mention(user_id)}: {count} ticket{'s' if count != 1 else ''}" for user_id, count in holders]
    return truncate("\n".join(lines))


def _format_timestamp(timestamp):
    try:
        return datetime.fromisoformat(timestamp).strftime("%b %d, %Y %H:%M UTC")
    except ValueError:
        return timestamp


def build_history_fields(summaries):
    """
    One (name, value) embed field per raffle summary, newest first

    Returns:
        list: Tuples of (field name, field value)
    """
    fields = []
    shown = config.HISTORY_WINNERS_SHOWN

    for index, summary in enumerate(summaries):
        winners_list = "No winners."
        if summary.winners:
            winners_list = "\n".join(f"• {w.user_tag} won **{w.prize_name}**" for w in summary.winners[:shown])
            if len(summary.winners) > shown:
                winners_list += f"\n...and {len(summary.winners) - shown} more."

        prize_info = "No prizes configured."
        if summary.prizes:
            total_weight = sum(p.weight for p in summary.prizes)
            prize_info = "\n".join(format_prize_line(p, total_weight) for p in summary.prizes)

        name = f"Raffle {len(summaries) - index} - Ended: {_format_timestamp(summary.timestamp)}"
        value = (
            f"**Prizes:**\n{prize_info}\n"
            f"**Tickets:** {summary.total_entries}\n"
            f"**Winners:**\n{winners_list}"
        )
        fields.append((name, truncate(value)))

    return fields
