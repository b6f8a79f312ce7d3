"""
Raffle Draw Logic
Weighted prize selection and win-limit policy
"""

import random

_system_random = random.SystemRandom()


def select_prize(prizes, rng=None):
    """
    Draw one prize with probability proportional to its weight

    Each prize owns a slice of [0, total_weight) in list order.
    Example: A (weight 10), B (weight 5) -> A = 0-9, B = 10-14

    Args:
        prizes: Sequence of Prize
        rng: Random source with ``randrange`` (None = system randomness).
             Pass a seeded ``random.Random`` for reproducible draws.

    Returns:
        Prize or None if there is nothing with a positive weight
    """
    total_weight = sum(prize.weight for prize in prizes)
    if total_weight <= 0:
        return None

    roll = (rng or _system_random).randrange(total_weight)
    for prize in prizes:
        if roll < prize.weight:
            return prize
        roll -= prize.weight

    return None


def is_exhausted(count, limit):
    """A limit of 0 means unlimited"""
    return limit > 0 and count >= limit


def is_user_exhausted(user_wins, max_wins_per_user):
    return is_exhausted(user_wins, max_wins_per_user)


def is_prize_exhausted(prize_wins, max_wins_per_prize):
    return is_exhausted(prize_wins, max_wins_per_prize)


def filter_eligible_prizes(prizes, prize_wins_count, max_wins_per_prize):
    """Prizes that can still be won, configured order and weights kept"""
    return [
        prize for prize in prizes
        if not is_prize_exhausted(prize_wins_count.get(prize.name, 0), max_wins_per_prize)
    ]


def simulate_draws(prizes, num_simulations=1000, rng=None):
    """
    Run many draws to check the weighting (testing purposes)

    Args:
        prizes: Sequence of Prize
        num_simulations: Number of draws to run
        rng: Random source passed through to select_prize

    Returns:
        dict: Simulation results or None if no prize can be drawn
    """
    total_weight = sum(prize.weight for prize in prizes)
    if total_weight <= 0:
        return None

    wins = {prize.name: 0 for prize in prizes}
    for _ in range(num_simulations):
        wins[select_prize(prizes, rng).name] += 1

    results = []
    for prize in prizes:
        expected_wins = (prize.weight / total_weight) * num_simulations
        actual_wins = wins[prize.name]
        variance = ((actual_wins - expected_wins) / expected_wins * 100) if expected_wins > 0 else 0

        results.append({
            "prize": prize.name,
            "weight": prize.weight,
            "expected_wins": expected_wins,
            "actual_wins": actual_wins,
            "variance_percent": variance,
        })

    return {
        "num_simulations": num_simulations,
        "total_weight": total_weight,
        "results": results,
    }
