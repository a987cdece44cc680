"""Gamification rewards granted from billing events."""

from guerreiro_concursos.repositories import users_repo

PREMIUM_BONUS_POINTS = 50
PREMIUM_FIRST_TIME_BADGE = 'premium_primeira_vez'

# (lower bound, upper bound) of points for levels 1..4; level 5 is open-ended.
LEVEL_BANDS = ((0, 100), (100, 250), (250, 500), (500, 1000))


def calculate_level(points):
    """Return ``(nivel, progressaoNivel)`` for a point total."""
    points = max(0, points or 0)
    for level, (lower, upper) in enumerate(LEVEL_BANDS, start=1):
        if points < upper:
            return level, min(100, ((points - lower) / (upper - lower)) * 100)
    return len(LEVEL_BANDS) + 1, 100


def add_points(db, uid, amount, *, logger, now):
    data = users_repo.get_data(db, uid)
    if data is None:
        logger.warning(f"[Rewards] user {uid} not found when adding points")
        return False
    total = int(data.get('pontos') or 0) + int(amount)
    level, progress = calculate_level(total)
    users_repo.merge_doc(db, uid, {
        'pontos': total,
        'nivel': level,
        'progressaoNivel': progress,
        'updatedAt': now,
    })
    logger.info(f"[Rewards] {amount} points added for {uid}. Total: {total}, level: {level}")
    return True


def add_badge(db, uid, badge_id, *, logger, now):
    """Append ``badge_id`` once; returns whether it was added."""
    data = users_repo.get_data(db, uid)
    if data is None:
        logger.warning(f"[Rewards] user {uid} not found when adding badge")
        return False
    badges = list(data.get('medalhas') or [])
    if badge_id in badges:
        return False
    users_repo.merge_doc(db, uid, {
        'medalhas': badges + [badge_id],
        'updatedAt': now,
    })
    logger.info(f"[Rewards] badge '{badge_id}' added for {uid}")
    return True


def grant_premium_rewards(db, uid, *, logger, now):
    """Bonus for a free -> premium transition. Failures never propagate."""
    try:
        points_added = add_points(db, uid, PREMIUM_BONUS_POINTS, logger=logger, now=now)
        badge_added = add_badge(db, uid, PREMIUM_FIRST_TIME_BADGE, logger=logger, now=now)
    except Exception as exc:
        logger.error(f"[Rewards] could not grant premium rewards to {uid}: {exc}")
        return {'pointsAdded': False, 'badgeAdded': False, 'error': str(exc)}
    return {'pointsAdded': points_added, 'badgeAdded': badge_added}
