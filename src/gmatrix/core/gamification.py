"""Gamification ledger: Scout Points, badges and daily streaks."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from importlib import resources
from pathlib import Path
from typing import Any, Optional

import yaml

from gmatrix.core.clock import Clock, utc_now
from gmatrix.core.documents import profile_from_doc, profile_to_doc, user_path
from gmatrix.core.errors import ErrorChannel, error_channel
from gmatrix.core.interfaces import BadgePredicate, DocumentStore, Transaction
from gmatrix.core.models import ProfileDelta, UserProfile, VoteContext

logger = logging.getLogger(__name__)

SCORING_RESOURCE = "scoring.yaml"


@dataclass(frozen=True)
class PointTable:
    vote_base: int = 10
    price_bonus: int = 5
    store_bonus: int = 10
    gps_bonus: int = 5
    new_product_bonus: int = 25
    daily_streak_bonus: int = 15
    daily_streak_after: int = 2


@dataclass(frozen=True)
class BadgeRule:
    badge_id: str
    predicate: BadgePredicate
    name: str = ""
    description: str = ""
    icon: str = ""


def _counter_value(profile: UserProfile, counter: str) -> float:
    value = getattr(profile, counter)
    if isinstance(value, (list, set, tuple)):
        return len(value)
    return value


def threshold_rule(badge_id: str, counter: str, threshold: float, **labels: str) -> BadgeRule:
    """Badge awarded once a profile counter reaches threshold."""
    if not hasattr(UserProfile(user_id=""), counter):
        raise ValueError(f"Unknown profile counter for badge {badge_id!r}: {counter}")
    return BadgeRule(
        badge_id=badge_id,
        predicate=lambda profile: _counter_value(profile, counter) >= threshold,
        **labels,
    )


def _load_yaml(path: Path | None) -> dict[str, Any]:
    if path:
        if not path.exists():
            return {}
        with path.open("r", encoding="utf-8") as handle:
            return yaml.safe_load(handle) or {}

    try:
        resource = resources.files("gmatrix.templates").joinpath(SCORING_RESOURCE)
        with resource.open("r", encoding="utf-8") as handle:
            return yaml.safe_load(handle) or {}
    except FileNotFoundError:
        return {}


def load_scoring(path: str | Path | None = None) -> tuple[PointTable, list[BadgeRule]]:
    """
    Load the point table and badge rules.

    Args:
        path: YAML file; the packaged scoring.yaml when omitted

    Returns:
        (points, badge_rules)
    """
    data = _load_yaml(Path(path) if path else None)
    known = set(PointTable.__dataclass_fields__)
    points = PointTable(**{k: int(v) for k, v in (data.get("points") or {}).items() if k in known})
    rules: list[BadgeRule] = []
    for entry in data.get("badges", []) or []:
        if not entry.get("id") or not entry.get("counter"):
            continue
        rules.append(
            threshold_rule(
                str(entry["id"]),
                str(entry["counter"]),
                float(entry.get("threshold", 1)),
                name=str(entry.get("name", "")),
                description=str(entry.get("description", "")),
                icon=str(entry.get("icon", "")),
            )
        )
    return points, rules


def calculate_points(context: VoteContext, votes_today_before: int, table: PointTable) -> int:
    points = table.vote_base
    if context.has_price:
        points += table.price_bonus
    if context.has_store_tag:
        points += table.store_bonus
    if context.has_gps:
        points += table.gps_bonus
    if context.is_new_product:
        points += table.new_product_bonus
    if votes_today_before >= table.daily_streak_after:
        points += table.daily_streak_bonus
    return points


def calculate_streak(last_vote_date: Optional[datetime], current_streak: int, now: datetime) -> tuple[int, bool]:
    """
    Streak after a vote at now.

    Returns:
        (current_streak, is_new_day). Same calendar day keeps the streak,
        the next day extends it, any longer gap restarts it at 1.
    """
    if last_vote_date is None:
        return 1, True
    gap_days = (now.date() - last_vote_date.date()).days
    if gap_days == 0:
        return max(current_streak, 1), False
    if gap_days == 1:
        return current_streak + 1, True
    return 1, True


def check_new_badges(profile: UserProfile, rules: list[BadgeRule]) -> list[BadgeRule]:
    earned = set(profile.badges)
    return [rule for rule in rules if rule.badge_id not in earned and rule.predicate(profile)]


class GamificationLedger:
    """
    Applies the side effects of a recorded vote to the voter's profile.

    Profiles exist only for registered users and are created on their first
    vote. The ledger runs after the vote is durable; callers treat its
    failures as non-fatal.
    """

    def __init__(
        self,
        store: DocumentStore,
        badge_rules: list[BadgeRule] | None = None,
        points: PointTable | None = None,
        scoring_path: str | Path | None = None,
        clock: Clock = utc_now,
        errors: ErrorChannel = error_channel,
    ) -> None:
        self.store = store
        self.clock = clock
        self.errors = errors
        default_points, default_rules = load_scoring(scoring_path)
        self.points = points or default_points
        self.badge_rules = default_rules if badge_rules is None else badge_rules

    def get_profile(self, user_id: str) -> UserProfile:
        path = user_path(user_id)
        with self.errors.reporting():
            data = self.store.get(path)
        return profile_from_doc(user_id, data)

    def apply_vote_effects(self, user_id: str, context: VoteContext) -> ProfileDelta:
        path = user_path(user_id)

        def apply(tx: Transaction) -> ProfileDelta:
            profile = profile_from_doc(user_id, tx.get(path))
            now = self.clock()
            streak, is_new_day = calculate_streak(profile.last_vote_date, profile.current_streak, now)
            votes_today_before = 0 if is_new_day else profile.votes_today
            awarded = calculate_points(context, votes_today_before, self.points)

            profile.points += awarded
            profile.total_votes += 1
            if context.is_new_product:
                profile.new_product_votes += 1
            if context.has_gps:
                profile.gps_votes += 1
            if context.has_store_tag and context.store_name:
                store_key = context.store_name.strip().lower()
                if store_key and store_key not in profile.stores_tagged:
                    profile.stores_tagged.append(store_key)
            profile.current_streak = streak
            profile.longest_streak = max(profile.longest_streak, streak)
            profile.last_vote_date = now
            profile.votes_today = votes_today_before + 1

            new_badges = [rule.badge_id for rule in check_new_badges(profile, self.badge_rules)]
            profile.badges.extend(new_badges)

            tx.set(path, profile_to_doc(profile))
            return ProfileDelta(
                user_id=user_id,
                points_awarded=awarded,
                new_badges=new_badges,
                current_streak=profile.current_streak,
                longest_streak=profile.longest_streak,
                total_points=profile.points,
            )

        with self.errors.reporting():
            delta = self.store.run_transaction(apply)
        if delta.new_badges:
            logger.info("badges_awarded user=%s badges=%s", user_id, ",".join(delta.new_badges))
        return delta
