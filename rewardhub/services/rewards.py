# rewardhub/services/rewards.py
import random
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import update

from rewardhub.extensions import db
from rewardhub.models import Account, LedgerReason, Tier
from rewardhub.services import ledger


class RewardPolicy:
    """Coins granted for one rewarded login.

    Subclasses implement ``_raw``; ``compute`` clamps to [minimum, maximum].
    """

    name = "base"
    version = 0

    def __init__(self, minimum: int, maximum: int, rng: random.Random | None = None):
        if minimum < 0 or maximum < minimum:
            raise ValueError(f"invalid reward range {minimum}..{maximum}")
        self.minimum = minimum
        self.maximum = maximum
        self.rng = rng or random.Random()

    def _raw(self, account: Account) -> int:
        raise NotImplementedError

    def compute(self, account: Account) -> int:
        return max(self.minimum, min(self.maximum, int(self._raw(account))))

    def __repr__(self) -> str:
        return f"<{type(self).__name__} v{self.version} {self.minimum}..{self.maximum}>"


class UniformRangePolicy(RewardPolicy):
    name = "uniform"
    version = 1

    def _raw(self, account: Account) -> int:
        return self.rng.randint(self.minimum, self.maximum)


class StreakTierPolicy(RewardPolicy):
    """5-20 base, +2 per consecutive day (capped at +14), tier multiplier."""

    name = "streak_tier"
    version = 2

    BASE_RANGE = (5, 20)
    STREAK_BONUS = 2
    STREAK_CAP = 7
    MULTIPLIERS = {Tier.SILVER.value: 1.0, Tier.GOLD.value: 1.5, Tier.PLATINUM.value: 2.0}

    def __init__(self, minimum: int = 5, maximum: int = 100, rng: random.Random | None = None):
        super().__init__(minimum, maximum, rng)

    def _raw(self, account: Account) -> int:
        base = self.rng.randint(*self.BASE_RANGE)
        streak = min(account.login_streak or 0, self.STREAK_CAP)
        multiplier = self.MULTIPLIERS.get(account.tier, 1.0)
        return round((base + streak * self.STREAK_BONUS) * multiplier)


POLICIES = {
    UniformRangePolicy.name: UniformRangePolicy,
    StreakTierPolicy.name: StreakTierPolicy,
}

_policy_override: RewardPolicy | None = None


def set_policy(policy: RewardPolicy | None) -> None:
    """Swap the process-wide policy; ``None`` goes back to configuration."""
    global _policy_override
    _policy_override = policy


def get_policy() -> RewardPolicy:
    if _policy_override is not None:
        return _policy_override

    cfg = current_app.config
    name = cfg.get("LOGIN_REWARD_POLICY", UniformRangePolicy.name)
    try:
        policy_cls = POLICIES[name]
    except KeyError:
        raise ValueError(f"Unknown LOGIN_REWARD_POLICY {name!r}") from None

    if policy_cls is UniformRangePolicy:
        return UniformRangePolicy(cfg.get("LOGIN_REWARD_MIN", 1), cfg.get("LOGIN_REWARD_MAX", 10))
    return policy_cls()


def compute_login_reward(account: Account, policy: RewardPolicy | None = None) -> int:
    return (policy or get_policy()).compute(account)


def _next_streak(previous_login: datetime | None, now: datetime, streak: int) -> int:
    if previous_login is None:
        return 1
    if previous_login.date() == now.date():
        return max(streak, 1)
    if previous_login.date() == (now - timedelta(days=1)).date():
        return streak + 1
    return 1


def _capture_login(account_id: int, now: datetime) -> tuple[datetime | None, int]:
    account = ledger.get_account(account_id)
    previous_login = account.last_login_at
    streak = _next_streak(previous_login, now, account.login_streak or 0)

    db.session.execute(
        update(Account)
        .where(Account.id == account_id)
        .values(login_count=Account.login_count + 1, last_login_at=now, login_streak=streak)
        .execution_options(synchronize_session=False)
    )
    db.session.expire(account, ["login_count", "last_login_at", "login_streak"])
    return previous_login, streak


def record_login(account_id: int, policy: RewardPolicy | None = None, now: datetime | None = None) -> int:
    """Capture a login and grant at most one reward per calendar day.

    The login itself (count, timestamp, streak) is committed first. The
    reward is best-effort: any failure is logged and 0 is returned.
    """
    now = now or datetime.utcnow()
    previous_login, _ = ledger.atomic(_capture_login, account_id, now)

    if previous_login is not None and previous_login.date() == now.date():
        current_app.logger.debug("login reward already granted today for account=%s", account_id)
        return 0

    try:
        account = ledger.get_account(account_id)
        coins = compute_login_reward(account, policy)
        if coins <= 0:
            return 0
        entry = ledger.apply_delta(
            account_id,
            coins,
            LedgerReason.LOGIN,
            idempotency_key=f"login:{account_id}:{now.date().isoformat()}",
        )
        # a racing same-day login may already hold the key; report what was actually granted
        return entry.amount
    except Exception:
        current_app.logger.exception("login reward failed for account=%s", account_id)
        return 0
