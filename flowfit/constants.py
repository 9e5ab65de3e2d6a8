"""
flowfit/constants.py

Store keys, notification identifiers and ledger limits.
Every persisted key and user-facing notification text is referenced from this module.
"""

from flowfit.schemas import ReminderKind

# ── Key-value store keys ─────────────────────────────────────
STEP_GOAL_KEY: str = "step_goal"
CHALLENGE_INTENT_KEY: str = "challenge_intent"
CUSTODIAL_KEYSTORE_KEY: str = "custodial_keystore"
LEGACY_PRIVATE_KEY_KEY: str = "privateKey"  # plaintext, migrated on first read

# ── Reminder kinds ───────────────────────────────────────────
# kind -> (store key, notification id, title, body)
REMINDER_SPECS: dict[ReminderKind, tuple[str, str, str, str]] = {
    ReminderKind.DAILY_GOAL_REVIEW: (
        "daily_steps_time",
        "daily-steps-goal",
        "🚶 Daily Steps Goal",
        "Time to review your daily steps goal!",
    ),
    ReminderKind.WALKING_REMINDER: (
        "reminder_time",
        "steps-reminder",
        "👟 Get Walking!",
        "Don't forget to hit your steps goal!",
    ),
}

# ── Goal history ─────────────────────────────────────────────
GOAL_HISTORY_DAYS: int = 10

# ── Ledger ───────────────────────────────────────────────────
ZERO_ADDRESS: str = "0x0000000000000000000000000000000000000000"
MAX_STAKE_DECIMALS: int = 18  # wei precision
MAX_UINT256: int = 2**256 - 1
