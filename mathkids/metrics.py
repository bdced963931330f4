from prometheus_client import Counter

LOGIN_ATTEMPTS = Counter(
    "mathkids_login_attempts_total",
    "Login attempts by outcome",
    ["outcome"],
)
PASSWORD_RESET_EVENTS = Counter(
    "mathkids_password_reset_events_total",
    "Password reset requests and redemptions by outcome",
    ["event", "outcome"],
)
EXPIRED_TOKENS_PURGED = Counter(
    "mathkids_expired_tokens_purged_total",
    "Expired tokens deleted by the sweep",
    ["kind"],
)
