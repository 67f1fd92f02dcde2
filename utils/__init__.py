# Shared utilities
from utils.timezone import now_utc, to_utc
