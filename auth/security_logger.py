"""Activity log for the auth audit trail.

Each outcome is appended to the active_logs table (never updated or deleted)
and mirrored to the ``auth.security`` logger.
"""

import logging
from uuid import UUID

from auth.store import AuthStore
from auth.types import ActiveLog, AuthAction, LogStatus

security_log = logging.getLogger("auth.security")


class SecurityLogger:
    """Append-only security event logger."""

    def __init__(self, store: AuthStore):
        self._store = store

    def log(
        self,
        action: AuthAction,
        account_id: UUID,
        client_ip: str,
        user_agent: str,
        status: LogStatus = LogStatus.SUCCESS,
        reason: str | None = None,
    ) -> ActiveLog:
        """Append one activity row for the account."""
        entry = self._store.append_active_log(
            account_id=account_id,
            action=action,
            client_ip=client_ip,
            user_agent=user_agent,
            status=status,
            reason=reason,
        )

        level = logging.INFO if status == LogStatus.SUCCESS else logging.WARNING
        suffix = f" ({reason})" if reason else ""
        security_log.log(
            level,
            f"{action.value} {status.value} account={account_id} ip={client_ip}{suffix}",
        )
        return entry

    def get_recent_events(self, account_id: UUID, limit: int = 100) -> list[ActiveLog]:
        """Newest first."""
        return self._store.list_active_logs(account_id, limit=limit)
