"""Connected calendar accounts: attach, default selection, disconnect.

The "exactly one default" rule spans several patches with no transaction
around them.  A crash in between can leave zero or two defaults; readers
treat the first default found as canonical (``Host.default_account``).
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Optional

from meetings.calendar_providers.base import CalendarProvider
from meetings.errors import NotFound, QuotaExceeded, Unauthorized
from meetings.hosts import HostService
from meetings.models import ConnectedAccount, Host
from meetings.quota import plan_for, plan_limits
from meetings.reconciler import redact_pii
from meetings.repository import Repository

log = logging.getLogger("meetings.accounts")


def can_connect_more(host: Host) -> bool:
    limit = plan_limits(plan_for(host))["max_calendars"]
    return limit is None or len(host.connected_accounts) < limit


class AccountService:
    def __init__(
        self,
        repository: Repository,
        provider: CalendarProvider,
        hosts: Optional[HostService] = None,
    ) -> None:
        self.repository = repository
        self.provider = provider
        self.hosts = hosts or HostService(repository)

    async def _host_for(self, identity: Optional[str]) -> Host:
        if not identity:
            raise Unauthorized("Not authenticated")
        host = await self.repository.get_host_by_identity(identity)
        if host is None:
            raise NotFound("Host not found")
        return host

    @staticmethod
    def _account(host: Host, account_key: str) -> ConnectedAccount:
        for account in host.connected_accounts:
            if account.key == account_key:
                return account
        raise NotFound("Account not found")

    async def connected_count(self, identity: Optional[str]) -> int:
        if not identity:
            return 0
        host = await self.repository.get_host_by_identity(identity)
        return len(host.connected_accounts) if host else 0

    async def attach(
        self,
        identity: Optional[str],
        account_id: str,
        email: str,
        access_token: str,
        refresh_token: Optional[str] = None,
        expiry: Optional[datetime] = None,
        name: str = "",
    ) -> ConnectedAccount:
        """Store tokens obtained from the OAuth exchange.

        Reconnecting an already attached account only refreshes its tokens.
        A new account is subject to the plan's calendar limit and becomes
        the default if it is the host's first.
        """
        host = await self.hosts.ensure_host(identity, name=name, email=email)

        for existing in host.connected_accounts:
            if existing.account_id == account_id:
                await self.repository.update_account_tokens(
                    host.id, existing.key, access_token, expiry, refresh_token
                )
                log.info("Updated tokens for account %s", redact_pii(email))
                return existing.model_copy(
                    update={
                        "access_token": access_token,
                        "refresh_token": refresh_token or existing.refresh_token,
                        "expiry": expiry,
                    }
                )

        if not can_connect_more(host):
            raise QuotaExceeded("Calendar limit reached for your plan")

        account = ConnectedAccount(
            key=uuid.uuid4().hex,
            account_id=account_id,
            email=email,
            access_token=access_token,
            refresh_token=refresh_token or "",
            expiry=expiry,
            is_default=not host.connected_accounts,
        )
        await self.repository.append_account(host.id, account)
        log.info("Connected account %s to host %s", redact_pii(email), host.id)
        return account

    async def set_default(self, identity: Optional[str], account_key: str) -> None:
        """Make ``account_key`` the only default. Safe to repeat."""
        host = await self._host_for(identity)
        self._account(host, account_key)

        for account in host.connected_accounts:
            if account.key != account_key and account.is_default:
                await self.repository.set_account_default_flag(host.id, account.key, False)
        await self.repository.set_account_default_flag(host.id, account_key, True)
        log.info("Host %s default account is now %s", host.id, account_key)

    async def disconnect(self, identity: Optional[str], account_key: str) -> None:
        host = await self._host_for(identity)
        account = self._account(host, account_key)

        if account.access_token:
            await self.provider.revoke_token(account.access_token)

        remaining = [a for a in host.connected_accounts if a.key != account_key]
        await self.repository.remove_account(host.id, account_key)
        log.info("Disconnected account %s from host %s", redact_pii(account.email), host.id)

        if account.is_default and remaining:
            await self.repository.set_account_default_flag(host.id, remaining[0].key, True)

    async def on_token_refresh(
        self, account: ConnectedAccount, access_token: str, expiry: datetime
    ) -> None:
        """Persist a token the calendar provider refreshed."""
        host = await self.repository.get_host_by_account_key(account.key)
        if host is None:
            log.warning("Refreshed token for unknown account %s", account.key)
            return
        await self.repository.update_account_tokens(host.id, account.key, access_token, expiry)
