from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from django.conf import settings

from ..errors import NotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BankAccount:
    """Store account a customer deposits into for offline payment."""

    bank_name: str
    account_title: str
    account_number: str
    iban: str = ""
    branch_code: str = ""
    branch_name: str = ""
    is_primary: bool = False


def _text(entry: dict[str, Any], key: str) -> str:
    return str(entry.get(key) or "").strip()


def _parse_account(entry: Any) -> BankAccount | None:
    if not isinstance(entry, dict):
        return None
    account = BankAccount(
        bank_name=_text(entry, "bank_name"),
        account_title=_text(entry, "account_title"),
        account_number=_text(entry, "account_number"),
        iban=_text(entry, "iban").replace(" ", "").upper(),
        branch_code=_text(entry, "branch_code"),
        branch_name=_text(entry, "branch_name"),
        is_primary=bool(entry.get("is_primary")),
    )
    if not account.bank_name or not (account.account_number or account.iban):
        return None
    return account


def list_bank_accounts() -> list[BankAccount]:
    accounts: list[BankAccount] = []
    for entry in getattr(settings, "STOREFRONT_BANK_ACCOUNTS", None) or []:
        account = _parse_account(entry)
        if account is None:
            logger.warning("Skipping incomplete STOREFRONT_BANK_ACCOUNTS entry: %r", entry)
            continue
        accounts.append(account)
    return accounts


def get_primary_bank_account() -> BankAccount:
    """Return the account flagged primary, or the first configured one."""
    accounts = list_bank_accounts()
    if not accounts:
        raise NotFoundError("BankAccount", "primary")
    return next((account for account in accounts if account.is_primary), accounts[0])
