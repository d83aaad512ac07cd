"""Local accounts: records and the store contract the auth flow depends on."""

from idlink.accounts.models import LoginSession, SignupTicket, User, UserLogin
from idlink.accounts.store import (
    AccountStore,
    AccountStoreError,
    LoginTakenError,
    MemoryAccountStore,
    UsernameTakenError,
)

__all__ = [
    "AccountStore",
    "AccountStoreError",
    "LoginSession",
    "LoginTakenError",
    "MemoryAccountStore",
    "SignupTicket",
    "User",
    "UserLogin",
    "UsernameTakenError",
]
