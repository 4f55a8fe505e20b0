"""Credential lookup for SQL Server logins.

Credentials are never passed on the command line. A job receives a
*credential reference* instead, which is resolved against the OS keyring
(Windows Credential Manager, macOS Keychain, Secret Service on Linux).

A reference has one of two forms:

- ``service``: the keyring entry is looked up without a username, which
  works for backends that can enumerate credentials for a service.
- ``service/username``: the username is fixed and only the password is
  looked up.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import keyring
from keyring.errors import KeyringError


class CredentialNotFound(LookupError):
    """Raised when a credential reference does not resolve to a login."""


@dataclass(frozen=True)
class Credentials:
    """A resolved SQL Server login."""

    username: str
    password: str = field(repr=False)


def parse_reference(reference: str) -> tuple[str, str | None]:
    """Split `service/username` into (service, username)."""
    ref = (reference or "").strip()
    if not ref:
        raise CredentialNotFound("Credential reference is empty.")
    service, sep, username = ref.partition("/")
    if not service:
        raise CredentialNotFound(f"Invalid credential reference: '{reference}'")
    if sep and not username:
        raise CredentialNotFound(f"Invalid credential reference: '{reference}'")
    return service, username or None


def resolve_credentials(reference: str) -> Credentials:
    """
    Resolve a credential reference to a username/password pair.

    Raises:
        CredentialNotFound: If the keyring holds no matching entry or the
            keyring backend is unavailable.
    """
    service, username = parse_reference(reference)
    try:
        if username:
            password = keyring.get_password(service, username)
            if password is None:
                raise CredentialNotFound(
                    f"No password stored for '{username}' in keyring service '{service}'."
                )
            return Credentials(username=username, password=password)

        cred = keyring.get_credential(service, None)
    except KeyringError as exc:
        raise CredentialNotFound(f"Keyring lookup failed for '{service}': {exc}") from exc

    if cred is None or not cred.username:
        raise CredentialNotFound(f"No credential stored for keyring service '{service}'.")
    return Credentials(username=cred.username, password=cred.password or "")
