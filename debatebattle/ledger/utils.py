import os
import logging
from typing import Optional

import requests
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Ensure environment variables from .env are loaded when this module is imported.
load_dotenv()


def _base_url(fqdn: Optional[str] = None) -> str:
    fqdn = fqdn or os.environ.get("LEDGER_BASE_FQDN")
    if not fqdn:
        raise RuntimeError("Environment variable 'LEDGER_BASE_FQDN' is not set")
    return "https://" + fqdn


def open_session(fqdn: Optional[str] = None, timeout: int = 45):
    """Open a requests session to the settlement gateway and fetch CSRF.

    Parameters
    ----------
    fqdn : Optional[str]
        Gateway host name. Falls back to ``LEDGER_BASE_FQDN``.
    timeout : int, default: 45
        Seconds to wait for the bootstrap request.

    Returns
    -------
    tuple[requests.Session, str]
        The initialized session and CSRF token string.

    Raises
    ------
    RuntimeError
        If no gateway host is configured or the session cannot be
        established, including when the server returns no cookies or no CSRF
        token. Any underlying exception is re-raised as a ``RuntimeError``
        with context.
    """
    url = _base_url(fqdn)

    session = requests.Session()
    try:
        response = session.get(url, timeout=timeout)
        response.raise_for_status()

        cookies = session.cookies
        if cookies:
            # Do not log cookie values; just count for diagnostics.
            logger.debug(f"Received {len(cookies)} cookies from ledger gateway")
        else:
            raise RuntimeError("Server did not return any cookies")

        csrf_token = response.cookies.get("csrftoken")
        if csrf_token:
            logger.debug("CSRF token acquired")
            return session, csrf_token
        else:
            raise RuntimeError("Server did not return a CSRF token")

    except Exception as e:
        logger.critical(f"Error occurred while starting ledger session: {e}")
        raise RuntimeError(f"Failed to establish session: {e}") from e


def get_jwt_token(
    session: requests.Session, fqdn: Optional[str] = None, timeout: int = 45
) -> str:
    """Obtain a JWT access token using the settlement admin credentials.

    Parameters
    ----------
    session : requests.Session
        A live session for the settlement gateway.
    fqdn : Optional[str]
        Gateway host name. Falls back to ``LEDGER_BASE_FQDN``.

    Returns
    -------
    str
        The JWT access token string.

    Raises
    ------
    RuntimeError
        If required environment variables are not set.
    requests.HTTPError
        If the login request fails.
    KeyError, ValueError
        If the response payload does not include an ``"access"`` field or is malformed.
    """
    username = os.environ.get("LEDGER_ADMIN_USERNAME")
    password = os.environ.get("LEDGER_ADMIN_PASSWORD")
    if not username or not password:
        raise RuntimeError(
            "Environment variables 'LEDGER_ADMIN_USERNAME' and 'LEDGER_ADMIN_PASSWORD' must be set"
        )
    # Never log raw credentials
    logger.debug("Attempting JWT login with configured ledger admin username")

    url = _base_url(fqdn) + "/api/v1/auth/jwt-token"
    response = session.post(
        url, json={"username": username, "password": password}, timeout=timeout
    )
    response.raise_for_status()

    logger.debug("JWT token response received (content redacted)")
    return response.json()["access"]
