import logging
import os
from typing import Any, Mapping, Optional
from urllib.parse import urljoin

import requests
from dotenv import load_dotenv

from .utils import get_jwt_token, open_session
from ..exceptions import LedgerError

logger = logging.getLogger(__name__)


class LedgerClient:
    """Settlement gateway client used to declare battle winners on-ledger."""

    def __init__(self, base_fqdn: Optional[str] = None, timeout: int = 45):
        load_dotenv()
        fqdn = base_fqdn or os.getenv("LEDGER_BASE_FQDN")
        if not fqdn:
            raise ValueError("Environment variable 'LEDGER_BASE_FQDN' is not set")

        self.base_url = f"https://{fqdn}".rstrip("/")
        self.timeout = timeout
        session_info = open_session(fqdn, timeout=timeout)
        if not session_info or len(session_info) != 2:
            raise ValueError("open_session() must return (session, csrf_token)")
        self.session, self.csrf = session_info
        self.jwt = get_jwt_token(self.session, fqdn, timeout=timeout)

    # -------- headers --------
    @property
    def public_headers(self) -> Mapping[str, str]:
        return {"Accept": "application/json"}

    @property
    def auth_headers(self) -> Mapping[str, str]:
        return {"Accept": "application/json", "Authorization": f"Bearer {self.jwt}"}

    @property
    def auth_csrf_headers(self) -> Mapping[str, str]:
        return {**self.auth_headers, "X-CSRFTOKEN": self.csrf}

    # -------- core request --------
    def _request(
        self,
        method: str,
        path: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
    ) -> Any:
        url = urljoin(self.base_url + "/", path.lstrip("/"))
        try:
            r = self.session.request(
                method=method.upper(),
                url=url,
                headers=headers or self.public_headers,
                params=params,
                json=json,
                timeout=self.timeout,
            )
            r.raise_for_status()
        except requests.RequestException as e:
            raise LedgerError(f"{method.upper()} {path} failed: {e}") from e
        return r.json() if r.content else None

    # -------- API callers --------
    def get_debate(self, debate_id: int) -> dict:
        """Return the on-ledger state of a debate, including ``isCompleted``."""
        return self._request(
            "GET", f"/api/v1/debates/{debate_id}", headers=self.auth_headers
        )

    def is_debate_completed(self, debate_id: int) -> bool:
        debate = self.get_debate(debate_id) or {}
        return bool(debate.get("isCompleted"))

    def declare_winner(self, debate_id: int, winner_address: str) -> dict:
        """Declare ``winner_address`` the winner of ``debate_id``.

        Returns the transaction receipt, which carries at least ``tx_hash``.
        """
        logger.info("Declaring winner for debate %s", debate_id)
        receipt = self._request(
            "POST",
            f"/api/v1/debates/{debate_id}/winner",
            headers=self.auth_csrf_headers,
            json={"winner_address": winner_address},
        )
        if not isinstance(receipt, dict) or not receipt.get("tx_hash"):
            raise LedgerError(f"Ledger returned no transaction hash for debate {debate_id}")
        return receipt
