"""Plaid API client for fetching accounts and transactions."""

import json
import logging
import os
import urllib.error
import urllib.request
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from ..exceptions import ConfigurationError, UpstreamError
from ..models.core import PlaidSettings
from ..pipeline.base import AggregationClient
from ..pipeline.window import format_date


logger = logging.getLogger(__name__)


PLAID_ENV_MAP = {
    "sandbox": "https://sandbox.plaid.com",
    "development": "https://development.plaid.com",
    "production": "https://production.plaid.com",
}


class PlaidClient(AggregationClient):
    """Fetches transactions through Plaid's /transactions/get endpoint.

    Pages through the results with count/offset until every transaction in
    the range has been read.
    """

    def __init__(self,
                 client_id: str,
                 secret: str,
                 env: str = "sandbox",
                 page_size: int = 500,
                 timeout: float = 30.0):
        if env not in PLAID_ENV_MAP:
            raise ConfigurationError(
                f"Invalid Plaid environment {env!r}. "
                "Expected one of: sandbox, development, production."
            )
        self.client_id = client_id
        self.secret = secret
        self.env = env
        self.page_size = page_size
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: PlaidSettings) -> "PlaidClient":
        """Build a client from configuration, falling back to environment variables.

        Reads PLAID_CLIENT_ID, PLAID_SECRET and PLAID_ENV when the
        configuration leaves them out.
        """
        client_id = settings.client_id or os.getenv("PLAID_CLIENT_ID")
        secret = settings.secret or os.getenv("PLAID_SECRET")
        env = os.getenv("PLAID_ENV", settings.env).lower()

        if not client_id:
            raise ConfigurationError("Missing Plaid client id (set plaid.client_id or PLAID_CLIENT_ID)")
        if not secret:
            raise ConfigurationError("Missing Plaid secret (set plaid.secret or PLAID_SECRET)")

        return cls(
            client_id=client_id,
            secret=secret,
            env=env,
            page_size=settings.page_size,
            timeout=settings.timeout,
        )

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = PLAID_ENV_MAP[self.env] + path
        data = json.dumps(payload).encode("utf-8")
        request = urllib.request.Request(
            url,
            data=data,
            headers={"Content-Type": "application/json"},
            method="POST",
        )

        try:
            with urllib.request.urlopen(request, timeout=self.timeout) as response:
                body = response.read().decode("utf-8")
        except urllib.error.HTTPError as e:
            error_body = e.read().decode("utf-8", "ignore")
            raise UpstreamError(f"Plaid API error ({e.code}): {error_body}") from e
        except urllib.error.URLError as e:
            raise UpstreamError(f"Network error calling Plaid API: {e}") from e
        except OSError as e:
            raise UpstreamError(f"Network error calling Plaid API: {e}") from e

        try:
            return json.loads(body)
        except json.JSONDecodeError as e:
            raise UpstreamError(f"Failed to parse Plaid response as JSON: {e}") from e

    def fetch_transactions(
        self,
        start_date: date,
        end_date: date,
        access_token: str
    ) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
        accounts: Optional[List[Dict[str, Any]]] = None
        transactions: List[Dict[str, Any]] = []
        total: Optional[int] = None

        while total is None or len(transactions) < total:
            payload = {
                "client_id": self.client_id,
                "secret": self.secret,
                "access_token": access_token,
                "start_date": format_date(start_date),
                "end_date": format_date(end_date),
                "options": {
                    "count": self.page_size,
                    "offset": len(transactions),
                },
            }
            response = self._post("/transactions/get", payload)

            page = response.get("transactions")
            if not isinstance(page, list):
                raise UpstreamError("Plaid response is missing the transactions list")
            if accounts is None:
                accounts = response.get("accounts") or []
            total = int(response.get("total_transactions", len(page)))

            transactions.extend(page)
            if not page:
                break

        logger.info(
            f"Fetched {len(transactions)} transactions and {len(accounts or [])} accounts "
            f"from {format_date(start_date)} to {format_date(end_date)}"
        )
        return accounts or [], transactions
