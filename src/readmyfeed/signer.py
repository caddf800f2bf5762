"""Generate the x-client-transaction-id header X's anti-automation layer expects.

The token is derived from state embedded in the x.com landing page and in the
``ondemand.s`` JS bundle it references. That state rotates, so both are
fetched fresh for every signer; nothing is cached across requests. The
derivation itself is delegated to the ``x_client_transaction`` package.
"""

import logging
import re

import httpx
from bs4 import BeautifulSoup
from x_client_transaction import ClientTransaction

from .errors import SigningFailed

logger = logging.getLogger(__name__)

X_HOME_URL = "https://x.com"
ONDEMAND_URL = "https://abs.twimg.com/responsive-web/client-web/ondemand.s.{}a.js"
ON_DEMAND_RE = re.compile(r"""['"]ondemand\.s['"]:\s*['"](\w*)['"]""")

# Only these go to the static asset host; session cookies stay on x.com.
PUBLIC_HEADERS = ("user-agent", "accept-language")


def _public_headers(headers: dict[str, str]) -> dict[str, str]:
    return {k: v for k, v in headers.items() if k.lower() in PUBLIC_HEADERS}


class TransactionSigner:
    """Signs requests against one freshly fetched copy of the landing page."""

    def __init__(self, transaction: ClientTransaction):
        self._transaction = transaction

    @classmethod
    async def create(
        cls, client: httpx.AsyncClient, headers: dict[str, str]
    ) -> "TransactionSigner":
        """Fetch the landing page and JS bundle, then build the signer.

        Raises:
            SigningFailed: on any fetch or setup error.
        """
        html = await _fetch_text(client, X_HOME_URL, headers, "x.com landing page")
        document = BeautifulSoup(html, "html.parser")

        hashes = ON_DEMAND_RE.findall(html)
        if not hashes:
            raise SigningFailed("Could not find ondemand.s hash in x.com landing page.")

        ondemand_js = await _fetch_text(
            client,
            ONDEMAND_URL.format(hashes[0]),
            _public_headers(headers),
            "ondemand.s bundle",
        )

        try:
            transaction = ClientTransaction(document, ondemand_js)
        except Exception as e:
            raise SigningFailed(
                "Failed to initialise transaction signer.", {"cause": str(e)}
            ) from e
        return cls(transaction)

    def sign(self, method: str, path: str) -> str:
        try:
            token = self._transaction.generate_transaction_id(method=method, path=path)
        except Exception as e:
            raise SigningFailed(
                "Failed to generate x-client-transaction-id.", {"cause": str(e)}
            ) from e
        if not token:
            raise SigningFailed("Transaction signer returned an empty token.")
        return token


async def sign_request(
    client: httpx.AsyncClient, method: str, path: str, headers: dict[str, str]
) -> str:
    """Fetch fresh page state and sign a single request."""
    logger.debug("Generating x-client-transaction-id for %s %s", method, path)
    signer = await TransactionSigner.create(client, headers)
    return signer.sign(method, path)


async def _fetch_text(
    client: httpx.AsyncClient, url: str, headers: dict[str, str], label: str
) -> str:
    try:
        response = await client.get(url, headers=headers)
    except httpx.HTTPError as e:
        raise SigningFailed(f"Failed to fetch {label}.", {"cause": str(e)}) from e

    if response.status_code != 200:
        raise SigningFailed(
            f"Failed to fetch {label} (status={response.status_code}).",
            {"status": response.status_code},
        )
    if not response.text:
        raise SigningFailed(f"Failed to fetch {label} (empty response).")
    return response.text
