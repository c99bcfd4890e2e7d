"""Async client for the developer-controlled wallet (custody) REST API.

Only the endpoints the bridge needs are wrapped. Every mutating request
carries a caller-supplied idempotency key and a freshly encrypted entity
secret; the service rejects reused ciphertexts.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Optional

import httpx
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding

from hub_bridge.config import CustodyConfig, is_unresolved

logger = logging.getLogger("hub_bridge.wallet.custody")

# Job states after which no on-chain hash will ever appear.
FAILED_STATES = frozenset({"FAILED", "CANCELLED", "DENIED"})


class CustodyError(RuntimeError):
    """A custody API call failed.

    ``retryable`` is true for transport errors, rate limiting and 5xx
    responses; 4xx responses mean the request itself was wrong.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        *,
        retryable: bool | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        if retryable is None:
            retryable = status_code is None or status_code == 429 or status_code >= 500
        self.retryable = retryable


class CustodyClient:
    """Thin async wrapper around the custody REST API.

    Parameters
    ----------
    config:
        The ``custody`` section of the bridge configuration.
    http:
        Optional pre-built ``httpx.AsyncClient`` (tests pass one with a
        ``MockTransport``). When omitted a client is created and owned here.
    """

    def __init__(self, config: CustodyConfig, http: httpx.AsyncClient | None = None) -> None:
        self.config = config
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(
            base_url=config.base_url, timeout=config.timeout_seconds
        )
        self._public_key: Any = None

    async def close(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _headers(self) -> dict[str, str]:
        if is_unresolved(self.config.api_key):
            raise CustodyError(
                "Custody API key not configured. Set CIRCLE_API_KEY or custody.api_key.",
                retryable=False,
            )
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict] = None,
        json: Optional[dict] = None,
    ) -> dict:
        try:
            resp = await self._http.request(
                method, path, params=params, json=json, headers=self._headers()
            )
        except httpx.HTTPError as exc:
            raise CustodyError(f"Custody API unreachable: {exc}") from exc
        if resp.status_code >= 400:
            try:
                data = resp.json()
            except ValueError:
                data = resp.text
            raise CustodyError(
                f"Custody API error ({resp.status_code}) on {method} {path}: {data}",
                status_code=resp.status_code,
            )
        if not resp.content:
            return {}
        try:
            body = resp.json()
        except ValueError as exc:
            raise CustodyError(
                f"Custody API returned a non-JSON body on {method} {path}",
                status_code=resp.status_code,
                retryable=True,
            ) from exc
        if not isinstance(body, dict):
            raise CustodyError(
                f"Custody API returned an unexpected body on {method} {path}",
                status_code=resp.status_code,
                retryable=True,
            )
        return body.get("data") or {}

    async def _entity_secret_ciphertext(self) -> str:
        """Encrypt the entity secret with the service's RSA key (OAEP/SHA-256)."""
        if is_unresolved(self.config.entity_secret):
            raise CustodyError(
                "Entity secret not configured. Set CIRCLE_ENTITY_SECRET or custody.entity_secret.",
                retryable=False,
            )
        if self._public_key is None:
            data = await self._request("GET", "/config/entity/publicKey")
            pem = data.get("publicKey") or ""
            try:
                self._public_key = serialization.load_pem_public_key(pem.encode("utf-8"))
            except ValueError as exc:
                raise CustodyError(
                    f"Custody returned an unusable entity public key: {exc}", retryable=False
                ) from exc
        try:
            secret = bytes.fromhex(self.config.entity_secret)
        except ValueError as exc:
            raise CustodyError(
                "Entity secret must be a hex string.", retryable=False
            ) from exc
        ciphertext = self._public_key.encrypt(
            secret,
            padding.OAEP(
                mgf=padding.MGF1(algorithm=hashes.SHA256()),
                algorithm=hashes.SHA256(),
                label=None,
            ),
        )
        return base64.b64encode(ciphertext).decode("ascii")

    async def _mutate(self, path: str, body: dict, idempotency_key: str) -> dict:
        payload = dict(body)
        payload["idempotencyKey"] = idempotency_key
        payload["entitySecretCiphertext"] = await self._entity_secret_ciphertext()
        return await self._request("POST", path, json=payload)

    # ------------------------------------------------------------------
    # Wallet sets and wallets
    # ------------------------------------------------------------------

    async def list_wallet_sets(self) -> list[dict]:
        data = await self._request("GET", "/walletSets")
        return data.get("walletSets") or []

    async def create_wallet_set(self, name: str, idempotency_key: str) -> dict:
        data = await self._mutate(
            "/developer/walletSets", {"name": name}, idempotency_key
        )
        return data.get("walletSet") or {}

    async def list_wallets(self, wallet_set_id: str, ref_id: str) -> list[dict]:
        """List wallets tagged with *ref_id* (the internal user id)."""
        data = await self._request(
            "GET",
            "/wallets",
            params={"walletSetId": wallet_set_id, "refId": ref_id, "pageSize": 50},
        )
        return data.get("wallets") or []

    async def create_wallets(
        self,
        wallet_set_id: str,
        blockchains: list[str],
        account_type: str,
        metadata: dict,
        idempotency_key: str,
    ) -> list[dict]:
        """Create one wallet per blockchain in a single batched call.

        *metadata* is a single owner record applied to every blockchain;
        the service derives the same address across EVM chains only when
        they are created together.
        """
        data = await self._mutate(
            "/developer/wallets",
            {
                "walletSetId": wallet_set_id,
                "blockchains": blockchains,
                "accountType": account_type,
                "count": 1,
                "metadata": [metadata],
            },
            idempotency_key,
        )
        return data.get("wallets") or []

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def create_transfer(
        self,
        wallet_id: str,
        blockchain: str,
        destination_address: str,
        amount: str,
        token_address: str | None,
        idempotency_key: str,
    ) -> dict:
        """Queue a token (or native, when *token_address* is None) transfer.

        *amount* is a human decimal string, not atomic units.
        """
        body: dict[str, Any] = {
            "walletId": wallet_id,
            "blockchain": blockchain,
            "destinationAddress": destination_address,
            "amounts": [amount],
            "feeLevel": self.config.fee_level,
        }
        if token_address:
            body["tokenAddress"] = token_address
        return await self._mutate("/developer/transactions/transfer", body, idempotency_key)

    async def create_contract_execution(
        self,
        wallet_id: str,
        contract_address: str,
        function_signature: str,
        parameters: list,
        idempotency_key: str,
    ) -> dict:
        return await self._mutate(
            "/developer/transactions/contractExecution",
            {
                "walletId": wallet_id,
                "contractAddress": contract_address,
                "abiFunctionSignature": function_signature,
                "abiParameters": parameters,
                "feeLevel": self.config.fee_level,
            },
            idempotency_key,
        )

    async def get_transaction(self, transaction_id: str) -> dict:
        data = await self._request("GET", f"/transactions/{transaction_id}")
        return data.get("transaction") or {}

    async def get_token_balances(
        self, wallet_id: str, token_address: str | None = None
    ) -> list[dict]:
        params = {"tokenAddress": token_address} if token_address else None
        data = await self._request("GET", f"/wallets/{wallet_id}/balances", params=params)
        return data.get("tokenBalances") or []
