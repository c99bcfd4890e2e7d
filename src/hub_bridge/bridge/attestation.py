"""Attestation oracle polling.

A burn can only be minted once the oracle has signed it. Signing waits for
source-chain finality, which on testnets routinely takes several minutes, so
"not found" is the normal answer for a while and never an error.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

import httpx

from hub_bridge.bridge.errors import AttestationTimeout
from hub_bridge.bridge.models import Attestation, AttestationStatus
from hub_bridge.config import AttestationConfig

logger = logging.getLogger("hub_bridge.bridge.attestation")

Sleep = Callable[[float], Awaitable[None]]


class AttestationPoller:
    """Polls ``/v2/messages/{domain}`` until a burn is attested.

    Parameters
    ----------
    config:
        Oracle base URL and poll budget.
    http:
        Optional ``httpx.AsyncClient``; one is created (and owned) if omitted.
    sleep:
        Awaitable used between polls. Tests inject a recorder.
    """

    def __init__(
        self,
        config: AttestationConfig | None = None,
        http: httpx.AsyncClient | None = None,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.config = config or AttestationConfig()
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(
            base_url=self.config.base_url, timeout=self.config.timeout_seconds
        )
        self._sleep = sleep

    async def close(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def fetch_attestation(self, burn_tx_hash: str, source_domain: int) -> Optional[Attestation]:
        """One stateless poll. ``None`` means "not yet", whatever the reason."""
        try:
            resp = await self._http.get(
                f"/v2/messages/{source_domain}",
                params={"transactionHash": burn_tx_hash},
            )
        except httpx.HTTPError as exc:
            logger.warning(f"Attestation service unreachable: {exc}")
            return None

        if resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            logger.warning(f"Attestation service returned {resp.status_code} for {burn_tx_hash}")
            return None

        try:
            payload = resp.json()
        except ValueError:
            logger.warning(f"Unparseable attestation response for {burn_tx_hash}")
            return None
        messages = (payload.get("messages") or []) if isinstance(payload, dict) else None
        if not isinstance(messages, list):
            logger.warning(f"Unexpected attestation response shape for {burn_tx_hash}")
            return None
        messages = [m for m in messages if isinstance(m, dict)]

        for msg in messages:
            if msg.get("status") != AttestationStatus.COMPLETE.value:
                continue
            message, attestation = msg.get("message"), msg.get("attestation")
            if message and attestation and attestation != "PENDING":
                return Attestation(message=message, attestation=attestation)
        if messages:
            logger.debug(f"Attestation for {burn_tx_hash} status={messages[0].get('status')}")
        return None

    async def await_attestation(self, burn_tx_hash: str, source_domain: int) -> Attestation:
        """Poll until complete; raise :class:`AttestationTimeout` when the budget runs out."""
        attempts = self.config.max_attempts
        logger.info(f"Waiting for attestation of {burn_tx_hash} (domain {source_domain})")
        for attempt in range(1, attempts + 1):
            found = await self.fetch_attestation(burn_tx_hash, source_domain)
            if found is not None:
                logger.info(f"Attestation received for {burn_tx_hash} after {attempt} polls")
                return found
            logger.debug(f"Attestation pending ({attempt}/{attempts})")
            if attempt < attempts:
                await self._sleep(self.config.poll_interval_seconds)
        raise AttestationTimeout(burn_tx_hash, attempts)
