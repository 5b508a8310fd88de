"""
Chain Data Service

Async access to balances, UTXOs, protocol parameters, pool and account
state, and transaction broadcast. Providers are tried in order; each call is
rate limited per provider and operation, retried with exponential backoff,
and only surfaces an error once every provider has failed.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Sequence, TypeVar

import httpx
import pydantic
from blockfrost import ApiError, BlockFrostApi

from cardano_delegation.addresses import pool_id_to_bech32
from cardano_delegation.config import Settings, settings as default_settings
from cardano_delegation.enums import ProviderName
from cardano_delegation.errors import CardanoModuleError, ErrorCode, NetworkOperationError
from cardano_delegation.schemas import AccountInfo, ChainTip, StakePool
from cardano_delegation.security import RateLimiter, default_request_headers, sanitize_error_message

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS = (httpx.HTTPError, ApiError, asyncio.TimeoutError, OSError, NetworkOperationError)
# A provider record that cannot be parsed fails over without retrying
MALFORMED_RESPONSE_ERRORS = (pydantic.ValidationError, KeyError, ValueError, TypeError, AttributeError)


def _int(value: Any, default: int = 0) -> int:
    if value is None:
        return default
    return int(float(value)) if isinstance(value, str) and "." in value else int(value)


class DataProvider(ABC):
    """Boundary to one chain data source"""

    name: str

    @abstractmethod
    async def get_balance(self, address: str) -> int:
        """Lovelace balance of an address"""

    @abstractmethod
    async def get_utxos(self, address: str) -> list[dict]:
        """Raw UTXO records of an address, in the provider's own shape"""

    @abstractmethod
    async def get_protocol_parameters(self) -> dict:
        """Raw protocol parameters, in the provider's own shape"""

    @abstractmethod
    async def get_stake_pool_details(self, pool_id: str) -> StakePool:
        """Pool snapshot for a 56-hex pool key hash"""

    @abstractmethod
    async def get_account_info(self, stake_address: str) -> AccountInfo:
        """Registration / delegation state of a stake address"""

    @abstractmethod
    async def get_chain_tip(self) -> ChainTip:
        """Latest epoch and slot"""

    @abstractmethod
    async def broadcast_transaction(self, cbor_hex: str) -> str:
        """Submit a signed transaction and return its hash"""

    async def aclose(self) -> None:
        return None


# ============================================================================
# Koios
# ============================================================================


class KoiosProvider(DataProvider):
    """
    Koios REST provider (https://api.koios.rest)

    Args:
        base_url: API root including ``/api/v1``
        api_token: Optional bearer token for higher limits
        client: Pre-built AsyncClient (tests inject a MockTransport client)
    """

    name = ProviderName.KOIOS.value

    def __init__(
        self,
        base_url: str,
        api_token: str | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        headers = default_request_headers()
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"
        self.client = client or httpx.AsyncClient(base_url=base_url, headers=headers, timeout=timeout)

    async def _get(self, path: str, params: dict | None = None) -> Any:
        response = await self.client.get(path, params=params)
        response.raise_for_status()
        return response.json()

    async def _post(self, path: str, payload: dict) -> Any:
        response = await self.client.post(path, json=payload)
        response.raise_for_status()
        return response.json()

    @staticmethod
    def _single(rows: Any, what: str) -> dict:
        if not isinstance(rows, list) or not rows:
            raise NetworkOperationError(ErrorCode.API_ERROR, f"Koios returned no {what}")
        return rows[0]

    async def get_balance(self, address: str) -> int:
        rows = await self._post("/address_info", {"_addresses": [address]})
        if not rows:
            return 0
        return _int(rows[0].get("balance"))

    async def get_utxos(self, address: str) -> list[dict]:
        return await self._post("/address_utxos", {"_addresses": [address], "_extended": True})

    async def get_protocol_parameters(self) -> dict:
        rows = await self._get("/epoch_params", params={"limit": 1, "order": "epoch_no.desc"})
        return self._single(rows, "protocol parameters")

    async def get_stake_pool_details(self, pool_id: str) -> StakePool:
        rows = await self._post("/pool_info", {"_pool_bech32_ids": [pool_id_to_bech32(pool_id)]})
        row = self._single(rows, "pool info")
        meta = row.get("meta_json") or {}
        return StakePool(
            pool_id=row.get("pool_id_hex") or pool_id,
            ticker=meta.get("ticker"),
            pledge=_int(row.get("pledge")),
            margin=float(row.get("margin") or 0),
            fixed_cost=_int(row.get("fixed_cost")),
            saturation=float(row.get("live_saturation") or 0) / 100,
            active_stake=_int(row.get("active_stake")),
            live_stake=_int(row.get("live_stake")),
            blocks_lifetime=_int(row.get("block_count")),
            retired=row.get("pool_status") == "retired",
            retiring_epoch=row.get("retiring_epoch"),
        )

    async def get_account_info(self, stake_address: str) -> AccountInfo:
        rows = await self._post("/account_info", {"_stake_addresses": [stake_address]})
        if not rows:
            return AccountInfo(stake_address=stake_address)
        row = rows[0]
        return AccountInfo(
            stake_address=stake_address,
            registered=row.get("status") == "registered",
            pool_id=row.get("delegated_pool"),
            withdrawable_rewards=_int(row.get("rewards_available")),
            deposit=_int(row.get("deposit"), default=0) or None,
        )

    async def get_chain_tip(self) -> ChainTip:
        row = self._single(await self._get("/tip"), "tip")
        return ChainTip(epoch=row.get("epoch_no"), slot=row.get("abs_slot"))

    async def broadcast_transaction(self, cbor_hex: str) -> str:
        response = await self.client.post(
            "/submittx", content=bytes.fromhex(cbor_hex), headers={"Content-Type": "application/cbor"}
        )
        response.raise_for_status()
        return str(response.json())

    async def aclose(self) -> None:
        await self.client.aclose()


# ============================================================================
# Blockfrost
# ============================================================================


class BlockfrostProvider(DataProvider):
    """
    Blockfrost provider

    blockfrost-python is synchronous; calls run in a worker thread.
    """

    name = ProviderName.BLOCKFROST.value

    def __init__(self, project_id: str, base_url: str, api: BlockFrostApi | None = None):
        self.api = api or BlockFrostApi(project_id=project_id, base_url=base_url)

    async def _call(self, method: str, *args, **kwargs) -> Any:
        return await asyncio.to_thread(getattr(self.api, method), *args, return_type="json", **kwargs)

    async def get_balance(self, address: str) -> int:
        info = await self._call("address", address)
        return sum(_int(entry["quantity"]) for entry in info.get("amount", []) if entry.get("unit") == "lovelace")

    async def get_utxos(self, address: str) -> list[dict]:
        try:
            return await self._call("address_utxos", address, gather_pages=True)
        except ApiError as e:
            if e.status_code == 404:
                return []
            raise

    async def get_protocol_parameters(self) -> dict:
        return await self._call("epoch_latest_parameters")

    async def get_stake_pool_details(self, pool_id: str) -> StakePool:
        pool_bech32 = pool_id_to_bech32(pool_id)
        pool = await self._call("pool", pool_bech32)
        try:
            metadata = await self._call("pool_metadata", pool_bech32)
        except ApiError:
            metadata = {}
        updates = await self._call("pool_updates", pool_bech32, gather_pages=True)
        retired, retiring_epoch = await self._retirement(pool_bech32, updates)
        return StakePool(
            pool_id=pool.get("hex") or pool_id,
            ticker=(metadata or {}).get("ticker"),
            pledge=_int(pool.get("declared_pledge")),
            margin=float(pool.get("margin_cost") or 0),
            fixed_cost=_int(pool.get("fixed_cost")),
            saturation=float(pool.get("live_saturation") or 0),
            active_stake=_int(pool.get("active_stake")),
            live_stake=_int(pool.get("live_stake")),
            blocks_lifetime=_int(pool.get("blocks_minted")),
            retired=retired,
            retiring_epoch=retiring_epoch,
        )

    async def _retirement(self, pool_bech32: str, updates: list[dict]) -> tuple[bool, int | None]:
        """
        Read the retirement epoch from the latest retirement certificate

        A pool whose last update is a retirement but whose epoch cannot be
        read is treated as retired.
        """
        if not updates or updates[-1].get("action") != "deregistered":
            return False, None
        tx_hash = updates[-1].get("tx_hash")
        if not tx_hash:
            return True, None
        try:
            retires = await self._call("transaction_pool_retires", tx_hash)
        except ApiError as e:
            logger.debug(f"Retirement certificate lookup failed: {e}")
            return True, None
        for retire in retires:
            if retire.get("pool_id") == pool_bech32:
                return False, _int(retire.get("retiring_epoch"))
        return True, None

    async def get_account_info(self, stake_address: str) -> AccountInfo:
        try:
            account = await self._call("accounts", stake_address)
        except ApiError as e:
            if e.status_code == 404:
                return AccountInfo(stake_address=stake_address)
            raise
        return AccountInfo(
            stake_address=stake_address,
            registered=bool(account.get("active")),
            pool_id=account.get("pool_id"),
            withdrawable_rewards=_int(account.get("withdrawable_amount")),
        )

    async def get_chain_tip(self) -> ChainTip:
        block = await self._call("block_latest")
        return ChainTip(epoch=block.get("epoch"), slot=block.get("slot"))

    async def broadcast_transaction(self, cbor_hex: str) -> str:
        return str(await self._call("transaction_submit_raw", bytes.fromhex(cbor_hex)))


def build_providers(config: Settings | None = None) -> list[DataProvider]:
    """Instantiate the configured providers in failover order"""
    config = config or default_settings
    providers: list[DataProvider] = []
    for name in config.provider_order:
        if name == ProviderName.KOIOS:
            providers.append(KoiosProvider(config.koios_url, config.koios_api_token, config.request_timeout))
        elif name == ProviderName.BLOCKFROST:
            if not config.blockfrost_project_id:
                logger.info("Blockfrost project id not configured, skipping provider")
                continue
            providers.append(BlockfrostProvider(config.blockfrost_project_id, config.blockfrost_url))
    return providers


# ============================================================================
# Failover
# ============================================================================


class CardanoDataService:
    """
    Failover wrapper over an ordered list of providers

    Args:
        providers: Providers in the order they should be tried
        rate_limiter: Limiter shared by all calls through this service
        config: Retry, timeout and rate-limit settings
        sleep: Awaitable used for backoff (tests pass a no-op)
    """

    def __init__(
        self,
        providers: Sequence[DataProvider],
        rate_limiter: RateLimiter | None = None,
        config: Settings | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if not providers:
            raise ValueError("At least one data provider is required")
        self.providers = list(providers)
        self.config = config or default_settings
        self.rate_limiter = rate_limiter or RateLimiter(
            self.config.rate_limit_requests, self.config.rate_limit_window
        )
        self._sleep = sleep

    async def _with_retry(
        self, provider: DataProvider, operation: str, call: Callable[[DataProvider], Awaitable[T]], attempts: int
    ) -> T:
        last_error: BaseException | None = None
        for attempt in range(attempts):
            try:
                return await asyncio.wait_for(call(provider), timeout=self.config.request_timeout)
            except MALFORMED_RESPONSE_ERRORS as e:
                raise NetworkOperationError(
                    ErrorCode.API_ERROR,
                    f"{provider.name} returned an unusable {operation} response: {type(e).__name__}",
                    {"operation": operation, "provider": provider.name},
                    e,
                ) from e
            except RETRYABLE_ERRORS as e:
                last_error = e
                logger.debug(f"{provider.name} {operation} attempt {attempt + 1}/{attempts} failed: {type(e).__name__}")
                if attempt < attempts - 1:
                    delay = min(self.config.retry_base_delay * 2**attempt, self.config.retry_max_delay)
                    await self._sleep(delay)
        raise last_error

    async def execute(
        self,
        operation: str,
        call: Callable[[DataProvider], Awaitable[T]],
        max_requests: int | None = None,
        attempts: int | None = None,
    ) -> T:
        """
        Run ``call`` against each provider until one succeeds

        Raises:
            NetworkOperationError: When every provider failed or was rate
                limited; the message names each provider attempted
        """
        attempts = attempts or self.config.retry_attempts
        errors: list[str] = []
        for provider in self.providers:
            decision = self.rate_limiter.check(f"{provider.name}:{operation}", max_requests)
            if not decision.allowed:
                errors.append(f"{provider.name}: rate limited for {decision.retry_after:.0f}s")
                continue
            try:
                result = await self._with_retry(provider, operation, call, attempts)
            except RETRYABLE_ERRORS as e:
                message = e.message if isinstance(e, CardanoModuleError) else str(e) or type(e).__name__
                errors.append(f"{provider.name}: {sanitize_error_message(message)}")
                logger.warning(f"Provider {provider.name} failed for {operation}, trying next")
                continue
            return result

        raise NetworkOperationError(
            ErrorCode.NETWORK_ERROR,
            f"All data providers failed for {operation}. Errors: {'; '.join(errors)}",
            {"operation": operation, "providers": [p.name for p in self.providers]},
        )

    async def get_balance(self, address: str) -> int:
        return await self.execute("get_balance", lambda p: p.get_balance(address))

    async def get_utxos(self, address: str) -> list[dict]:
        return await self.execute("get_utxos", lambda p: p.get_utxos(address))

    async def get_protocol_parameters(self) -> dict:
        return await self.execute("get_protocol_parameters", lambda p: p.get_protocol_parameters())

    async def get_stake_pool_details(self, pool_id: str) -> StakePool:
        return await self.execute("get_stake_pool_details", lambda p: p.get_stake_pool_details(pool_id))

    async def get_account_info(self, stake_address: str) -> AccountInfo:
        return await self.execute("get_account_info", lambda p: p.get_account_info(stake_address))

    async def get_chain_tip(self) -> ChainTip:
        return await self.execute("get_chain_tip", lambda p: p.get_chain_tip())

    async def broadcast_transaction(self, cbor_hex: str) -> str:
        return await self.execute(
            "broadcast_transaction",
            lambda p: p.broadcast_transaction(cbor_hex),
            max_requests=self.config.broadcast_rate_limit,
            attempts=1,
        )

    async def aclose(self) -> None:
        for provider in self.providers:
            await provider.aclose()
