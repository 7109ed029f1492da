"""Chain gateway: the keeper's only door to the Casper network."""

import asyncio

from typing import Any, Protocol

import httpx

from stayer_keeper.casper.deploy import (
    Deploy,
    ExecutableDeployItem,
    StoredContractByHash,
    StoredVersionedContractByHash,
    build_deploy,
    proxy_caller_session,
)
from stayer_keeper.casper.encoder import RuntimeArgs
from stayer_keeper.casper.entry_points import (
    EntryPointArgs,
    NativeDelegateArgs,
    NativeUndelegateArgs,
)
from stayer_keeper.casper.keys import KeeperSigner
from stayer_keeper.casper.models import ConfirmationResult, ValidatorInfo
from stayer_keeper.helpers.constants import (
    CONFIRMATION_POLL_INTERVAL,
    CONFIRMATION_TIMEOUT,
    DEFAULT_AUCTION_CONTRACT_HASH,
    DEFAULT_CHAIN_NAME,
    DELEGATION_PAYMENT,
)
from stayer_keeper.helpers.http import retry_with_backoff
from stayer_keeper.helpers.logging import get_logger
from stayer_keeper.helpers.parsers import normalize_public_key, parse_hash, parse_u512
from stayer_keeper.helpers.rpc import JsonRpcError, RPCClient
from stayer_keeper.helpers.rpc_models import (
    AuctionInfoResult,
    AuctionState,
    StatusResult,
)


class ChainGatewayError(Exception):
    """Raised when the chain cannot serve a request or rejects a deploy."""


class ChainGateway(Protocol):
    """Async chain operations the keeper core depends on."""

    async def get_current_era(self) -> int: ...

    async def get_validators(self) -> list[ValidatorInfo]: ...

    async def submit_transaction(
        self,
        target_contract: str,
        entry_point: str,
        args: RuntimeArgs,
        payment_amount: int,
    ) -> str: ...

    async def submit_payable_transaction(
        self,
        target_contract: str,
        entry_point: str,
        args: RuntimeArgs,
        attached_value: int,
        payment_amount: int,
    ) -> str: ...

    async def wait_for_confirmation(
        self,
        transaction_hash: str,
        timeout: float = CONFIRMATION_TIMEOUT,
        poll_interval: float = CONFIRMATION_POLL_INTERVAL,
    ) -> ConfirmationResult: ...

    async def native_delegate(self, validator_public_key: str, amount: int) -> str: ...

    async def native_undelegate(self, validator_public_key: str, amount: int) -> str: ...

    async def get_total_delegation(self) -> int: ...


async def submit_call(
    gateway: ChainGateway,
    target_contract: str,
    call: EntryPointArgs,
    payment_amount: int,
) -> str:
    """Submit a typed entry point call and return the transaction hash."""
    return await gateway.submit_transaction(
        target_contract, call.entry_point, call.to_runtime_args(), payment_amount
    )


def parse_execution_result(result: dict[str, Any]) -> tuple[bool, str | None] | None:
    """Extract ``(success, error_message)`` from an ``info_get_deploy`` result.

    Returns None while the deploy has not been executed yet. Handles both
    the 1.x ``execution_results`` list and the 2.x ``execution_info`` shape.
    """
    execution_info = result.get("execution_info")
    if execution_info:
        execution_result = execution_info.get("execution_result")
        if not execution_result:
            return None
        # {"Version2": {...}} or {"Version1": {"Success"|"Failure": {...}}}
        if "Version2" in execution_result:
            error = execution_result["Version2"].get("error_message")
            return error is None, error
        if "Version1" in execution_result:
            execution_result = execution_result["Version1"]
        return _parse_v1_result(execution_result)

    execution_results = result.get("execution_results") or []
    if not execution_results:
        return None
    return _parse_v1_result(execution_results[0].get("result", {}))


def _parse_v1_result(result: dict[str, Any]) -> tuple[bool, str | None] | None:
    if "Success" in result:
        return True, None
    if "Failure" in result:
        return False, result["Failure"].get("error_message") or "execution failed"
    return None


class CasperGateway:
    """ChainGateway over Casper node JSON-RPC.

    Deploys are signed by the keeper key and sent with ``account_put_deploy``.
    Read calls retry transient transport errors with exponential backoff;
    submissions are never retried in-loop so a deploy is sent at most once
    per call.
    """

    def __init__(
        self,
        rpc_client: RPCClient,
        http_client: httpx.AsyncClient,
        signer: KeeperSigner,
        *,
        chain_name: str = DEFAULT_CHAIN_NAME,
        auction_contract_hash: str = DEFAULT_AUCTION_CONTRACT_HASH,
        proxy_caller_wasm: bytes | None = None,
    ) -> None:
        """Initialize the gateway.

        Args:
            rpc_client: JSON-RPC client for the node
            http_client: Shared HTTP client
            signer: Keeper account key used for every deploy
            chain_name: Network name placed in deploy headers
            auction_contract_hash: Auction system contract hash
            proxy_caller_wasm: Odra proxy-caller wasm, needed for payable calls
        """
        self.rpc_client = rpc_client
        self.http_client = http_client
        self.signer = signer
        self.chain_name = chain_name
        self.auction_contract_hash = parse_hash(auction_contract_hash)
        self.proxy_caller_wasm = proxy_caller_wasm
        self.logger = get_logger(__name__)

    @property
    def keeper_public_key(self) -> str:
        return self.signer.public_key_hex

    @retry_with_backoff(max_retries=3)
    async def _rpc(self, method: str, params: dict[str, Any] | None = None) -> Any:
        return await self.rpc_client.call(self.http_client, method, params)

    async def _auction_state(self) -> AuctionState:
        result = await self._rpc("state_get_auction_info")
        return AuctionInfoResult.model_validate(result).auction_state

    async def get_current_era(self) -> int:
        status = StatusResult.model_validate(await self._rpc("info_get_status"))
        if status.last_added_block_info is None:
            msg = "Node status has no last added block"
            raise ChainGatewayError(msg)
        return status.last_added_block_info.era_id

    async def get_validators(self) -> list[ValidatorInfo]:
        """Read every validator bid from the auction state.

        Bids with a malformed public key are logged and skipped.
        """
        state = await self._auction_state()
        validators: list[ValidatorInfo] = []
        for entry in state.bids:
            try:
                validators.append(
                    ValidatorInfo(
                        public_key=entry.public_key,
                        fee_rate=entry.bid.delegation_rate,
                        is_active=not entry.bid.inactive,
                        total_stake=parse_u512(entry.bid.staked_amount),
                    )
                )
            except ValueError as e:
                self.logger.warning("Skipping bid %s: %s", entry.public_key, e)
        self.logger.debug("Fetched %d validators", len(validators))
        return validators

    async def get_total_delegation(self) -> int:
        """Sum the keeper account's delegated stake across all validators."""
        state = await self._auction_state()
        keeper = self.keeper_public_key
        total = 0
        for entry in state.bids:
            for delegator in entry.bid.iter_delegators():
                if delegator.key == keeper:
                    amount = parse_u512(delegator.staked_amount)
                    self.logger.debug(
                        "Found delegation to %s: %d", entry.public_key, amount
                    )
                    total += amount
        self.logger.info("Total delegation: %d motes", total)
        return total

    async def _put_deploy(self, session: ExecutableDeployItem, payment_amount: int) -> str:
        deploy: Deploy = build_deploy(
            self.signer, session, payment_amount, self.chain_name
        )
        try:
            result = await self.rpc_client.call(
                self.http_client, "account_put_deploy", {"deploy": deploy.to_json()}
            )
        except (httpx.HTTPError, JsonRpcError) as e:
            msg = f"Deploy {deploy.hash_hex} rejected: {e}"
            raise ChainGatewayError(msg) from e

        deploy_hash = (result or {}).get("deploy_hash", deploy.hash_hex)
        return deploy_hash

    async def submit_transaction(
        self,
        target_contract: str,
        entry_point: str,
        args: RuntimeArgs,
        payment_amount: int,
    ) -> str:
        """Call ``entry_point`` on the latest version of a contract package.

        Args:
            target_contract: Contract package hash (``hash-`` prefix optional)
            entry_point: Entry point name
            args: Encoded runtime arguments
            payment_amount: Standard payment in motes

        Returns:
            Deploy hash (hex)

        Raises:
            ChainGatewayError: If the node rejects the deploy
        """
        session = StoredVersionedContractByHash(
            parse_hash(target_contract), entry_point, args
        )
        deploy_hash = await self._put_deploy(session, payment_amount)
        self.logger.info(
            "Transaction sent: %s (%s, %d args)", deploy_hash, entry_point, len(args)
        )
        return deploy_hash

    async def submit_payable_transaction(
        self,
        target_contract: str,
        entry_point: str,
        args: RuntimeArgs,
        attached_value: int,
        payment_amount: int,
    ) -> str:
        """Call a payable entry point, attaching ``attached_value`` motes.

        Raises:
            ChainGatewayError: If no proxy-caller wasm is configured or the
                node rejects the deploy
        """
        if self.proxy_caller_wasm is None:
            msg = f"Payable call to {entry_point} needs PROXY_CALLER_WASM_PATH"
            raise ChainGatewayError(msg)

        session = proxy_caller_session(
            self.proxy_caller_wasm,
            parse_hash(target_contract),
            entry_point,
            args,
            attached_value,
        )
        deploy_hash = await self._put_deploy(session, payment_amount)
        self.logger.info(
            "Payable transaction sent: %s (%s, %d motes attached)",
            deploy_hash,
            entry_point,
            attached_value,
        )
        return deploy_hash

    async def _auction_call(self, call: NativeDelegateArgs, payment_amount: int) -> str:
        session = StoredContractByHash(
            self.auction_contract_hash, call.entry_point, call.to_runtime_args()
        )
        return await self._put_deploy(session, payment_amount)

    async def native_delegate(self, validator_public_key: str, amount: int) -> str:
        call = NativeDelegateArgs(
            delegator=self.keeper_public_key,
            validator=validator_public_key,
            amount=amount,
        )
        self.logger.info("Delegating %d motes to validator %s", amount, call.validator)
        deploy_hash = await self._auction_call(call, DELEGATION_PAYMENT)
        self.logger.info("Delegation transaction sent: %s", deploy_hash)
        return deploy_hash

    async def native_undelegate(self, validator_public_key: str, amount: int) -> str:
        call = NativeUndelegateArgs(
            delegator=self.keeper_public_key,
            validator=validator_public_key,
            amount=amount,
        )
        self.logger.info(
            "Undelegating %d motes from validator %s", amount, call.validator
        )
        deploy_hash = await self._auction_call(call, DELEGATION_PAYMENT)
        self.logger.info("Undelegation transaction sent: %s", deploy_hash)
        return deploy_hash

    async def wait_for_confirmation(
        self,
        transaction_hash: str,
        timeout: float = CONFIRMATION_TIMEOUT,
        poll_interval: float = CONFIRMATION_POLL_INTERVAL,
    ) -> ConfirmationResult:
        """Poll ``info_get_deploy`` until the deploy executes or time runs out.

        RPC errors while polling (e.g. the deploy is not yet known to the
        node) are logged and polling continues.

        Args:
            transaction_hash: Deploy hash (hex)
            timeout: Seconds to wait before giving up
            poll_interval: Seconds between polls

        Returns:
            ConfirmationResult with ``timed_out=True`` if no result arrived
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            try:
                result = await self.rpc_client.call(
                    self.http_client, "info_get_deploy", {"deploy_hash": transaction_hash}
                )
                outcome = parse_execution_result(result or {})
            except (httpx.HTTPError, JsonRpcError, ValueError) as e:
                self.logger.warning("Waiting for transaction %s: %s", transaction_hash, e)
                outcome = None

            if outcome is not None:
                success, error_message = outcome
                if success:
                    self.logger.info("Transaction %s succeeded", transaction_hash)
                else:
                    self.logger.error(
                        "Transaction %s failed: %s", transaction_hash, error_message
                    )
                return ConfirmationResult(
                    transaction_hash=transaction_hash,
                    success=success,
                    error_message=error_message,
                )

            if loop.time() + poll_interval > deadline:
                break
            await asyncio.sleep(poll_interval)

        self.logger.error("Transaction %s timeout", transaction_hash)
        return ConfirmationResult(
            transaction_hash=transaction_hash,
            success=False,
            error_message=f"not executed within {timeout:.0f}s",
            timed_out=True,
        )


__all__ = [
    "CasperGateway",
    "ChainGateway",
    "ChainGatewayError",
    "parse_execution_result",
    "submit_call",
]
