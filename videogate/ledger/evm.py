"""
EVM ledger client for the VideoAccessControl contract (Chiliz by default).
"""
import asyncio
from typing import Any, Dict, Optional, Sequence

from loguru import logger
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import ContractLogicError, TimeExhausted

from .base import LedgerClient


VIDEO_ACCESS_CONTROL_ABI = [
    {
        'inputs': [
            {'internalType': 'address', 'name': 'user', 'type': 'address'},
            {'internalType': 'uint256', 'name': 'videoId', 'type': 'uint256'},
        ],
        'name': 'checkAccess',
        'outputs': [{'internalType': 'bool', 'name': '', 'type': 'bool'}],
        'stateMutability': 'view',
        'type': 'function',
    },
    {
        'inputs': [
            {'internalType': 'address', 'name': 'user', 'type': 'address'},
            {'internalType': 'uint256', 'name': 'videoId', 'type': 'uint256'},
        ],
        'name': 'grantAccess',
        'outputs': [],
        'stateMutability': 'nonpayable',
        'type': 'function',
    },
    {
        'inputs': [
            {'internalType': 'address[]', 'name': 'users', 'type': 'address[]'},
            {'internalType': 'uint256', 'name': 'videoId', 'type': 'uint256'},
        ],
        'name': 'grantAccessBatch',
        'outputs': [],
        'stateMutability': 'nonpayable',
        'type': 'function',
    },
    {
        'inputs': [
            {'internalType': 'address', 'name': 'user', 'type': 'address'},
            {'internalType': 'uint256', 'name': 'videoId', 'type': 'uint256'},
        ],
        'name': 'revokeAccess',
        'outputs': [],
        'stateMutability': 'nonpayable',
        'type': 'function',
    },
]


class LedgerTransactionError(Exception):
    """Raised when a submitted ledger transaction does not commit."""


class EvmLedgerClient(LedgerClient):
    """Ledger client talking to an EVM contract over JSON-RPC."""

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.rpc_url = config.get('rpc_url', '')
        self.chain_id = int(config.get('chain_id', 88882))
        self.contract_address = config.get('contract_address', '')
        self.signer_private_key = config.get('signer_private_key', '')
        self.gas_limit = config.get('gas_limit', 200000)
        self.tx_timeout_seconds = config.get('tx_timeout_seconds', 60)
        self.rpc_timeout_seconds = config.get('rpc_timeout_seconds', 10)

        self.web3: Optional[AsyncWeb3] = None
        self.signer_address: Optional[str] = None
        self._contract = None

        if self.rpc_url and self.signer_private_key and self.contract_address:
            try:
                self.web3 = AsyncWeb3(AsyncHTTPProvider(self.rpc_url))
                account = self.web3.eth.account.from_key(self.signer_private_key)
                self.signer_address = Web3.to_checksum_address(account.address)
                self._contract = self.web3.eth.contract(
                    address=Web3.to_checksum_address(self.contract_address),
                    abi=VIDEO_ACCESS_CONTROL_ABI,
                )
            except (ValueError, TypeError) as exc:
                logger.error('Ledger client misconfigured, disabling writes: {}', exc)
                self.web3 = None
                self._contract = None

    @property
    def provider_name(self) -> str:
        return 'chiliz'

    def is_configured(self) -> bool:
        return bool(self._contract is not None and self.contract_address)

    async def check_access(self, user_id: str, asset_id: int) -> bool:
        if not self.is_configured():
            logger.warning('No ledger contract configured, defaulting to no access')
            return False

        try:
            user = Web3.to_checksum_address(user_id)
            has_access = await asyncio.wait_for(
                self._contract.functions.checkAccess(user, int(asset_id)).call(),
                timeout=self.rpc_timeout_seconds,
            )
        except Exception as exc:
            logger.warning('Ledger access check failed for {} -> asset {}: {}',
                           user_id, asset_id, exc)
            return False

        logger.debug('Ledger access check: {} -> asset {} = {}',
                     user_id, asset_id, has_access)
        return bool(has_access)

    async def grant_access(self, user_id: str, asset_id: int) -> bool:
        if not self.is_configured():
            logger.warning('No ledger contract configured, skipping access grant')
            return False

        if await self.check_access(user_id, asset_id):
            logger.info('{} already has ledger access to asset {}', user_id, asset_id)
            return True

        try:
            user = Web3.to_checksum_address(user_id)
            tx_hash = await self._transact(
                self._contract.functions.grantAccess(user, int(asset_id)))
        except Exception as exc:
            self._log_write_failure('grant', user_id, asset_id, exc)
            return False

        logger.info('Ledger access granted: {} -> asset {} tx {}',
                    user_id, asset_id, tx_hash)
        return True

    async def grant_access_batch(self, user_ids: Sequence[str], asset_id: int) -> bool:
        if not self.is_configured():
            logger.warning('No ledger contract configured, skipping batch grant')
            return False
        if not user_ids:
            return True

        try:
            users = [Web3.to_checksum_address(user_id) for user_id in user_ids]
            tx_hash = await self._transact(
                self._contract.functions.grantAccessBatch(users, int(asset_id)))
        except Exception as exc:
            self._log_write_failure('batch grant', f'{len(user_ids)} users', asset_id, exc)
            return False

        logger.info('Ledger batch access granted to {} users for asset {} tx {}',
                    len(user_ids), asset_id, tx_hash)
        return True

    async def revoke_access(self, user_id: str, asset_id: int) -> bool:
        if not self.is_configured():
            logger.warning('No ledger contract configured, skipping access revocation')
            return False

        try:
            user = Web3.to_checksum_address(user_id)
            tx_hash = await self._transact(
                self._contract.functions.revokeAccess(user, int(asset_id)))
        except Exception as exc:
            self._log_write_failure('revoke', user_id, asset_id, exc)
            return False

        logger.info('Ledger access revoked: {} -> asset {} tx {}',
                    user_id, asset_id, tx_hash)
        return True

    def get_network_info(self) -> Dict[str, Any]:
        info = super().get_network_info()
        info.update({
            'rpcUrl': self.rpc_url,
            'chainId': self.chain_id,
            'contractAddress': self.contract_address or None,
        })
        return info

    async def _transact(self, contract_fn) -> str:
        # The receipt wait is bounded by web3 itself; this also caps the RPC
        # round trips that precede it.
        return await asyncio.wait_for(
            self._submit(contract_fn),
            timeout=self.tx_timeout_seconds + self.rpc_timeout_seconds,
        )

    async def _submit(self, contract_fn) -> str:
        """Sign, send and wait for a state-changing contract call."""
        eth = self.web3.eth
        tx_params = {
            'chainId': self.chain_id,
            'from': self.signer_address,
            'nonce': await eth.get_transaction_count(self.signer_address),
            'gas': self.gas_limit,
            'gasPrice': await eth.gas_price,
        }

        transaction = await contract_fn.build_transaction(tx_params)
        signed = eth.account.sign_transaction(
            transaction, private_key=self.signer_private_key)

        raw_tx = getattr(signed, 'raw_transaction', None)
        if raw_tx is None:
            raw_tx = getattr(signed, 'rawTransaction', None)
        if raw_tx is None:
            raise LedgerTransactionError(
                'Signer returned unexpected transaction encoding.')

        tx_hash = await eth.send_raw_transaction(raw_tx)
        logger.debug('Submitted ledger transaction: {}', tx_hash.hex())

        receipt = await eth.wait_for_transaction_receipt(
            tx_hash, timeout=self.tx_timeout_seconds)
        if receipt['status'] != 1:
            raise LedgerTransactionError('Ledger transaction reverted on-chain.')
        return tx_hash.hex()

    def _log_write_failure(self, action: str, who: str, asset_id: int, exc: Exception) -> None:
        if isinstance(exc, (TimeExhausted, asyncio.TimeoutError)):
            reason = f'no confirmation within {self.tx_timeout_seconds}s'
        elif isinstance(exc, ContractLogicError):
            reason = f'contract rejected call ({exc})'
        else:
            reason = str(exc) or exc.__class__.__name__
        logger.warning('Ledger {} failed for {} -> asset {}: {}',
                       action, who, asset_id, reason)
