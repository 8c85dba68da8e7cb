import json
import logging
import os
import threading
import weakref
from pathlib import Path

from eth_abi.exceptions import DecodingError
from eth_account import Account
from eth_utils import event_abi_to_log_topic
from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import LogTopicError, MismatchedABI, TimeExhausted

from models.fee import FeeSnapshot
from services.exceptions import (
    ChainReadError,
    ChainWriteError,
    ConfigurationError,
    ConfirmationTimeoutError,
    FeeDataUnavailableError,
    KYCPlatformError,
)
from services.fee_estimator import FeePolicy, compute_fee_quote
from utils.address_utils import require_address

logger = logging.getLogger(__name__)

DEFAULT_ARTIFACTS_DIR = Path(__file__).parent.parent / 'artifacts'


class _SignerLock:
    """Lock for one signing key, weak-referenceable so idle signers drop out of the map"""

    def __init__(self):
        self._lock = threading.Lock()

    def __enter__(self):
        self._lock.acquire()
        return self

    def __exit__(self, *exc_info):
        self._lock.release()

    def locked(self):
        return self._lock.locked()


class Web3Service:
    """Service for Web3 interactions with the identity contracts"""

    def __init__(self, settings, w3=None, artifacts_dir=None):
        self.settings = settings

        # Connect to blockchain
        if w3 is None:
            logger.info(f"🔗 Connecting to blockchain at: {settings.rpc_url}")
            w3 = Web3(Web3.HTTPProvider(settings.rpc_url))
        self.w3 = w3

        self.account = Account.from_key(settings.admin_private_key)
        logger.info(f"Web3Service: admin account {self.account.address}")

        self.fee_policy = FeePolicy.from_settings(settings)

        # Load contract ABIs
        self.contracts_dir = Path(artifacts_dir or os.environ.get('ARTIFACTS_DIR') or DEFAULT_ARTIFACTS_DIR)
        self.contract_abis = {}
        self._load_contract_abis()

        # One outstanding transaction per signing key; idle locks are reclaimed
        self._signer_locks = weakref.WeakValueDictionary()
        self._signer_locks_guard = threading.Lock()

    def _load_contract_abis(self):
        """Load all contract ABIs from the artifacts directory"""
        if not self.contracts_dir.exists():
            logger.warning(f"Contracts directory not found: {self.contracts_dir}")
            return

        for abi_file in sorted(self.contracts_dir.glob('*.json')):
            try:
                with open(abi_file, 'r') as f:
                    abi_data = json.load(f)
            except (OSError, ValueError) as e:
                logger.error(f"Error loading ABI for {abi_file}: {e}")
                continue
            contract_name = abi_file.stem
            self.contract_abis[contract_name] = abi_data['abi'] if isinstance(abi_data, dict) else abi_data
            logger.debug(f"✅ Loaded {contract_name} ABI")

    def check_connection(self):
        """Return the current block number, proving the RPC endpoint answers"""
        try:
            block_number = self.w3.eth.block_number
        except Exception as e:
            raise ChainReadError(f"Failed to connect to blockchain: {e}", {'rpc_url': self.settings.rpc_url}) from e
        logger.info(f"✅ Blockchain connected successfully! Current block: {block_number}")
        return block_number

    @property
    def default_account(self):
        """Get default account address"""
        return self.account.address

    def get_contract_abi(self, contract_name):
        """Get contract ABI by name"""
        if contract_name not in self.contract_abis:
            raise ConfigurationError(f"ABI not found for contract: {contract_name}",
                                     {'artifacts_dir': str(self.contracts_dir)})
        return self.contract_abis[contract_name]

    def get_contract(self, address, contract_name):
        """Get a contract instance by name and address"""
        abi = self.get_contract_abi(contract_name)
        checksum_address = require_address(address, f'{contract_name} address')
        return self.w3.eth.contract(address=checksum_address, abi=abi)

    def call(self, function):
        """Call a contract function (read-only)"""
        fn_name = getattr(function, 'fn_name', 'call')
        try:
            return function.call()
        except Exception as e:
            logger.error(f"Error calling {fn_name}: {e}")
            raise ChainReadError(f"Failed to call {fn_name}: {e}", {'function': fn_name}) from e

    # ------------------------------------------------------------------
    # Fees
    # ------------------------------------------------------------------

    def get_fee_snapshot(self):
        """
        Read current fee data from the node.

        Mirrors the usual provider fee-data convention:
        maxFeePerGas = 2 * baseFeePerGas + maxPriorityFeePerGas.
        A node without EIP-1559 support yields a snapshot with no max fee.
        """
        try:
            priority_fee = self.w3.eth.max_priority_fee
            latest_block = self.w3.eth.get_block('latest')
        except Exception as e:
            raise FeeDataUnavailableError(f"Failed to fetch fee data from the provider: {e}") from e

        base_fee = latest_block.get('baseFeePerGas')
        max_fee = None
        if base_fee is not None and priority_fee is not None:
            max_fee = base_fee * 2 + priority_fee
        return FeeSnapshot(max_fee_per_gas=max_fee, max_priority_fee_per_gas=priority_fee)

    def get_fee_quote(self):
        """Fresh fee quote for the next transaction; quotes are never reused"""
        logger.info("Fetching current network fee data...")
        return compute_fee_quote(self.get_fee_snapshot(), self.fee_policy)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def _signer_lock(self, address):
        with self._signer_locks_guard:
            lock = self._signer_locks.get(address.lower())
            if lock is None:
                lock = _SignerLock()
                self._signer_locks[address.lower()] = lock
            return lock

    def send_transaction(self, function, signer=None, gas_limit=None):
        """
        Sign, send and confirm a contract transaction.

        Writes from the same signer are serialized from nonce allocation through
        confirmation so concurrent requests never race for a nonce.

        Args:
            function: bound contract function, e.g. contract.functions.addKey(...)
            signer: LocalAccount signing the transaction (admin account by default)
            gas_limit (int): explicit gas limit, estimated by the node when omitted

        Returns:
            AttributeDict: the transaction receipt (status is not checked here)
        """
        signer = signer or self.account
        fn_name = getattr(function, 'fn_name', 'transaction')

        signer_lock = self._signer_lock(signer.address)
        with signer_lock:
            fee_quote = self.get_fee_quote()
            try:
                nonce = self.w3.eth.get_transaction_count(signer.address, 'pending')
                tx_params = {'from': signer.address, 'nonce': nonce}
                tx_params.update(fee_quote.as_tx_params())
                if gas_limit:
                    tx_params['gas'] = gas_limit

                logger.debug(f"🔧 Building {fn_name} from {signer.address} with nonce {nonce}")
                tx = function.build_transaction(tx_params)

                signed_tx = signer.sign_transaction(tx)
                # Handle both old and new eth-account versions
                raw_tx = getattr(signed_tx, 'raw_transaction', None) or getattr(signed_tx, 'rawTransaction', None)
                if not raw_tx:
                    raise AttributeError("SignedTransaction object has no raw_transaction or rawTransaction attribute")
                tx_hash = Web3.to_hex(self.w3.eth.send_raw_transaction(raw_tx))
            except KYCPlatformError:
                raise
            except Exception as e:
                logger.error(f"Error executing {fn_name}: {e}")
                raise ChainWriteError(f"Failed to submit {fn_name}: {e}", details={'function': fn_name}) from e

            logger.info(f"📤 {fn_name} sent by {signer.address}. Hash: {tx_hash}")
            return self.wait_for_transaction(tx_hash)

    def wait_for_transaction(self, tx_hash):
        """Wait for a transaction to be mined, bounded by the confirmation timeout"""
        timeout = self.settings.confirmation_timeout
        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(
                tx_hash,
                timeout=timeout,
                poll_latency=self.settings.receipt_poll_interval,
            )
        except TimeExhausted as e:
            logger.error(f"Transaction {tx_hash} not confirmed within {timeout}s")
            raise ConfirmationTimeoutError(
                f"Transaction {tx_hash} was not confirmed within {timeout} seconds",
                tx_hash=tx_hash,
                details={'timeout': timeout},
            ) from e
        except Exception as e:
            logger.error(f"Error waiting for transaction {tx_hash}: {e}")
            raise ChainWriteError(f"Error waiting for transaction {tx_hash}: {e}", tx_hash=tx_hash) from e

        logger.info(f"Transaction {tx_hash} mined in block {receipt.get('blockNumber')} with status {receipt['status']}")
        return receipt

    @staticmethod
    def transaction_hash(receipt):
        return Web3.to_hex(receipt['transactionHash'])

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _event_abi(self, contract, event_name):
        for item in contract.abi:
            if item.get('type') == 'event' and item.get('name') == event_name:
                return item
        raise ConfigurationError(f"Event {event_name} not found in contract ABI")

    def decode_events(self, contract, receipt, event_name):
        """
        Decode every log in the receipt that is an ``event_name`` event.

        Logs belonging to other events are skipped; a receipt legitimately
        carries unrelated events.
        """
        event_topic = HexBytes(event_abi_to_log_topic(self._event_abi(contract, event_name)))
        event = getattr(contract.events, event_name)()

        decoded = []
        for log in receipt.get('logs') or []:
            topics = log.get('topics') or []
            if not topics or HexBytes(topics[0]) != event_topic:
                continue
            try:
                decoded.append(event.process_log(log))
            except (MismatchedABI, LogTopicError, DecodingError) as e:
                logger.debug(f"Skipping undecodable {event_name} log: {e}")
        return decoded

    def find_event(self, contract, receipt, event_name):
        """First decoded ``event_name`` event in the receipt, or None"""
        events = self.decode_events(contract, receipt, event_name)
        return events[0] if events else None
