"""
Tests for the chain gateway: fee snapshots, transaction submission, receipt
waits, signer serialization and event decoding.
"""

import gc
import threading
import time
from unittest.mock import MagicMock

import pytest
from eth_utils import event_abi_to_log_topic
from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import TimeExhausted

from services.exceptions import (
    ChainReadError,
    ChainWriteError,
    ConfigurationError,
    ConfirmationTimeoutError,
    FeeDataUnavailableError,
)
from services.web3_service import Web3Service
from tests.conftest import ID_FACTORY_ADDRESS, IDENTITY_ADDRESS
from tests.mock_chain import make_receipt

GWEI = 10 ** 9
TX_HASH = HexBytes('0x' + 'ab' * 32)


def _signable_tx(params):
    tx = {
        'to': Web3.to_checksum_address(IDENTITY_ADDRESS),
        'value': 0,
        'gas': 100000,
        'data': '0x',
        'chainId': 31337,
    }
    tx.update({key: value for key, value in params.items() if key != 'from'})
    return tx


@pytest.fixture
def w3():
    w3 = MagicMock()
    w3.eth.max_priority_fee = 1 * GWEI
    w3.eth.get_block.return_value = {'baseFeePerGas': 10 * GWEI}
    w3.eth.get_transaction_count.return_value = 7
    w3.eth.send_raw_transaction.return_value = TX_HASH
    w3.eth.wait_for_transaction_receipt.return_value = make_receipt(tx_hash=TX_HASH, block_number=12)
    return w3


@pytest.fixture
def service(settings, w3):
    return Web3Service(settings, w3=w3)


@pytest.fixture
def contract_function():
    function = MagicMock()
    function.fn_name = 'addKey'
    function.build_transaction.side_effect = _signable_tx
    return function


class TestSetup:
    def test_loads_bundled_abis(self, service):
        for name in ('IdFactory', 'Identity', 'IdentityRegistry', 'Token'):
            assert service.get_contract_abi(name)

    def test_unknown_abi(self, service):
        with pytest.raises(ConfigurationError):
            service.get_contract_abi('ClaimIssuer')

    def test_missing_artifacts_dir_loads_nothing(self, settings, w3, tmp_path):
        service = Web3Service(settings, w3=w3, artifacts_dir=tmp_path / 'missing')

        assert service.contract_abis == {}

    def test_default_account_is_admin(self, service, admin_account):
        assert service.default_account == admin_account.address

    def test_check_connection(self, service, w3):
        w3.eth.block_number = 42

        assert service.check_connection() == 42

    def test_call_wraps_errors(self, service):
        function = MagicMock(fn_name='isVerified')
        function.call.side_effect = ValueError("execution reverted")

        with pytest.raises(ChainReadError) as exc_info:
            service.call(function)

        assert isinstance(exc_info.value.__cause__, ValueError)


class TestFeeSnapshot:
    def test_max_fee_is_twice_base_plus_priority(self, service):
        snapshot = service.get_fee_snapshot()

        assert snapshot.max_fee_per_gas == 21 * GWEI
        assert snapshot.max_priority_fee_per_gas == 1 * GWEI

    def test_missing_base_fee_gives_no_max_fee(self, service, w3):
        w3.eth.get_block.return_value = {}

        assert service.get_fee_snapshot().max_fee_per_gas is None
        with pytest.raises(FeeDataUnavailableError):
            service.get_fee_quote()

    def test_rpc_failure(self, service, w3):
        w3.eth.get_block.side_effect = ConnectionError("connection refused")

        with pytest.raises(FeeDataUnavailableError):
            service.get_fee_snapshot()

    def test_quote_applies_floor(self, service):
        quote = service.get_fee_quote()

        assert quote.max_priority_fee_per_gas == 35_200_000_000
        assert quote.max_fee_per_gas == 20 * GWEI + 35_200_000_000


class TestSendTransaction:
    def test_builds_signs_and_confirms(self, service, w3, contract_function, admin_account):
        receipt = service.send_transaction(contract_function)

        contract_function.build_transaction.assert_called_once_with({
            'from': admin_account.address,
            'nonce': 7,
            'maxFeePerGas': 20 * GWEI + 35_200_000_000,
            'maxPriorityFeePerGas': 35_200_000_000,
        })
        w3.eth.get_transaction_count.assert_called_once_with(admin_account.address, 'pending')
        w3.eth.send_raw_transaction.assert_called_once()
        w3.eth.wait_for_transaction_receipt.assert_called_once_with(
            '0x' + 'ab' * 32, timeout=5.0, poll_latency=0.01
        )
        assert receipt['status'] == 1
        assert service.transaction_hash(receipt) == '0x' + 'ab' * 32

    def test_explicit_gas_limit_and_signer(self, service, w3, contract_function, user_account):
        service.send_transaction(contract_function, signer=user_account, gas_limit=500000)

        params = contract_function.build_transaction.call_args[0][0]
        assert params['gas'] == 500000
        assert params['from'] == user_account.address
        w3.eth.get_transaction_count.assert_called_once_with(user_account.address, 'pending')

    def test_reverted_receipt_is_returned(self, service, w3, contract_function):
        w3.eth.wait_for_transaction_receipt.return_value = make_receipt(status=0)

        assert service.send_transaction(contract_function)['status'] == 0

    def test_submission_error_is_wrapped(self, service, w3, contract_function):
        w3.eth.send_raw_transaction.side_effect = ValueError("nonce too low")

        with pytest.raises(ChainWriteError) as exc_info:
            service.send_transaction(contract_function)

        assert exc_info.value.details == {'function': 'addKey'}
        w3.eth.wait_for_transaction_receipt.assert_not_called()

    def test_fee_data_failure_sends_nothing(self, service, w3, contract_function):
        w3.eth.get_block.return_value = {}

        with pytest.raises(FeeDataUnavailableError):
            service.send_transaction(contract_function)

        w3.eth.send_raw_transaction.assert_not_called()

    def test_confirmation_timeout(self, service, w3, contract_function):
        w3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("not mined")

        with pytest.raises(ConfirmationTimeoutError) as exc_info:
            service.send_transaction(contract_function)

        assert exc_info.value.tx_hash == '0x' + 'ab' * 32
        assert exc_info.value.details == {'timeout': 5.0}

    def test_lock_released_after_timeout(self, service, w3, contract_function, admin_account):
        w3.eth.wait_for_transaction_receipt.side_effect = [TimeExhausted("not mined"), make_receipt()]

        with pytest.raises(ConfirmationTimeoutError):
            service.send_transaction(contract_function)

        assert service.send_transaction(contract_function)['status'] == 1
        assert not service._signer_lock(admin_account.address).locked()

    def test_fresh_fee_quote_per_transaction(self, service, w3, contract_function):
        service.send_transaction(contract_function)
        w3.eth.max_priority_fee = 50 * GWEI
        service.send_transaction(contract_function)

        second = contract_function.build_transaction.call_args_list[1][0][0]
        assert second['maxPriorityFeePerGas'] == 55 * GWEI


class TestSignerSerialization:
    def test_same_signer_never_overlaps(self, service, w3, contract_function):
        active = []
        overlaps = []
        guard = threading.Lock()

        def slow_receipt(tx_hash, timeout, poll_latency):
            with guard:
                active.append(tx_hash)
                if len(active) > 1:
                    overlaps.append(list(active))
            time.sleep(0.02)
            with guard:
                active.remove(tx_hash)
            return make_receipt()

        w3.eth.wait_for_transaction_receipt.side_effect = slow_receipt
        threads = [threading.Thread(target=service.send_transaction, args=(contract_function,)) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert overlaps == []
        assert w3.eth.wait_for_transaction_receipt.call_count == 4

    def test_one_lock_per_signer(self, service, admin_account, user_account):
        assert service._signer_lock(admin_account.address) is service._signer_lock(admin_account.address.lower())
        assert service._signer_lock(admin_account.address) is not service._signer_lock(user_account.address)

    def test_idle_signer_locks_are_reclaimed(self, service, contract_function, user_account):
        for _ in range(3):
            service.send_transaction(contract_function, signer=user_account)
        gc.collect()

        assert len(service._signer_locks) == 0

    def test_held_lock_is_shared(self, service, admin_account):
        held = service._signer_lock(admin_account.address)
        gc.collect()

        assert service._signer_lock(admin_account.address.lower()) is held
        assert len(service._signer_locks) == 1


class TestEvents:
    @pytest.fixture
    def offline_service(self, settings):
        return Web3Service(settings, w3=Web3(Web3.HTTPProvider(settings.rpc_url)))

    @pytest.fixture
    def factory(self, offline_service):
        return offline_service.get_contract(ID_FACTORY_ADDRESS, 'IdFactory')

    @staticmethod
    def _log(topics, data=b'', log_index=0):
        return {
            'address': Web3.to_checksum_address(ID_FACTORY_ADDRESS),
            'topics': [HexBytes(topic) for topic in topics],
            'data': HexBytes(data),
            'logIndex': log_index,
            'transactionIndex': 0,
            'transactionHash': TX_HASH,
            'blockHash': HexBytes('0x' + '01' * 32),
            'blockNumber': 3,
        }

    @staticmethod
    def _topic(offline_service, factory, event_name):
        return event_abi_to_log_topic(offline_service._event_abi(factory, event_name))

    @staticmethod
    def _address_topic(address):
        return b'\x00' * 12 + bytes.fromhex(address[2:])

    def test_find_wallet_linked_among_other_logs(self, offline_service, factory, user_account):
        identity = Web3.to_checksum_address(IDENTITY_ADDRESS)
        wallet_linked = self._topic(offline_service, factory, 'WalletLinked')
        receipt = make_receipt(logs=[
            self._log([b'\x42' * 32, b'\x00' * 32]),
            self._log([wallet_linked, self._address_topic(user_account.address), self._address_topic(identity)],
                      log_index=1),
        ])

        event = offline_service.find_event(factory, receipt, 'WalletLinked')

        assert event['args']['wallet'] == user_account.address
        assert event['args']['identity'] == identity
        assert event['logIndex'] == 1

    def test_missing_event_returns_none(self, offline_service, factory):
        receipt = make_receipt(logs=[self._log([b'\x42' * 32])])

        assert offline_service.find_event(factory, receipt, 'WalletLinked') is None

    def test_undecodable_matching_log_is_skipped(self, offline_service, factory):
        wallet_linked = self._topic(offline_service, factory, 'WalletLinked')
        receipt = make_receipt(logs=[self._log([wallet_linked])])

        assert offline_service.decode_events(factory, receipt, 'WalletLinked') == []

    def test_unknown_event_name(self, offline_service, factory):
        with pytest.raises(ConfigurationError):
            offline_service.decode_events(factory, make_receipt(), 'IdentityCreated')
