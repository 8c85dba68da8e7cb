from unittest.mock import MagicMock

import pytest
from eth_account import Account

from config import Settings
from services.web3_service import Web3Service
from tests.mock_chain import MockChain, make_receipt

ADMIN_KEY = '0x' + '11' * 32
ISSUER_KEY = '0x' + '22' * 32
USER_KEY = '0x' + '33' * 32

ID_FACTORY_ADDRESS = '0x5fbdb2315678afecb367f032d93f642f64180aa3'
IDENTITY_REGISTRY_ADDRESS = '0xe7f1725e7734ce288f8367e1bb143e90bb3f0512'
TOKEN_ADDRESS = '0x9fe46736679d2d9a65f0992f2272de9f3c7fa6e0'
IDENTITY_ADDRESS = '0xcf7ed3acca5a467e9e704c703e8d87f634fb0fc9'


@pytest.fixture
def settings():
    return Settings(
        rpc_url='http://127.0.0.1:8545',
        admin_private_key=ADMIN_KEY,
        id_factory_address=ID_FACTORY_ADDRESS,
        identity_registry_address=IDENTITY_REGISTRY_ADDRESS,
        token_address=TOKEN_ADDRESS,
        claim_issuer_private_key=ISSUER_KEY,
        confirmation_timeout=5.0,
        receipt_poll_interval=0.01,
    )


@pytest.fixture
def admin_account():
    return Account.from_key(ADMIN_KEY)


@pytest.fixture
def issuer_account():
    return Account.from_key(ISSUER_KEY)


@pytest.fixture
def user_account():
    return Account.from_key(USER_KEY)


@pytest.fixture
def web3_service_mock(settings, admin_account):
    """Web3Service stand-in: every write confirms with status 1 unless a test says otherwise"""
    service = MagicMock()
    service.settings = settings
    service.account = admin_account
    service.default_account = admin_account.address
    service.transaction_hash.side_effect = Web3Service.transaction_hash
    service.send_transaction.return_value = make_receipt()
    return service


@pytest.fixture
def mock_chain(settings):
    return MockChain(settings)
