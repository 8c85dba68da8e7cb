import logging
import sys
from dataclasses import dataclass

from flask import Flask

# Import configuration
from config import Settings

# Import services
from services.claim_issuer import ClaimIssuer
from services.claim_service import ClaimService
from services.kyc_service import KYCService
from services.onchainid_service import OnchainIDService
from services.registry_service import IdentityRegistryService
from services.token_service import TokenService
from services.web3_service import Web3Service

# Import routes
from routes.identity import identity_bp

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s %(levelname)s [%(name)s] %(message)s'


def configure_logging(level='INFO'):
    """Single stream handler on the root logger"""
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(level.upper() if isinstance(level, str) else level)


@dataclass
class ServiceContainer:
    """One chain gateway and every component built on it"""

    settings: Settings
    web3_service: Web3Service
    onchainid_service: OnchainIDService
    claim_issuer: ClaimIssuer
    claim_service: ClaimService
    registry_service: IdentityRegistryService
    token_service: TokenService
    kyc_service: KYCService

    @classmethod
    def from_settings(cls, settings, w3=None):
        web3_service = Web3Service(settings, w3=w3)
        onchainid_service = OnchainIDService(web3_service, settings)
        claim_issuer = ClaimIssuer.from_settings(settings)
        claim_service = ClaimService(web3_service, settings)
        registry_service = IdentityRegistryService(web3_service, settings)
        return cls(
            settings=settings,
            web3_service=web3_service,
            onchainid_service=onchainid_service,
            claim_issuer=claim_issuer,
            claim_service=claim_service,
            registry_service=registry_service,
            token_service=TokenService(web3_service, settings),
            kyc_service=KYCService(onchainid_service, claim_issuer, claim_service, registry_service),
        )


def _add_cors_headers(response):
    response.headers['Access-Control-Allow-Origin'] = '*'
    response.headers['Access-Control-Allow-Headers'] = 'Content-Type'
    response.headers['Access-Control-Allow-Methods'] = 'GET, POST, OPTIONS'
    return response


def create_app(settings=None, services=None):
    """
    Create the Flask app.

    Args:
        settings (Settings): read from the environment when omitted
        services (ServiceContainer): built from ``settings`` when omitted
    """
    if services is None:
        settings = settings or Settings.from_env()
        services = ServiceContainer.from_settings(settings)
    settings = settings or services.settings

    app = Flask(__name__)
    app.extensions['kyc_services'] = services

    # Register blueprints
    app.register_blueprint(identity_bp)
    app.after_request(_add_cors_headers)

    logger.info(f"Identity service ready: IdFactory {settings.id_factory_address}, "
                f"IdentityRegistry {settings.identity_registry_address}")
    return app


if __name__ == '__main__':
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    app = create_app(settings)
    app.run(host=settings.host, port=settings.port, threaded=True)
