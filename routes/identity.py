import logging

from flask import Blueprint, current_app, jsonify, request

from services.exceptions import KYCPlatformError, ValidationError

logger = logging.getLogger(__name__)

identity_bp = Blueprint('identity', __name__)


def _services():
    return current_app.extensions['kyc_services']


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _require_fields(data, *fields):
    missing = [name for name in fields if data.get(name) in (None, '')]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}", {'missing': missing})


def _parse_topic(topic):
    """JSON topics may be integers or decimal strings; booleans and fractions are rejected"""
    if isinstance(topic, bool) or (isinstance(topic, float) and not topic.is_integer()):
        raise ValidationError(f"Invalid topic: {topic!r}", {'field': 'topic'})
    try:
        return int(topic)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid topic: {topic!r}", {'field': 'topic'})


def _error_response(summary, error):
    """ValidationError -> 400, anything else -> 500; body is always {error, details}"""
    if isinstance(error, ValidationError):
        logger.warning(f"{summary}: {error.message}")
        return jsonify({'error': summary, 'details': error.message}), 400
    if isinstance(error, KYCPlatformError):
        logger.error(f"{summary}: {error}")
        return jsonify({'error': summary, 'details': error.message}), 500
    logger.exception(f"{summary}: unexpected error")
    return jsonify({'error': summary, 'details': str(error)}), 500


@identity_bp.route('/deploy', methods=['POST'])
def deploy_identity():
    """Deploy and configure an OnchainID for a wallet"""
    try:
        data = _json_body()
        _require_fields(data, 'userAddress')
        identity_address = _services().onchainid_service.provision(data['userAddress'])
        return jsonify({'address': identity_address}), 201
    except Exception as e:
        return _error_response('Failed to deploy identity', e)


@identity_bp.route('/register', methods=['POST'])
def register_identity():
    try:
        data = _json_body()
        _require_fields(data, 'userAddress', 'identityAddress', 'countryCode')
        tx_hash = _services().registry_service.register(
            data['userAddress'], data['identityAddress'], data['countryCode']
        )
        return jsonify({'transactionHash': tx_hash})
    except Exception as e:
        return _error_response('Failed to register identity', e)


@identity_bp.route('/signature', methods=['POST'])
def sign_claim():
    """Issuer-signed claim for an identity, returned for the wallet to submit"""
    try:
        data = _json_body()
        _require_fields(data, 'userAddress', 'identityAddress')
        topic = data.get('topic')
        if topic is not None:
            topic = _parse_topic(topic)
        claim = _services().claim_issuer.issue_claim(
            data['identityAddress'],
            topic=topic,
            payload=data.get('data'),
            user_address=data['userAddress'],
        )
        return jsonify(claim.to_dict())
    except Exception as e:
        return _error_response('Failed to generate signature', e)


@identity_bp.route('/invest', methods=['POST'])
def invest():
    """Mint tokens to a verified investor"""
    try:
        data = _json_body()
        _require_fields(data, 'to', 'amount')
        tx_hash = _services().token_service.mint(data['to'], data['amount'], data.get('tokenAddress'))
        return jsonify({'transactionHash': tx_hash})
    except Exception as e:
        return _error_response('Failed to mint tokens', e)


@identity_bp.route('/status/<user_address>', methods=['GET'])
def identity_status(user_address):
    try:
        is_verified = _services().registry_service.get_status(user_address)
        return jsonify({'isVerified': is_verified})
    except Exception as e:
        return _error_response('Failed to get identity status', e)


@identity_bp.route('/identity/<user_address>', methods=['GET'])
def identity_address(user_address):
    try:
        registered = _services().registry_service.get_identity(user_address)
        return jsonify({'identityAddress': registered})
    except Exception as e:
        return _error_response('Failed to get identity address', e)
