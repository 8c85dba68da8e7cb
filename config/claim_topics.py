"""
Claim topics issued by the platform.
Topic 42 is the KYC attestation checked by the identity registry.
"""

KYC_TOPIC = 42

CLAIM_TOPICS = {
    1: 'KYC (T-REX standard)',
    2: 'AML (Anti-Money Laundering)',
    3: 'Accredited Investor',
    KYC_TOPIC: 'KYC (Know Your Customer)',
}

# Default payload signed for each topic
CLAIM_DATA_DEFAULTS = {
    1: 'APPROVED',
    2: 'COMPLIANT',
    3: 'ACCREDITED',
    KYC_TOPIC: 'KYC',
}


def get_topic_name(topic_id):
    """Get human-readable name for a topic ID"""
    return CLAIM_TOPICS.get(topic_id, f'Unknown Topic {topic_id}')


def get_default_claim_data(topic_id):
    """Get the payload signed when the caller does not provide one"""
    return CLAIM_DATA_DEFAULTS.get(topic_id, '')


def is_valid_topic(topic_id):
    """Topics are uint256 on-chain; any non-negative integer is accepted"""
    return isinstance(topic_id, int) and not isinstance(topic_id, bool) and 0 <= topic_id < 2 ** 256
