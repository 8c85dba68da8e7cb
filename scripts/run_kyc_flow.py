#!/usr/bin/env python3
"""
Onboard one investor end to end: deploy an OnchainID, sign and submit a KYC
claim, register the identity and print the registry status.

    USER_PRIVATE_KEY=0x... python scripts/run_kyc_flow.py --country 250
"""

import argparse
import json
import os
import sys
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import ServiceContainer, configure_logging
from config import Settings
from services.exceptions import KYCPlatformError


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run the full KYC onboarding flow for one wallet")
    parser.add_argument('--user-key', default=os.environ.get('USER_PRIVATE_KEY'),
                        help="investor private key (defaults to USER_PRIVATE_KEY)")
    parser.add_argument('--country', type=int, required=True, help="ISO-3166 numeric country code")
    parser.add_argument('--topic', type=int, default=None, help="claim topic (defaults to DEFAULT_CLAIM_TOPIC)")
    parser.add_argument('--data', default=None, help="claim payload (defaults to the topic's default)")
    parser.add_argument('--salt', default=None, help="identity deployment salt")
    return parser.parse_args(argv)


def main(argv=None):
    """Main function"""
    args = parse_args(argv)
    if not args.user_key:
        print("❌ No investor key: pass --user-key or set USER_PRIVATE_KEY")
        return 2

    try:
        settings = Settings.from_env()
        configure_logging(settings.log_level)
        services = ServiceContainer.from_settings(settings)
        services.web3_service.check_connection()

        result = services.kyc_service.onboard(
            args.user_key, args.country, topic=args.topic, payload=args.data, salt=args.salt
        )
    except KYCPlatformError as e:
        print(f"❌ KYC flow failed: {e}")
        return 1

    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.is_verified else 1


if __name__ == "__main__":
    sys.exit(main())
