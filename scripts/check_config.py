"""
Report which gateways are fully configured.

Usage: python scripts/check_config.py
Exit code 1 when any gateway is missing settings.
"""

import os
import sys

# Add project root to python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from nepali_payment.config import get_settings, missing_config


def check_config() -> int:
    settings = get_settings()
    print("Checking nepali-payment configuration...")

    ok = True
    for gateway, missing in missing_config(settings).items():
        if missing:
            ok = False
            print(f"  {gateway.label}: missing {', '.join(missing)}")
        else:
            print(f"  {gateway.label}: configured")

    persistence = "enabled" if settings.database_enabled else "disabled"
    print(f"Database persistence: {persistence}")
    if settings.database_enabled and not settings.database_url:
        ok = False
        print("  DATABASE_URL is not set")

    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(check_config())
