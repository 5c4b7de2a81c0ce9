"""
Issue an operator JWT for the admin API (and for the self-hosted shop's sync push).

Usage:
    python scripts/create_operator_token.py ops@example.com
    python scripts/create_operator_token.py shop-sync --hours 8760
"""
import argparse

from storesync.api.auth import create_operator_token


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Issue an operator token")
    parser.add_argument("operator_id")
    parser.add_argument("--hours", type=int, default=None)
    args = parser.parse_args()
    print(create_operator_token(args.operator_id, expiry_hours=args.hours))
