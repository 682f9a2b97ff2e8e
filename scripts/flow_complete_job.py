#!/usr/bin/env python3
"""
Walk a booking through the pro job lifecycle against a running server.

DO NOT ADD BUSINESS LOGIC HERE.
This script only orchestrates API calls.
All rules live in the backend.

Usage:
    python scripts/flow_complete_job.py --booking-id <UUID> --pro-user-id <UUID>
    python scripts/flow_complete_job.py --booking-id <UUID> --pro-user-id <UUID> --from-step ON_THE_WAY

Flow:
    1. ACCEPTED
    2. ON_THE_WAY
    3. IN_PROGRESS
    4. COMPLETED (captures payment)
    5. Read final status
"""

import argparse
import json
import sys

import httpx

from app.core.security import create_access_token

BASE_URL = "http://localhost:8000"
STEPS = ["ACCEPTED", "ON_THE_WAY", "IN_PROGRESS", "COMPLETED"]


def print_step(step: int, title: str):
    """Print step header."""
    print(f"\n{'='*60}")
    print(f"STEP {step}: {title}")
    print("="*60)


def main():
    parser = argparse.ArgumentParser(description="Advance a booking through every job step")
    parser.add_argument("--booking-id", required=True, help="Booking UUID")
    parser.add_argument("--pro-user-id", required=True, help="User UUID of the assigned pro")
    parser.add_argument("--from-step", choices=STEPS, default=STEPS[0], help="First step to request")
    parser.add_argument("--base-url", default=BASE_URL)
    args = parser.parse_args()

    # Tokens are normally issued by the accounts service; mint one with the shared secret.
    token = create_access_token({"sub": args.pro_user_id, "role": "pro"})
    url = f"{args.base_url}/api/v1/bookings/{args.booking_id}/status"

    with httpx.Client(headers={"Authorization": f"Bearer {token}"}, timeout=30.0) as client:
        steps = STEPS[STEPS.index(args.from_step):]
        for number, action in enumerate(steps, start=1):
            print_step(number, action)
            response = client.patch(url, json={"nextStatus": action})
            print(f"Status: {response.status_code}")
            print(json.dumps(response.json(), indent=2))
            if response.status_code != 200:
                print(f"ERROR: {action} rejected")
                sys.exit(1)

        print_step(len(steps) + 1, "Final status")
        response = client.get(url)
        data = response.json()
        print(f"status={data.get('status')} payment_status={data.get('payment_status')}")
        if data.get("status") != "paid":
            print("Payment not captured yet; the retry job will pick it up.")


if __name__ == "__main__":
    main()
