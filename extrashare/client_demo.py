# client_demo.py
#
# Minimal Python client walking one wallet through a cycle:
#   1) fetch status (creates the user)
#   2) stake with a (simulated) transaction hash
#   3) claim the referral-copy bonus
#   4) fetch status again and print balances
#
# Requirements:
#   pip install requests python-dotenv
#
# Server assumptions:
#   - FastAPI app running at BASE_URL (python -m extrashare)
#   - CYCLE_START_DELAY_SEC=0, otherwise step 3 is rejected until the event starts

import json
import os
import secrets
from typing import Any, Dict, Optional

import requests
from dotenv import load_dotenv

load_dotenv()

# ---------------------------
# Config
# ---------------------------
BASE_URL = os.getenv("EXTRASHARE_BASE_URL", "http://127.0.0.1:8000")
WALLET = os.getenv("DEMO_WALLET", "0x" + secrets.token_hex(20))
REFERRER = os.getenv("DEMO_REFERRER_CODE") or None


# ---------------------------
# API calls
# ---------------------------
def _post(path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    r = requests.post(f"{BASE_URL}{path}", json=payload, timeout=30)
    if r.status_code != 200:
        raise RuntimeError(f"{path} failed {r.status_code}: {r.text}")
    return r.json()


def get_status(wallet: str) -> Dict[str, Any]:
    data = _post("/api/status", {"wallet_address": wallet})
    user = data.get("user") or {}
    print(
        f"[status] cycle={data['event']['cycle_number']} status={data['event']['cycle_status']} "
        f"bxc={user.get('bxc_balance', 0):.4f} ain={user.get('ain_balance', 0):.4f}"
    )
    return data


def stake(wallet: str, referrer: Optional[str] = None) -> Dict[str, Any]:
    tx_hash = "0x" + secrets.token_hex(32)
    print(f"[stake] wallet={wallet} tx={tx_hash}")
    data = _post("/api/stake", {
        "wallet_address": wallet,
        "transaction_hash": tx_hash,
        "referrer_ref": referrer,
    })
    print(f"[stake] {data['message']} referral_code={data['user']['referral_code']}")
    return data


def referral_copied(wallet: str) -> Dict[str, Any]:
    data = _post("/api/referral-copied", {"wallet_address": wallet})
    print(f"[referral] {data['message']}")
    return data


# ---------------------------
# Demo main
# ---------------------------
def main():
    get_status(WALLET)
    stake(WALLET, REFERRER)
    referral_copied(WALLET)
    res = get_status(WALLET)
    print("[final]", json.dumps(res["user"], indent=2))


if __name__ == "__main__":
    main()
