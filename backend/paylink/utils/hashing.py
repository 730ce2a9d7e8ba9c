"""
Cryptographic Hashing Utilities — SHA-256 chain hashing for the payment event
trail and HMAC-SHA256 signatures for gateway webhooks.
"""
import hashlib
import hmac
import json


def generate_hash(data: dict) -> str:
    """Generate a SHA-256 hash of a dictionary (deterministic, sorted keys)."""
    canonical = json.dumps(data, sort_keys=True, default=str).encode("utf-8")
    return hashlib.sha256(canonical).hexdigest()


def generate_chain_hash(current_data: dict, previous_hash: str = "") -> str:
    """Generate a chain hash: SHA-256(previous_hash + current_payload)."""
    current_hash = generate_hash(current_data)
    chain_input = f"{previous_hash}{current_hash}".encode("utf-8")
    return hashlib.sha256(chain_input).hexdigest()


def hmac_sha256(key: str, message: bytes) -> str:
    """Hex HMAC-SHA256 of raw bytes."""
    return hmac.new(key.encode("utf-8"), message, hashlib.sha256).hexdigest()


def signature_matches(key: str, message: bytes, signature: str | None) -> bool:
    """Constant-time check of a hex signature over raw bytes."""
    if not key or not signature:
        return False
    expected = hmac_sha256(key, message)
    return hmac.compare_digest(expected.encode("ascii"), signature.strip().lower().encode("utf-8"))

