from paylink.utils.hashing import (
    generate_hash, generate_chain_hash, hmac_sha256, signature_matches,
)
from paylink.utils.validators import validate_amount, validate_url, truncate_description

__all__ = [
    "generate_hash", "generate_chain_hash", "hmac_sha256", "signature_matches",
    "validate_amount", "validate_url", "truncate_description",
]
