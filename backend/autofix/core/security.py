import hashlib
import hmac


SIGNATURE_HEADER = "X-Hook-Signature"
RESOURCE_HEADER = "X-Hook-Resource"


def compute_signature(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: str | None, secret: str | None) -> bool:
    """Check a webhook signature against the raw request body.

    ``body`` must be the bytes exactly as received; re-serialized JSON will not
    match the sender's digest.
    """
    if not secret or not signature:
        return False
    expected = compute_signature(body, secret)
    return hmac.compare_digest(expected.encode("ascii"), signature.strip().encode("utf-8"))
