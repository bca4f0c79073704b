import hashlib, json

def payload_hash(payload: dict) -> str:
    s = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.sha256(s.encode()).hexdigest()

def idempotency_key(user_id: int, endpoint: str, key: str) -> str:
    """Scope a client-supplied Idempotency-Key to one caller and endpoint."""
    return f"{endpoint}:{user_id}:{hashlib.sha256(key.encode()).hexdigest()}"
