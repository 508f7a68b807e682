"""Hashing and identifier helpers."""
import hashlib
import uuid


def sha256(text=""):
    if not text:
        return {"error": "Text to hash is required"}
    return {"sha256": hashlib.sha256(text.encode("utf-8")).hexdigest()}


def new_uuid():
    return {"uuid": str(uuid.uuid4())}


MODULE = {
    "id": "crypto",
    "name": "Crypto Utilities",
    "capabilities": ["READ"],
    "commands": {
        "sha256": {
            "description": "Returns the SHA-256 hex digest of the given text",
            "handler": sha256,
        },
        "uuid": {
            "description": "Generates a random UUID",
            "handler": new_uuid,
        },
    },
}
