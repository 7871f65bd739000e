import hashlib
import hmac

import bcrypt

BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def is_bcrypt_hash(value: str | None) -> bool:
    return bool(value) and value.startswith(BCRYPT_PREFIXES)


def verify_password(password: str, stored: str | None, allow_plaintext: bool = False) -> bool:
    """bcrypt first, then legacy md5 hex digests, then (opt-in) plaintext."""
    if not stored:
        return False

    if is_bcrypt_hash(stored):
        try:
            if bcrypt.checkpw(password.encode("utf-8"), stored.encode("utf-8")):
                return True
        except ValueError:
            pass

    md5 = hashlib.md5(password.encode("utf-8")).hexdigest()
    if hmac.compare_digest(md5.encode("ascii"), stored.lower().encode("utf-8")):
        return True

    if allow_plaintext:
        return hmac.compare_digest(password.encode("utf-8"), stored.encode("utf-8"))
    return False


def is_md5_hex(value: str | None) -> bool:
    return bool(value) and len(value) == 32 and all(c in "0123456789abcdef" for c in value.lower())
