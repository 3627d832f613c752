import secrets
import string

from werkzeug.security import check_password_hash, generate_password_hash

REFERRAL_CODE_LENGTH = 6
REFERRAL_ALPHABET = string.ascii_uppercase + string.digits
MIN_PASSWORD_LENGTH = 4


def hash_credential(secret: str) -> str:
    # werkzeug salts every hash; the salt travels inside the returned string
    return generate_password_hash(secret)


def verify_credential(credential_hash: str, secret: str) -> bool:
    if not credential_hash:
        return False
    return check_password_hash(credential_hash, secret)


def generate_referral_code(taken=None) -> str:
    taken = taken or ()
    while True:
        code = "".join(secrets.choice(REFERRAL_ALPHABET) for _ in range(REFERRAL_CODE_LENGTH))
        if code not in taken:
            return code


def generate_session_token() -> str:
    return secrets.token_urlsafe(32)
