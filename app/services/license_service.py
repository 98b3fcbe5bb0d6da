import hashlib
from datetime import datetime

from app.utils.timezone import to_epoch_millis

DEFAULT_LICENSE_SALT = "LIVETV2024"
LICENSE_KEY_LENGTH = 16


def derive_license_key(device_id: str, issued_at: datetime, salt: str = DEFAULT_LICENSE_SALT) -> str:
    """
    Derive a license key for a device

    The key is the first 16 hex digits (uppercase) of
    sha256("<device_id>-<issued_at epoch ms>-<salt>"). Identical inputs always
    give identical keys; a different issuance instant gives a different key.

    Args:
        device_id: Device identifier supplied at checkout
        issued_at: Issuance instant (millisecond precision is used)
        salt: Application salt

    Returns:
        16-character uppercase hexadecimal key
    """
    data = f"{device_id}-{to_epoch_millis(issued_at)}-{salt}"
    return hashlib.sha256(data.encode("utf-8")).hexdigest()[:LICENSE_KEY_LENGTH].upper()
