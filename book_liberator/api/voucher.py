"""
Decryption of the license voucher returned by the license endpoint.

The voucher is AES-CBC encrypted with key material derived from the device the
account was registered with, so the key and IV inside it are only readable by
that device.
"""

import base64
import binascii
import hashlib
import json
import re
from dataclasses import dataclass

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from book_liberator.exceptions import VoucherDecryptionError

AES_BLOCK_BYTES = 16
_KEY_IV_PATTERN = re.compile(r'^\{"key":"([^"]*?)","iv":"([^"]*?)",')


@dataclass(frozen=True)
class DeviceKeys:
    device_type: str
    device_serial: str
    customer_id: str

    def derive(self, product_id: str) -> tuple[bytes, bytes]:
        """AES key and IV for the voucher of `product_id`."""
        material = (
            self.device_type + self.device_serial + self.customer_id + product_id
        ).encode("ascii")
        digest = hashlib.sha256(material).digest()
        return digest[:AES_BLOCK_BYTES], digest[AES_BLOCK_BYTES:]


@dataclass(frozen=True)
class Voucher:
    key: str
    iv: str


def decrypt_voucher(keys: DeviceKeys, product_id: str, license_response: str) -> Voucher:
    """
    Decodes and decrypts a base64 voucher into its key and IV.

    Raises:
        VoucherDecryptionError: If the voucher is malformed or was encrypted for a
            different device.
    """
    try:
        ciphertext = base64.b64decode(license_response)
    except (binascii.Error, ValueError) as e:
        raise VoucherDecryptionError(f"Voucher for {product_id} is not valid base64.") from e

    usable = len(ciphertext) - len(ciphertext) % AES_BLOCK_BYTES
    if usable == 0:
        raise VoucherDecryptionError(f"Voucher for {product_id} is empty.")

    aes_key, aes_iv = keys.derive(product_id)
    decryptor = Cipher(algorithms.AES(aes_key), modes.CBC(aes_iv)).decryptor()
    plaintext = (decryptor.update(ciphertext[:usable]) + decryptor.finalize()).rstrip(b"\x00")
    text = plaintext.decode("utf-8", errors="replace")

    try:
        data = json.loads(text)
        return Voucher(key=data["key"], iv=data["iv"])
    except (json.JSONDecodeError, KeyError, TypeError):
        # Trailing bytes can break JSON parsing; key and iv always lead the object
        match = _KEY_IV_PATTERN.match(text)
        if match:
            return Voucher(key=match.group(1), iv=match.group(2))
    raise VoucherDecryptionError(
        f"Could not decrypt the voucher for {product_id}. "
        "Check device_type, device_serial and customer_id."
    )
