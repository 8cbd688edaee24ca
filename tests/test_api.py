from __future__ import annotations

import base64
import json

import pytest
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from book_liberator.api.client import APIClientPool, AudibleAPIClient
from book_liberator.api.voucher import DeviceKeys, decrypt_voucher
from book_liberator.exceptions import LicenseError, VoucherDecryptionError

KEYS = DeviceKeys("A2CZJZGLK2JJVM", "0123456789ABCDEF", "amzn1.account.TEST")
VOUCHER = {"key": "00112233445566778899aabbccddeeff", "iv": "ffeeddccbbaa99887766554433221100", "refreshDate": "2030-01-01"}


def encrypt_voucher(keys: DeviceKeys, product_id: str, payload: dict) -> str:
    plaintext = json.dumps(payload, separators=(",", ":")).encode()
    plaintext += b"\x00" * (-len(plaintext) % 16)
    key, iv = keys.derive(product_id)
    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    return base64.b64encode(encryptor.update(plaintext) + encryptor.finalize()).decode()


def license_response(voucher, status: str = "Granted") -> dict:
    return {
        "content_license": {
            "status_code": status,
            "license_response": voucher,
            "content_metadata": {
                "content_url": {"offline_url": "https://cdn.example.com/B01.aax"},
                "chapter_info": {
                    "chapters": [{"title": "Chapter 1", "length_ms": 1000}],
                },
            },
        }
    }


class TestVoucher:
    def test_decrypts_with_matching_device(self):
        voucher = decrypt_voucher(KEYS, "B01", encrypt_voucher(KEYS, "B01", VOUCHER))
        assert voucher.key == VOUCHER["key"]
        assert voucher.iv == VOUCHER["iv"]

    def test_key_material_depends_on_product(self):
        assert KEYS.derive("B01") != KEYS.derive("B02")
        key, iv = KEYS.derive("B01")
        assert len(key) == len(iv) == 16

    def test_wrong_device_fails(self):
        other = DeviceKeys("A2CZJZGLK2JJVM", "FFFFFFFFFFFFFFFF", "amzn1.account.OTHER")
        with pytest.raises(VoucherDecryptionError):
            decrypt_voucher(other, "B01", encrypt_voucher(KEYS, "B01", VOUCHER))

    def test_not_base64(self):
        with pytest.raises(VoucherDecryptionError):
            decrypt_voucher(KEYS, "B01", "not*base64!")


class TestLicenseParsing:
    def test_encrypted_voucher(self):
        client = AudibleAPIClient("us", "token", KEYS)
        content = client.parse_license(
            "B01", license_response(encrypt_voucher(KEYS, "B01", VOUCHER))
        )
        assert content.content_url == "https://cdn.example.com/B01.aax"
        assert content.key == VOUCHER["key"]
        assert content.chapters == [{"title": "Chapter 1", "length_ms": 1000}]

    def test_plain_voucher(self):
        client = AudibleAPIClient("uk", "token")
        content = client.parse_license("B01", license_response({"key": "k", "iv": "i"}))
        assert (content.key, content.iv) == ("k", "i")

    def test_encrypted_voucher_without_device_keys(self):
        client = AudibleAPIClient("us", "token")
        with pytest.raises(LicenseError, match="no device keys"):
            client.parse_license("B01", license_response("c2VjcmV0"))

    def test_denied_license(self):
        client = AudibleAPIClient("us", "token")
        with pytest.raises(LicenseError, match="not granted"):
            client.parse_license("B01", license_response({"key": "k", "iv": "i"}, "Denied"))

    def test_missing_url(self):
        client = AudibleAPIClient("us", "token")
        with pytest.raises(LicenseError, match="no content URL"):
            client.parse_license("B01", {"content_license": {"status_code": "Granted"}})


class TestClients:
    def test_locale_picks_domain(self):
        assert AudibleAPIClient("uk", "t").base_url == "https://api.audible.co.uk/"
        assert AudibleAPIClient(" DE ", "t").base_url == "https://api.audible.de/"

    def test_unknown_locale(self):
        with pytest.raises(LicenseError):
            AudibleAPIClient("xx", "t")

    def test_pool_reuses_clients(self):
        pool = APIClientPool("token", KEYS)
        assert pool.get("me", "us") is pool.get("me", "US")
        assert pool.get("me", "us") is not pool.get("me", "uk")
