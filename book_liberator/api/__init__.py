"""
Store API Layer.

This package handles communication with the audiobook store: license requests
and decryption of the vouchers they return.
"""

from .client import APIClientPool, AudibleAPIClient, ContentLicense, LicenseClient
from .voucher import DeviceKeys, decrypt_voucher

__all__ = [
    "APIClientPool",
    "AudibleAPIClient",
    "ContentLicense",
    "DeviceKeys",
    "LicenseClient",
    "decrypt_voucher",
]
