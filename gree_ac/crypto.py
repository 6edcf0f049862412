"""Pack encryption for both Gree protocol versions.

Version 1 packs are AES-128-ECB with PKCS#7 padding, version 2 packs are
AES-128-GCM with the fixed nonce and associated data every unit uses.
Both are transported base64 encoded, version 2 with a separate tag.
"""
import base64
import binascii
import json as simplejson
import logging

from Crypto.Cipher import AES
from Crypto.Util.Padding import unpad

from .const import ENCRYPTION_V1, ENCRYPTION_V2, GCM_ADD, GCM_IV, GENERIC_KEY_V1, GENERIC_KEY_V2
from .exceptions import DecodeError

_LOGGER = logging.getLogger(__name__)


def generic_key(version):
    if version == ENCRYPTION_V1:
        return GENERIC_KEY_V1
    if version == ENCRYPTION_V2:
        return GENERIC_KEY_V2
    raise ValueError(f"Unsupported encryption version: {version}")


def _key_bytes(key, version):
    if key is None:
        key = generic_key(version)
    if isinstance(key, str):
        key = key.encode("utf8")
    return key


# Pad helper method to help us get the right string for encrypting
def pad(s):
    aesBlockSize = 16
    return s + (aesBlockSize - len(s) % aesBlockSize) * chr(aesBlockSize - len(s) % aesBlockSize)


def get_gcm_cipher(key):
    cipher = AES.new(key, AES.MODE_GCM, nonce=GCM_IV)
    cipher.update(GCM_ADD)
    return cipher


def dumps(data):
    return simplejson.dumps(data, separators=(',', ':'))


def encrypt(data, version=ENCRYPTION_V1, key=None):
    """Encrypt a JSON serializable object, returning (pack, tag).

    tag is None for version 1. key defaults to the generic key of the version.
    """
    plaintext = dumps(data)
    key = _key_bytes(key, version)
    if version == ENCRYPTION_V1:
        cipher = AES.new(key, AES.MODE_ECB)
        pack = base64.b64encode(cipher.encrypt(pad(plaintext).encode("utf8"))).decode('utf-8')
        return pack, None
    if version == ENCRYPTION_V2:
        encrypted_data, tag = get_gcm_cipher(key).encrypt_and_digest(plaintext.encode("utf8"))
        pack = base64.b64encode(encrypted_data).decode('utf-8')
        tag = base64.b64encode(tag).decode('utf-8')
        return pack, tag
    raise ValueError(f"Unsupported encryption version: {version}")


def _b64decode(value, what):
    if not isinstance(value, (str, bytes)):
        raise DecodeError(f"{what} is not a base64 string")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as err:
        raise DecodeError(f"Malformed base64 {what}: {err}") from err


def _load_pack(decrypted):
    try:
        decodedPack = decrypted.decode("utf-8")
    except UnicodeDecodeError as err:
        raise DecodeError(f"Decrypted pack is not UTF-8: {err}") from err
    try:
        return simplejson.loads(decodedPack)
    except ValueError:
        pass
    # some units pad with arbitrary bytes, everything after the closing brace is dropped
    end = decodedPack.rfind('}')
    try:
        return simplejson.loads(decodedPack[:end + 1])
    except ValueError as err:
        raise DecodeError(f"Decrypted pack is not valid JSON: {err}") from err


def decrypt(pack, version=ENCRYPTION_V1, key=None, tag=None):
    """Decrypt a pack back into the object it carries.

    Raises DecodeError for anything that did not come out of encrypt() with
    the same key: bad base64, a wrong block size, a failed GCM tag check or
    a plaintext that is not JSON.
    """
    key = _key_bytes(key, version)
    ciphertext = _b64decode(pack, 'pack')
    if version == ENCRYPTION_V1:
        try:
            decrypted = AES.new(key, AES.MODE_ECB).decrypt(ciphertext)
        except ValueError as err:
            raise DecodeError(f"Cannot decrypt pack: {err}") from err
        try:
            decrypted = unpad(decrypted, AES.block_size)
        except ValueError:
            _LOGGER.debug("Pack has non standard padding")
        return _load_pack(decrypted)
    if version == ENCRYPTION_V2:
        if tag is None:
            raise DecodeError("Missing tag for version 2 pack")
        raw_tag = _b64decode(tag, 'tag')
        try:
            decrypted = get_gcm_cipher(key).decrypt_and_verify(ciphertext, raw_tag)
        except ValueError as err:
            raise DecodeError(f"Pack failed tag verification: {err}") from err
        return _load_pack(decrypted)
    raise ValueError(f"Unsupported encryption version: {version}")
