from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.backends import default_backend
import os
import base64
import json

HKDF_INFO = b"medledger-seal-v1"


def _raw_hex(value):
    if isinstance(value, bytes):
        return value
    if value.startswith(("0x", "0X")):
        value = value[2:]
    return bytes.fromhex(value)


def _load_public_key(public_key):
    """Load a wallet public key (64 raw bytes, or 65 with the 0x04 prefix)"""
    raw = _raw_hex(public_key)
    if len(raw) == 64:
        raw = b"\x04" + raw
    return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256K1(), raw)


def _load_private_key(private_key):
    return ec.derive_private_key(int.from_bytes(_raw_hex(private_key), "big"), ec.SECP256K1(), default_backend())


def _derive_key(shared_secret):
    return HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=None,
        info=HKDF_INFO,
        backend=default_backend()
    ).derive(shared_secret)


def seal(data, recipient_public_key):
    """Encrypt data so only the holder of the recipient's private key can read it (ECIES)

    An ephemeral secp256k1 key is agreed with the recipient key via ECDH, the
    shared secret is expanded with HKDF-SHA256 and the payload is encrypted
    with AES-GCM. The ephemeral public key is bound as associated data.
    """
    if isinstance(data, str):
        data = data.encode('utf-8')

    recipient = _load_public_key(recipient_public_key)
    ephemeral = ec.generate_private_key(ec.SECP256K1(), default_backend())
    ephemeral_bytes = ephemeral.public_key().public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint
    )
    key = _derive_key(ephemeral.exchange(ec.ECDH(), recipient))

    # 96 bits for GCM
    iv = os.urandom(12)

    encryptor = Cipher(
        algorithms.AES(key),
        modes.GCM(iv),
        backend=default_backend()
    ).encryptor()
    encryptor.authenticate_additional_data(ephemeral_bytes)
    ciphertext = encryptor.update(data) + encryptor.finalize()

    return json.dumps({
        'ephemeral_public_key': base64.b64encode(ephemeral_bytes).decode('utf-8'),
        'iv': base64.b64encode(iv).decode('utf-8'),
        'ciphertext': base64.b64encode(ciphertext).decode('utf-8'),
        'tag': base64.b64encode(encryptor.tag).decode('utf-8')
    })


def unseal(sealed, private_key):
    """Decrypt data produced by seal()

    Raises:
        ValueError: If the payload is malformed or was not sealed for this key
    """
    if isinstance(sealed, bytes):
        sealed = sealed.decode('utf-8')

    try:
        envelope = json.loads(sealed)
        ephemeral_bytes = base64.b64decode(envelope['ephemeral_public_key'])
        iv = base64.b64decode(envelope['iv'])
        ciphertext = base64.b64decode(envelope['ciphertext'])
        tag = base64.b64decode(envelope['tag'])
    except (ValueError, KeyError, TypeError) as e:
        raise ValueError(f"Malformed sealed payload: {e}") from e

    ephemeral = ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256K1(), ephemeral_bytes)
    key = _derive_key(_load_private_key(private_key).exchange(ec.ECDH(), ephemeral))

    decryptor = Cipher(
        algorithms.AES(key),
        modes.GCM(iv, tag),
        backend=default_backend()
    ).decryptor()
    decryptor.authenticate_additional_data(ephemeral_bytes)
    try:
        plaintext = decryptor.update(ciphertext) + decryptor.finalize()
    except InvalidTag as e:
        raise ValueError("Failed to decrypt data") from e

    return plaintext.decode('utf-8')
