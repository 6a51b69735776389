"""RSA key management for RS256 token signing and the JWK Set endpoint"""

import base64
from typing import Any, Dict, Optional

from authlib.jose import JsonWebKey
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from ...shared.logger import log_info, log_warning


class RSAKeyManager:
    """Loads the signing key from configuration or generates one at startup"""

    def __init__(self, private_key_b64: Optional[str] = None):
        self.private_key_b64 = private_key_b64
        self.private_key: Optional[bytes] = None
        self.public_key: Optional[bytes] = None
        self._jwk: Optional[Dict[str, Any]] = None

    def load_or_generate_keys(self) -> None:
        """Load a base64 encoded PEM private key, or generate a 2048-bit key"""
        if self.private_key_b64:
            pem = base64.b64decode(self.private_key_b64)
            key = serialization.load_pem_private_key(pem, password=None)
            log_info("RSA signing key loaded from configuration", component="oauth_keys")
        else:
            key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
            log_warning(
                "No RSA signing key configured, generated an ephemeral key",
                component="oauth_keys",
            )

        self.private_key = key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        self.public_key = key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        self._jwk = None

    @property
    def kid(self) -> str:
        return self.get_jwk()["kid"]

    def get_jwk(self) -> Dict[str, Any]:
        """Public key as a JWK with ``kid``, ``use`` and ``alg``"""
        if self.public_key is None:
            self.load_or_generate_keys()
        if self._jwk is None:
            key = JsonWebKey.import_key(self.public_key, {"kty": "RSA"})
            jwk = key.as_dict(is_private=False)
            jwk.update({"kid": key.thumbprint(), "use": "sig", "alg": "RS256"})
            self._jwk = jwk
        return dict(self._jwk)
