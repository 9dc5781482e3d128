"""Signature verification for typed messages.

Each address owns an HMAC secret; a signature is the compact JWS of the typed
message signed with that secret. verify() is strict: the JWS payload must decode
to exactly the message the engine rebuilt, so a signature over a stale nonce,
another market or different amounts never verifies.

MVP NOTE: HS256 means the verifier holds every signer's secret. Production
deployments would switch to an asymmetric algorithm so only public keys live here.
"""

import json
import logging
from typing import Any

from jose import jws
from jose.exceptions import JWSError

from config.settings import settings

logger = logging.getLogger(__name__)


class JoseSignatureVerifier:
    def __init__(
        self,
        keys: dict[str, str] | None = None,
        algorithm: str = settings.SIGNING_ALGORITHM,
    ) -> None:
        self._keys: dict[str, str] = dict(settings.SIGNER_KEYS if keys is None else keys)
        self._algorithm = algorithm

    def register(self, signer: str, secret: str) -> None:
        self._keys[signer] = secret

    def sign(self, message: dict[str, Any], signer: str) -> str:
        """Sign on behalf of a registered address (local runs and tests)."""
        key = self._keys.get(signer)
        if key is None:
            raise KeyError(f"no signing key registered for {signer}")
        return str(jws.sign(message, key, algorithm=self._algorithm))

    def verify(self, message: dict[str, Any], signature: str, signer: str) -> bool:
        key = self._keys.get(signer)
        if key is None:
            logger.debug("No key registered for signer %s", signer)
            return False
        try:
            payload = jws.verify(signature, key, algorithms=[self._algorithm])
        except JWSError:
            return False
        try:
            signed = json.loads(payload)
        except ValueError:
            return False
        return bool(signed == message)
