from __future__ import annotations

from typing import Any, Dict, Optional

from ..config import Settings, get_settings
from ..errors import MissingCredentialsError
from ..providers.ilove_api import BackendKind, CredentialContext


_HELP = (
    "Missing API credentials. Provide public_key and secret_key as tool arguments, "
    "or set ILOVEPDF_PUBLIC_KEY and ILOVEPDF_SECRET_KEY in the environment. "
    "Get your keys at https://developer.ilovepdf.com"
)
_IMAGE_HELP = (
    " Image tools need iLoveIMG project keys (image_public_key, or ILOVEIMG_PUBLIC_KEY "
    "and ILOVEIMG_SECRET_KEY); get them at https://developer.iloveimg.com"
)


def _arg(arguments: Dict[str, Any], key: str) -> Optional[str]:
    v = arguments.get(key)
    if not isinstance(v, str):
        return None
    v = v.strip()
    return v or None


def resolve_credentials(
    arguments: Dict[str, Any],
    backend: BackendKind = "document",
    settings: Optional[Settings] = None,
) -> CredentialContext:
    """Pick the key pair for one tool call.

    Keys passed with the call win. If either half is missing the environment
    pair is used instead (for image tools the iLoveIMG pair, then iLovePDF).
    Keys are never mixed across pairs.
    """
    s = settings or get_settings()

    if backend == "image":
        public_key = _arg(arguments, "image_public_key") or _arg(arguments, "public_key")
    else:
        public_key = _arg(arguments, "public_key")
    secret_key = _arg(arguments, "secret_key")

    if public_key and secret_key:
        return CredentialContext(public_key=public_key, secret_key=secret_key, backend=backend)

    pairs = [(s.public_key, s.secret_key)]
    if backend == "image":
        pairs.insert(0, (s.image_public_key, s.image_secret_key))

    for env_public, env_secret in pairs:
        if env_public and env_secret:
            return CredentialContext(public_key=env_public, secret_key=env_secret, backend=backend)

    raise MissingCredentialsError(_HELP + (_IMAGE_HELP if backend == "image" else ""))
