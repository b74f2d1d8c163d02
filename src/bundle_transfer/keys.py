import json
import logging
from pathlib import Path

from solders.keypair import Keypair

log = logging.getLogger("bundle_transfer.keys")


class KeyLoadError(RuntimeError):
    pass


def keypair_from_json(text: str) -> Keypair:
    """Solana CLI key file: a JSON array of 64 integers, secret seed then public key."""
    payload = json.loads(text)
    if not isinstance(payload, list):
        raise ValueError("keypair file must hold a JSON array")
    raw = bytes(payload)
    if len(raw) != 64:
        raise ValueError(f"keypair must be 64 bytes, got {len(raw)}")
    kp = Keypair.from_seed(raw[:32])
    if bytes(kp.pubkey()) != raw[32:]:
        raise ValueError("public key does not match secret key")
    return kp


def read_keys(key_folder: str | Path) -> list[Keypair]:
    """Load every keypair file in key_folder, sorted by file name."""
    folder = Path(key_folder)
    try:
        paths = sorted(p for p in folder.iterdir() if p.is_file())
    except OSError as e:
        raise KeyLoadError(f"Failed to read key folder {folder}: {e}") from e

    keys = []
    for path in paths:
        try:
            keys.append(keypair_from_json(path.read_text()))
        except (OSError, TypeError, ValueError) as e:
            raise KeyLoadError(f"Failed to read keypair from {path}: {e}") from e
    log.info("Loaded %s keys from %s", len(keys), folder)
    return keys
