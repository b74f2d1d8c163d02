import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field, NonNegativeInt, PositiveFloat, PositiveInt, ValidationError

import bundle_transfer.constants as C

pkg_root = Path(__file__).parent
config_file = pkg_root / "config.toml"


class ConfigError(RuntimeError):
    """Raised when the run cannot start with the given settings."""


class RetrySettings(BaseModel):
    base_delay: PositiveFloat = C.RETRY_BASE_DELAY
    max_delay: PositiveFloat = C.RETRY_MAX_DELAY
    max_attempts: NonNegativeInt = C.RETRY_MAX_ATTEMPTS  # 0 means unbounded


class Settings(BaseModel):
    rpc_url: str
    rpc_timeout: PositiveFloat = C.RPC_TIMEOUT
    jito_url: str
    tip_stream_url: str
    jito_timeout: PositiveFloat = C.SUBMIT_TIMEOUT
    group_size: int = Field(default=C.GROUP_SIZE, ge=1, le=C.GROUP_SIZE)
    fetch_account_limit: int = Field(default=C.FETCH_ACCOUNT_LIMIT, ge=1, le=C.FETCH_ACCOUNT_LIMIT)
    slot_expiration: PositiveInt = C.SLOT_EXPIRATION
    poll_interval: float = Field(default=C.POLL_INTERVAL, ge=0)
    priority_fee: NonNegativeInt | None = None
    retry: RetrySettings = RetrySettings()

    def require_priority_fee(self) -> int:
        if self.priority_fee is None:
            raise ConfigError("jito tip is required: pass --priority-fee <lamports>")
        return self.priority_fee


def load_settings(path: Path | None = None, **overrides) -> Settings:
    """Read config.toml, apply RPC_URL/JITO_URL from the environment, then explicit overrides.

    Overrides whose value is None are ignored so CLI flags that were not given keep the file value.
    """
    cfg = tomllib.loads(Path(path or config_file).read_text())
    rpc = cfg.get("rpc", {})
    jito = cfg.get("jito", {})
    data = {
        "rpc_url": os.getenv("RPC_URL", rpc.get("url", C.DEFAULT_RPC_URL)),
        "rpc_timeout": rpc.get("timeout", C.RPC_TIMEOUT),
        "jito_url": os.getenv("JITO_URL", jito.get("url", C.DEFAULT_JITO_URL)),
        "tip_stream_url": jito.get("tip_stream_url", C.DEFAULT_TIP_STREAM_URL),
        "jito_timeout": jito.get("timeout", C.SUBMIT_TIMEOUT),
        **cfg.get("bundle", {}),
        "retry": cfg.get("retry", {}),
    }
    data.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"invalid settings: {e}") from e
