import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    """Read an integer environment variable or raise naming the variable."""
    value = env.get(key)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {value!r}")


def _env_float(env: Mapping[str, str], key: str, default: Optional[float]) -> Optional[float]:
    value = env.get(key)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {value!r}")


def _env_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    value = env.get(key)
    if not value:
        return default
    return value.lower() in ("true", "1", "yes")


@dataclass(frozen=True)
class Settings:
    # Balance store (PostgREST-style REST interface)
    store_url: str = ""
    store_key: str = ""

    # Identity of the user and instance this proxy meters for
    user_id: str = ""
    deployment_id: str = ""

    default_provider: str = "anthropic"
    default_model: str = "claude-opus-4-20250514"

    # Server settings
    host: str = "127.0.0.1"
    port: int = 4100

    cap_cents: int = 1500
    store_timeout: float = 10.0
    # None means per-provider defaults from the forwarding engine
    upstream_timeout: Optional[float] = None

    # Policy when the balance store cannot be read for the quota check
    fail_open_on_store_error: bool = True

    credit_exceeded_message: str = ""
    log_level: str = "INFO"

    @property
    def exceeded_message(self) -> str:
        if self.credit_exceeded_message:
            return self.credit_exceeded_message
        return (
            f"Your monthly AI credit (${self.cap_cents / 100:.2f}) has been used up. "
            "It will be renewed at the start of the next billing period."
        )

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from the process environment (after loading .env)."""
        if env is None:
            load_dotenv()
            env = os.environ

        return cls(
            store_url=env.get("SUPABASE_URL", "").rstrip("/"),
            store_key=env.get("SUPABASE_SERVICE_ROLE_KEY", ""),
            user_id=env.get("USER_ID", ""),
            deployment_id=env.get("INSTANCE_ID", ""),
            default_provider=env.get("AI_PROVIDER") or "anthropic",
            default_model=env.get("AI_MODEL") or "claude-opus-4-20250514",
            host=env.get("CREDIT_PROXY_HOST") or "127.0.0.1",
            port=_env_int(env, "CREDIT_PROXY_PORT", 4100),
            cap_cents=_env_int(env, "CREDIT_CAP_CENTS", 1500),
            store_timeout=_env_float(env, "STORE_TIMEOUT_SECONDS", 10.0),
            upstream_timeout=_env_float(env, "UPSTREAM_TIMEOUT_SECONDS", None),
            fail_open_on_store_error=_env_bool(env, "CREDIT_FAIL_OPEN", True),
            credit_exceeded_message=env.get("CREDIT_EXCEEDED_MESSAGE", ""),
            log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
        )
