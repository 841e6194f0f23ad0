from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, Iterable, Optional


ENV_SUPABASE_URL = "SUPABASE_URL"
ENV_SUPABASE_KEY = "SUPABASE_SERVICE_ROLE_KEY"
ENV_TORN_API_KEY = "TORN_API_KEY"
ENV_FACTION_ID = "FACTION_ID"
ENV_PARAM_PREFIX = "PARAM_PREFIX"

# SSM parameter names (under PARAM_PREFIX) for the secrets above
SSM_NAMES = {
    ENV_SUPABASE_KEY: "supabase_service_role_key",
    ENV_TORN_API_KEY: "torn_api_key",
    ENV_FACTION_ID: "faction_id",
}


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    val = os.environ.get(name)
    return val if val not in (None, "") else default


def _require(v: Optional[str], what: str) -> str:
    if not v:
        raise RuntimeError(f"Missing required configuration: {what}")
    return v


def _load_ssm_params(prefix: str, names: Iterable[str]) -> Dict[str, Optional[str]]:
    import boto3
    from botocore.exceptions import ClientError

    ssm = boto3.client("ssm")
    out: Dict[str, Optional[str]] = {k: None for k in names}
    for name in names:
        full = f"{prefix}{name}"
        try:
            resp = ssm.get_parameter(Name=full, WithDecryption=True)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("ParameterNotFound", "AccessDeniedException"):
                out[name] = None
                continue
            raise
        val = resp.get("Parameter", {}).get("Value")
        out[name] = val if isinstance(val, str) and val != "" else None
    return out


@dataclass(frozen=True)
class Settings:
    supabase_url: str
    supabase_key: str
    torn_api_key: Optional[str] = None
    faction_id: Optional[str] = None

    def require_torn_key(self) -> str:
        return _require(self.torn_api_key, ENV_TORN_API_KEY)

    def require_faction_id(self) -> str:
        return _require(self.faction_id, ENV_FACTION_ID)


def load_settings() -> Settings:
    """Resolve configuration: environment first, then SSM under PARAM_PREFIX.

    SSM is only consulted for secrets the environment does not provide, and
    only when PARAM_PREFIX is set.
    """
    values: Dict[str, Optional[str]] = {name: _getenv(name) for name in SSM_NAMES}

    prefix = _getenv(ENV_PARAM_PREFIX)
    missing = [name for name, val in values.items() if val is None]
    if prefix and missing:
        params = _load_ssm_params(prefix, [SSM_NAMES[name] for name in missing])
        for name in missing:
            values[name] = params.get(SSM_NAMES[name])

    return Settings(
        supabase_url=_require(_getenv(ENV_SUPABASE_URL), ENV_SUPABASE_URL),
        supabase_key=_require(values[ENV_SUPABASE_KEY], ENV_SUPABASE_KEY),
        torn_api_key=values[ENV_TORN_API_KEY],
        faction_id=values[ENV_FACTION_ID],
    )


__all__ = ["Settings", "load_settings"]
