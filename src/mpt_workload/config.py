import os
import tomllib
from pathlib import Path

pkg_root = Path(__file__).parent
config_file = pkg_root / "config.toml"

# env var -> (section, key)
ENV_OVERRIDES = {
    "MPT_NETWORK_URL": ("network", "url"),
    "MPT_FAUCET_URL": ("network", "faucet_url"),
    "MPT_EXPLORER_URL": ("network", "explorer_url"),
    "MPT_ISSUER_SEED": ("identities", "issuer_seed"),
    "MPT_HOLDER_SEED": ("identities", "holder_seed"),
    "MPT_TRANSFER_AMOUNT": ("transfer", "amount"),
}


def load_config(path: Path | str | None = None, environ: dict | None = None) -> dict:
    """Parse the TOML config and layer environment overrides on top."""
    env = os.environ if environ is None else environ
    conf = tomllib.loads(Path(path or config_file).read_text())
    conf.setdefault("identities", {})
    for var, (section, key) in ENV_OVERRIDES.items():
        if value := env.get(var):
            conf.setdefault(section, {})[key] = value
    return conf


cfg = load_config()
