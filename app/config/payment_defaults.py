"""Default chain, asset and upstream endpoint selection."""

DEFAULT_CHAIN = "BASE"
DEFAULT_ASSET = "USDC"
DEFAULT_UPSTREAM_API_BASE = "https://blockrun.ai/api"

CHAIN_ASSET_DEFAULTS: dict[str, str] = {
    "BASE": "USDC",
    "XRPL": "RLUSD",
}
CHAIN_UPSTREAM_DEFAULTS: dict[str, str] = {
    "BASE": "https://blockrun.ai/api",
    "XRPL": "https://xrpl.blockrun.ai/api",
}


def _clean(value: str | None) -> str:
    return (value or "").strip()


def resolve_chain_asset_defaults(chain: str | None, asset: str | None = None) -> tuple[str, str]:
    """Return ``(chain, asset)`` with the chain upper-cased and the asset defaulted per chain.

    An explicitly supplied asset always wins over the chain default.
    """
    resolved_chain = (_clean(chain) or DEFAULT_CHAIN).upper()
    explicit_asset = _clean(asset)
    if explicit_asset:
        return resolved_chain, explicit_asset
    return resolved_chain, CHAIN_ASSET_DEFAULTS.get(resolved_chain, DEFAULT_ASSET)


def resolve_upstream_api_base(chain: str | None, upstream_api_base: str | None = None) -> str:
    explicit = _clean(upstream_api_base)
    if explicit:
        return explicit.rstrip("/")
    resolved_chain = (_clean(chain) or DEFAULT_CHAIN).upper()
    return CHAIN_UPSTREAM_DEFAULTS.get(resolved_chain, DEFAULT_UPSTREAM_API_BASE)
