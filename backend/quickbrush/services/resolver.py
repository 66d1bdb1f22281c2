"""Generation-mode resolution from the account snapshot.

Pure functions only: no I/O, no caching. The same AccountState always yields
the same strategy.
"""
from quickbrush.core.errors import ConfigurationError
from quickbrush.models.account import AccountState, GenerationStrategy

# Tier thresholds in cents.
SERVER_GENERATION_MIN_TIER = 500  # Alchemist
BYOK_ADVANCED_MIN_TIER = 300  # Apprentice

NO_ACCOUNT_NO_KEY = (
    "Please link your Wizzlethorpe Labs account or configure an OpenAI API key."
)
INSUFFICIENT_TIER_NO_KEY = (
    "Server-side generation requires an Alchemist subscription. "
    "Please add an OpenAI API key for BYOK mode."
)
SERVER_MODE_DISABLED_NO_KEY = (
    "Server mode is disabled. Enable server mode or add an OpenAI API key for BYOK mode."
)


def can_use_server_generation(account: AccountState) -> bool:
    return account.linked and account.tier_level >= SERVER_GENERATION_MIN_TIER


def can_use_byok_advanced(account: AccountState) -> bool:
    """Whether BYOK generation of non-character subjects is unlocked."""
    return account.linked and account.tier_level >= BYOK_ADVANCED_MIN_TIER


def resolve(account: AccountState) -> GenerationStrategy:
    """Pick the generation pathway for this account snapshot.

    Priority (first match wins):
    1. Linked, Alchemist or above, server mode preferred -> server_pooled
    2. Linked with a local key -> server_brokered_byok (key forwarded)
    3. Not linked with a local key -> local_direct_byok
    4. Anything else -> unconfigured
    """
    if can_use_server_generation(account) and account.server_mode_preferred:
        return GenerationStrategy.server_pooled
    if account.linked and account.has_local_key:
        return GenerationStrategy.server_brokered_byok
    if not account.linked and account.has_local_key:
        return GenerationStrategy.local_direct_byok
    return GenerationStrategy.unconfigured


def unconfigured_reason(account: AccountState) -> str:
    """Explain why `resolve` returned unconfigured for this snapshot."""
    if not account.linked:
        return NO_ACCOUNT_NO_KEY
    if not can_use_server_generation(account):
        return INSUFFICIENT_TIER_NO_KEY
    return SERVER_MODE_DISABLED_NO_KEY


def require_strategy(account: AccountState) -> GenerationStrategy:
    """Resolve a strategy or raise ConfigurationError with the reason.

    Raises:
        ConfigurationError: When no generation pathway is available.
    """
    strategy = resolve(account)
    if strategy is GenerationStrategy.unconfigured:
        raise ConfigurationError(unconfigured_reason(account))
    return strategy
