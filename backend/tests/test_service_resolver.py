"""Tests for generation-mode resolution."""
import itertools

import pytest

from quickbrush.core.errors import ConfigurationError
from quickbrush.models.account import AccountState, GenerationStrategy
from quickbrush.services.resolver import (
    INSUFFICIENT_TIER_NO_KEY,
    NO_ACCOUNT_NO_KEY,
    SERVER_MODE_DISABLED_NO_KEY,
    can_use_byok_advanced,
    can_use_server_generation,
    require_strategy,
    resolve,
)

ALL_ACCOUNTS = [
    AccountState(
        linked=linked, tier_level=tier, local_api_key=key, server_mode_preferred=server
    )
    for linked, tier, key, server in itertools.product(
        [True, False], [0, 300, 500, 1000], [None, "sk-x"], [True, False]
    )
]


class TestResolve:
    """Tests for resolve() priority rules."""

    def test_alchemist_with_server_mode_uses_pool(self) -> None:
        account = AccountState(linked=True, tier_level=500, server_mode_preferred=True)
        assert resolve(account) is GenerationStrategy.server_pooled

    def test_server_pool_wins_over_local_key(self) -> None:
        account = AccountState(
            linked=True, tier_level=1000, local_api_key="sk-x", server_mode_preferred=True
        )
        assert resolve(account) is GenerationStrategy.server_pooled

    def test_linked_free_tier_with_key_uses_broker_byok(self) -> None:
        account = AccountState(linked=True, tier_level=0, local_api_key="x")
        assert resolve(account) is GenerationStrategy.server_brokered_byok

    def test_alchemist_with_server_mode_off_and_key_uses_broker_byok(self) -> None:
        account = AccountState(
            linked=True, tier_level=500, local_api_key="x", server_mode_preferred=False
        )
        assert resolve(account) is GenerationStrategy.server_brokered_byok

    def test_unlinked_with_key_uses_local_byok(self) -> None:
        account = AccountState(linked=False, local_api_key="x")
        assert resolve(account) is GenerationStrategy.local_direct_byok

    def test_unlinked_without_key_is_unconfigured(self) -> None:
        account = AccountState(linked=False, local_api_key=None)
        assert resolve(account) is GenerationStrategy.unconfigured

    def test_tier_499_does_not_unlock_server(self) -> None:
        account = AccountState(linked=True, tier_level=499, server_mode_preferred=True)
        assert resolve(account) is GenerationStrategy.unconfigured

    def test_blank_key_counts_as_absent(self) -> None:
        account = AccountState(linked=False, local_api_key="   ")
        assert resolve(account) is GenerationStrategy.unconfigured

    @pytest.mark.parametrize("account", ALL_ACCOUNTS)
    def test_resolve_is_pure(self, account: AccountState) -> None:
        """Same snapshot, same answer, and always a GenerationStrategy."""
        first = resolve(account)
        second = resolve(account.model_copy())
        assert first is second
        assert isinstance(first, GenerationStrategy)


class TestRequireStrategy:
    """Tests for require_strategy() error messages."""

    def test_returns_strategy_when_configured(self) -> None:
        account = AccountState(linked=False, local_api_key="x")
        assert require_strategy(account) is GenerationStrategy.local_direct_byok

    def test_no_account_no_key_message(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            require_strategy(AccountState())
        assert str(exc_info.value) == NO_ACCOUNT_NO_KEY

    def test_insufficient_tier_message(self) -> None:
        account = AccountState(linked=True, tier_level=300)
        with pytest.raises(ConfigurationError) as exc_info:
            require_strategy(account)
        assert str(exc_info.value) == INSUFFICIENT_TIER_NO_KEY

    def test_server_mode_disabled_message(self) -> None:
        account = AccountState(linked=True, tier_level=500, server_mode_preferred=False)
        with pytest.raises(ConfigurationError) as exc_info:
            require_strategy(account)
        assert str(exc_info.value) == SERVER_MODE_DISABLED_NO_KEY

    def test_messages_are_distinct(self) -> None:
        assert len({NO_ACCOUNT_NO_KEY, INSUFFICIENT_TIER_NO_KEY, SERVER_MODE_DISABLED_NO_KEY}) == 3


class TestTierHelpers:
    @pytest.mark.parametrize("tier,expected", [(0, False), (300, False), (500, True), (1000, True)])
    def test_can_use_server_generation(self, tier: int, expected: bool) -> None:
        assert can_use_server_generation(AccountState(linked=True, tier_level=tier)) is expected

    @pytest.mark.parametrize("tier,expected", [(0, False), (299, False), (300, True), (500, True)])
    def test_can_use_byok_advanced(self, tier: int, expected: bool) -> None:
        assert can_use_byok_advanced(AccountState(linked=True, tier_level=tier)) is expected

    def test_unlinked_never_qualifies(self) -> None:
        account = AccountState(linked=False, tier_level=1000)
        assert not can_use_server_generation(account)
        assert not can_use_byok_advanced(account)
