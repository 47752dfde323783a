"""Tests for keyed, idempotent attachment of the diagnostics provider."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from diagwire import (
    DIAGNOSTICS_KIND,
    Configuration,
    ConfigureOptions,
    DiagnosticsLoggerProvider,
    DiagWireInvalidRegistrationError,
    LoggerFactory,
    LoggerProvider,
    OptionsChangeTokenSource,
    RegistrationLedger,
    RegistrationToken,
    ServiceRegistry,
    StaticHostContext,
    add_logging,
    attach,
    register_once,
)
from diagwire._internal.diagnostics import register_diagnostics


def _counts(registry: ServiceRegistry) -> tuple[int, int, int]:
    return (
        len(registry),
        registry.count(ConfigureOptions),
        registry.count(OptionsChangeTokenSource),
    )


def _add_diagnostics(
    host_context: StaticHostContext,
    key: str | None,
) -> Callable[..., object]:
    return lambda builder: builder.add_app_services_diagnostics(host_context, key)


class TestSingleSetOfServices:
    @pytest.mark.parametrize("key", [None, "customPrefix"])
    def test_builder_extension_adds_single_set_of_services_when_called_twice(
        self,
        registry: ServiceRegistry,
        host_context: StaticHostContext,
        key: str | None,
    ) -> None:
        add_logging(registry, _add_diagnostics(host_context, key))
        count = len(registry)

        assert count != 0

        add_logging(registry, _add_diagnostics(host_context, key))

        assert len(registry) == count

    @pytest.mark.parametrize("key", [None, "customPrefix"])
    def test_attach_twice_keeps_every_count(
        self,
        registry: ServiceRegistry,
        host_context: StaticHostContext,
        key: str | None,
    ) -> None:
        attach(registry, key, host_context, Configuration())
        after_first = _counts(registry)

        attach(registry, key, host_context, Configuration())

        assert _counts(registry) == after_first

    def test_same_key_from_different_call_sites_is_one_registration(
        self,
        registry: ServiceRegistry,
        host_context: StaticHostContext,
    ) -> None:
        first_prefix = "".join(["custom", "Prefix"])
        second_prefix = "customPrefix"

        attach(registry, first_prefix, host_context, Configuration())
        add_logging(registry, _add_diagnostics(host_context, second_prefix))
        attach(registry, second_prefix, host_context, Configuration({"other": "value"}))

        assert registry.count(LoggerProvider) == 1
        assert registry.count(ConfigureOptions) == 3


class TestConfigurationChangeTokenSource:
    @pytest.mark.parametrize("key", [None, "customPrefix"])
    def test_builder_extension_adds_configuration_change_token_source(
        self,
        baseline_registry: ServiceRegistry,
        host_context: StaticHostContext,
        key: str | None,
    ) -> None:
        # Tracking for main configuration
        assert baseline_registry.count(OptionsChangeTokenSource) == 1

        add_logging(baseline_registry, _add_diagnostics(host_context, key))

        assert baseline_registry.count(OptionsChangeTokenSource) == 2


class TestConfigureOptions:
    @pytest.mark.parametrize("key", [None, "customPrefix"])
    def test_builder_extension_adds_configure_options(
        self,
        baseline_registry: ServiceRegistry,
        host_context: StaticHostContext,
        key: str | None,
    ) -> None:
        assert baseline_registry.count(ConfigureOptions) == 2

        add_logging(baseline_registry, _add_diagnostics(host_context, key))

        assert baseline_registry.count(ConfigureOptions) == 4

    def test_distinct_keys_are_additive(
        self,
        baseline_registry: ServiceRegistry,
        host_context: StaticHostContext,
    ) -> None:
        add_logging(baseline_registry, _add_diagnostics(host_context, None))
        add_logging(baseline_registry, _add_diagnostics(host_context, "customPrefix"))

        assert baseline_registry.count(ConfigureOptions) == 6
        assert baseline_registry.count(OptionsChangeTokenSource) == 3
        assert baseline_registry.count(LoggerProvider) == 2

    @pytest.mark.parametrize("keys", [["a"], ["a", "b"], [None, "a", "b", "c"]])
    def test_each_new_key_adds_exactly_two_configurators_and_one_source(
        self,
        registry: ServiceRegistry,
        host_context: StaticHostContext,
        keys: list[str | None],
    ) -> None:
        for key in keys:
            configurators = registry.count(ConfigureOptions)
            sources = registry.count(OptionsChangeTokenSource)

            attach(registry, key, host_context, Configuration())

            assert registry.count(ConfigureOptions) - configurators == 2
            assert registry.count(OptionsChangeTokenSource) - sources == 1


class TestEligibility:
    @pytest.mark.parametrize("key", [None, "customPrefix"])
    def test_ineligible_host_adds_nothing(
        self,
        registry: ServiceRegistry,
        ineligible_host_context: StaticHostContext,
        key: str | None,
    ) -> None:
        attach(registry, key, ineligible_host_context, Configuration())
        attach(registry, key, ineligible_host_context, Configuration())

        assert len(registry) == 0
        assert len(registry.ledger) == 0

    def test_ineligible_host_does_not_reject_malformed_key(
        self,
        registry: ServiceRegistry,
        ineligible_host_context: StaticHostContext,
    ) -> None:
        attach(registry, "", ineligible_host_context)

        assert len(registry) == 0

    def test_later_eligible_attach_still_registers(
        self,
        registry: ServiceRegistry,
        host_context: StaticHostContext,
        ineligible_host_context: StaticHostContext,
    ) -> None:
        attach(registry, None, ineligible_host_context, Configuration())
        attach(registry, None, host_context, Configuration())

        assert registry.count(LoggerProvider) == 1


class TestResolvability:
    @pytest.mark.parametrize("key", [None, "customPrefix"])
    def test_logger_provider_is_resolvable(
        self,
        registry: ServiceRegistry,
        host_context: StaticHostContext,
        key: str | None,
    ) -> None:
        add_logging(registry, _add_diagnostics(host_context, key))

        provider = registry.build_provider().resolve(LoggerProvider)

        assert isinstance(provider, DiagnosticsLoggerProvider)

    def test_one_provider_per_distinct_key(
        self,
        registry: ServiceRegistry,
        host_context: StaticHostContext,
    ) -> None:
        for key in [None, "customPrefix", None, "customPrefix", "other"]:
            add_logging(registry, _add_diagnostics(host_context, key))

        providers = registry.build_provider().resolve_all(LoggerProvider)

        assert [provider.name for provider in providers] == [
            "AppServicesDiagnostics",
            "customPrefix:AppServicesDiagnostics",
            "other:AppServicesDiagnostics",
        ]

    def test_provider_uses_application_log_directory(
        self,
        registry: ServiceRegistry,
        host_context: StaticHostContext,
    ) -> None:
        attach(registry, None, host_context, Configuration())

        provider = registry.build_provider().resolve(LoggerProvider)

        assert provider.log_directory.parts[-2:] == ("LogFiles", "Application")

    def test_logger_factory_is_resolvable(
        self,
        registry: ServiceRegistry,
        host_context: StaticHostContext,
    ) -> None:
        add_logging(registry, _add_diagnostics(host_context, None))

        factory = registry.build_provider().resolve(LoggerFactory)

        assert len(factory.providers) == 1


class TestFailedRegistration:
    @pytest.mark.parametrize("key", ["", "a:b"])
    def test_malformed_key_raises_and_leaves_no_state(
        self,
        baseline_registry: ServiceRegistry,
        host_context: StaticHostContext,
        key: str,
    ) -> None:
        before = _counts(baseline_registry)

        with pytest.raises(DiagWireInvalidRegistrationError):
            attach(baseline_registry, key, host_context, Configuration())

        assert _counts(baseline_registry) == before
        assert RegistrationToken(DIAGNOSTICS_KIND, key) not in baseline_registry.ledger

    def test_partial_failure_rolls_back_and_allows_retry(
        self,
        registry: ServiceRegistry,
        host_context: StaticHostContext,
    ) -> None:
        calls: list[str | None] = []

        def _flaky(target: ServiceRegistry, key: str | None) -> None:
            calls.append(key)
            register_diagnostics(target, key, host_context, Configuration())
            if len(calls) == 1:
                msg = "backend unavailable"
                raise RuntimeError(msg)

        token = RegistrationToken(DIAGNOSTICS_KIND, "customPrefix")

        with pytest.raises(RuntimeError, match="backend unavailable"):
            register_once(registry, token, host_context, _flaky)

        assert len(registry) == 0
        assert token not in registry.ledger

        assert register_once(registry, token, host_context, _flaky) is True
        assert register_once(registry, token, host_context, _flaky) is False
        assert registry.count(LoggerProvider) == 1
        assert calls == ["customPrefix", "customPrefix"]

    def test_enclosing_block_failure_unmarks_key_and_allows_retry(
        self,
        registry: ServiceRegistry,
        host_context: StaticHostContext,
    ) -> None:
        token = RegistrationToken(DIAGNOSTICS_KIND, "customPrefix")

        with pytest.raises(RuntimeError, match="later step"), registry.registration_mutation():
            attach(registry, "customPrefix", host_context, Configuration())
            msg = "later step"
            raise RuntimeError(msg)

        assert len(registry) == 0
        assert token not in registry.ledger

        attach(registry, "customPrefix", host_context, Configuration())

        assert registry.count(LoggerProvider) == 1
        assert registry.count(OptionsChangeTokenSource) == 1
        assert token in registry.ledger

    def test_enclosing_block_failure_unmarks_explicit_ledger(
        self,
        registry: ServiceRegistry,
        host_context: StaticHostContext,
    ) -> None:
        ledger = RegistrationLedger()

        with pytest.raises(RuntimeError, match="later step"), registry.registration_mutation():
            attach(registry, None, host_context, Configuration(), ledger=ledger)
            msg = "later step"
            raise RuntimeError(msg)

        assert len(ledger) == 0

        attach(registry, None, host_context, Configuration(), ledger=ledger)

        assert registry.count(LoggerProvider) == 1
        assert RegistrationToken(DIAGNOSTICS_KIND, None) in ledger

    def test_enclosing_block_success_keeps_key_marked(
        self,
        registry: ServiceRegistry,
        host_context: StaticHostContext,
    ) -> None:
        with registry.registration_mutation():
            attach(registry, None, host_context, Configuration())
            attach(registry, None, host_context, Configuration())

        assert registry.count(LoggerProvider) == 1
        assert RegistrationToken(DIAGNOSTICS_KIND, None) in registry.ledger


class TestLedger:
    def test_registry_owns_a_ledger_by_default(
        self,
        registry: ServiceRegistry,
        host_context: StaticHostContext,
    ) -> None:
        attach(registry, "customPrefix", host_context, Configuration())

        assert list(registry.ledger) == [RegistrationToken(DIAGNOSTICS_KIND, "customPrefix")]

    def test_explicit_ledger_is_used_instead_of_registry_ledger(
        self,
        registry: ServiceRegistry,
        host_context: StaticHostContext,
    ) -> None:
        ledger = RegistrationLedger()

        attach(registry, None, host_context, Configuration(), ledger=ledger)

        assert RegistrationToken(DIAGNOSTICS_KIND, None) in ledger
        assert len(registry.ledger) == 0

    def test_registries_do_not_share_ledgers(self, host_context: StaticHostContext) -> None:
        first = ServiceRegistry()
        second = ServiceRegistry()

        attach(first, None, host_context, Configuration())
        attach(second, None, host_context, Configuration())

        assert first.count(LoggerProvider) == 1
        assert second.count(LoggerProvider) == 1

    def test_none_and_empty_string_are_distinct_tokens(self) -> None:
        assert RegistrationToken(DIAGNOSTICS_KIND, None) != RegistrationToken(DIAGNOSTICS_KIND, "")


class TestSettingsFile:
    def test_missing_settings_file_attaches_with_empty_configuration(
        self,
        registry: ServiceRegistry,
        host_context: StaticHostContext,
    ) -> None:
        attach(registry, None, host_context)

        assert registry.count(LoggerProvider) == 1
        assert registry.count(ConfigureOptions) == 2
