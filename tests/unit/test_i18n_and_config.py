"""Unit tests for label resolution, key sanitization and settings validation."""

import pytest
from pydantic import ValidationError

from tenant_roles.core.config import Settings
from tenant_roles.shared.context import set_current_locale
from tenant_roles.shared.utils import KeySanitizer, LabelResolver, humanize_slug, resolve_localized


def test_resolve_localized_order() -> None:
    """locale -> fallback -> first available -> None."""
    value = {"en": "Users", "ar": "المستخدمون"}
    assert resolve_localized(value, "ar", "en") == "المستخدمون"
    assert resolve_localized(value, "fr", "en") == "Users"
    assert resolve_localized({"de": "Benutzer"}, "fr", "en") == "Benutzer"
    assert resolve_localized({"en": ""}, "en", "en") is None
    assert resolve_localized(None, "en", "en") is None
    assert resolve_localized("Plain", "ar", "en") == "Plain"


def test_label_resolver_uses_request_locale() -> None:
    resolver = LabelResolver("en", "en", ["en", "fr"], enabled=True)
    value = {"en": "Edit", "fr": "Modifier"}
    assert resolver.resolve(value) == "Edit"
    set_current_locale("fr")
    assert resolver.locale() == "fr"
    assert resolver.resolve(value) == "Modifier"


def test_label_resolver_ignores_unconfigured_or_disabled_locale() -> None:
    value = {"en": "Edit", "fr": "Modifier"}
    set_current_locale("fr")
    disabled = LabelResolver("en", "en", ["en", "fr"], enabled=False)
    assert disabled.locale() == "en"
    assert disabled.resolve(value) == "Edit"
    unconfigured = LabelResolver("en", "en", ["en", "ar"], enabled=True)
    assert unconfigured.locale() == "en"
    assert unconfigured.resolve(value) == "Edit"


def test_humanize_slug() -> None:
    assert humanize_slug("user_roles") == "User roles"
    assert humanize_slug("force-delete") == "Force delete"
    assert humanize_slug("") == ""


def test_key_sanitizer() -> None:
    assert KeySanitizer.sanitize("a:b c/1") == "a_b_c_1"
    assert KeySanitizer.sanitize(42) == "42"
    assert KeySanitizer.is_safe("team-1_a")
    assert not KeySanitizer.is_safe("team:1")
    assert not KeySanitizer.is_safe("")


def test_settings_reject_guard_outside_available_guards() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, guard="admin")
    with pytest.raises(ValidationError):
        Settings(_env_file=None, auth_guards=[])
    with pytest.raises(ValidationError):
        Settings(_env_file=None, auth_default_guard="sanctum")


def test_settings_reject_unknown_default_locale() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, i18n_enabled=True, i18n_locales=["en"], i18n_default="ar")


def test_settings_reject_non_positive_ttl() -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, cache_ttl=0)


def test_settings_are_immutable(settings) -> None:
    with pytest.raises(ValidationError):
        settings.guard = "api"


def test_seed_helpers(make_settings) -> None:
    """Default roles always come first; catalogue names are "group.action"."""
    settings = make_settings(
        seed_roles=["manager", "admin"],
        seed_permission_groups={"users": ["list", "create"], "posts": ["list"]},
    )
    assert settings.all_seed_roles() == ["super-admin", "admin", "user", "manager"]
    assert settings.configured_permission_names() == ["users.list", "users.create", "posts.list"]
