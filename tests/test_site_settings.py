from datetime import date

import pytest
from pydantic import ValidationError

import database
from schemas import AnnouncementSetting
from site_settings import (
    DEFAULT_ASSISTANT_PROMPT,
    DEFAULT_PRIVACY_POLICY,
    SETTINGS,
    SettingKey,
    SettingsView,
    announcement_visible,
    default_setting,
    load_setting,
    resolve,
    save_setting,
)

TODAY = date(2025, 6, 1)


def test_defaults_for_every_key():
    assert resolve(SettingKey.FOOTER, None, TODAY).content == "© 2025 Darpan Wears. All rights reserved."
    assert resolve(SettingKey.PRIVACY_POLICY, None).content == DEFAULT_PRIVACY_POLICY
    assert resolve(SettingKey.ANNOUNCEMENT, None).content == ""
    assert resolve(SettingKey.PAYMENT_OPTIONS, None).is_cash_on_delivery_enabled is True
    assert resolve(SettingKey.ASSISTANT, None).base_prompt == DEFAULT_ASSISTANT_PROMPT


def test_default_assistant_prompt_names_the_persona():
    assert DEFAULT_ASSISTANT_PROMPT.startswith("You are Darpan 2.0")
    assert "Send Order on WhatsApp" in DEFAULT_ASSISTANT_PROMPT


def test_keys_accept_string_names():
    assert resolve("paymentOptions", {"is_cash_on_delivery_enabled": False}).is_cash_on_delivery_enabled is False
    with pytest.raises(ValueError):
        default_setting("shipping")


def test_stored_value_wins():
    assert resolve(SettingKey.FOOTER, {"id": "footer", "content": "Made in Kolkata"}).content == "Made in Kolkata"


@pytest.mark.parametrize("key, stored", [
    (SettingKey.FOOTER, {"content": ""}),
    (SettingKey.PRIVACY_POLICY, {"content": ""}),
    (SettingKey.ASSISTANT, {"base_prompt": "too short"}),
    (SettingKey.PAYMENT_OPTIONS, {"is_cash_on_delivery_enabled": "sometimes"}),
    (SettingKey.FOOTER, {}),
])
def test_blank_or_invalid_values_resolve_to_default(key, stored):
    assert resolve(key, stored, TODAY) == default_setting(key, TODAY)


@pytest.mark.parametrize("content, visible", [
    ("", False),
    ("   ", False),
    ("Free shipping this week!", True),
])
def test_announcement_visibility(content, visible):
    assert announcement_visible(AnnouncementSetting(content=content)) is visible


def test_load_setting_falls_back_without_database(monkeypatch):
    monkeypatch.setattr(database, "db", None)
    assert load_setting(SettingKey.PAYMENT_OPTIONS).is_cash_on_delivery_enabled is True


def test_save_then_load(store):
    save_setting(SettingKey.ANNOUNCEMENT, {"content": "Diwali sale"})
    assert load_setting(SettingKey.ANNOUNCEMENT).content == "Diwali sale"

    save_setting(SettingKey.ANNOUNCEMENT, {"content": "Winter sale"})
    assert load_setting(SettingKey.ANNOUNCEMENT).content == "Winter sale"
    assert store[SETTINGS].count_documents({}) == 1


def test_save_rejects_invalid_payload(store):
    with pytest.raises(ValidationError):
        save_setting(SettingKey.ASSISTANT, {"base_prompt": "short"})
    assert store[SETTINGS].count_documents({}) == 0


def test_settings_view_tracks_document(store):
    view = SettingsView(SettingKey.PAYMENT_OPTIONS)
    assert view.loading
    view.attach()
    assert not view.loading
    assert view.value.is_cash_on_delivery_enabled is True

    save_setting(SettingKey.PAYMENT_OPTIONS, {"is_cash_on_delivery_enabled": False})
    assert view.value.is_cash_on_delivery_enabled is False

    view.close()
    save_setting(SettingKey.PAYMENT_OPTIONS, {"is_cash_on_delivery_enabled": True})
    assert view.value.is_cash_on_delivery_enabled is False

    database.delete_document(SETTINGS, SettingKey.PAYMENT_OPTIONS.value)
    assert load_setting(SettingKey.PAYMENT_OPTIONS).is_cash_on_delivery_enabled is True
