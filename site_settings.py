"""
Site settings: singleton documents in the "settings" collection.

Every key has its own model and a default, so resolving a setting never
fails. A missing document, blank footer/policy text or a document that no
longer fits its model all resolve to the default.
"""
import logging
from datetime import date
from enum import Enum
from typing import Callable, Dict, Optional, Type

from pydantic import BaseModel, ValidationError
from pymongo.errors import PyMongoError

import config
import database
from schemas import (
    AnnouncementSetting,
    AssistantPromptSetting,
    FooterSetting,
    PaymentSetting,
    PrivacyPolicySetting,
)

logger = logging.getLogger(__name__)

SETTINGS = "settings"


class SettingKey(str, Enum):
    FOOTER = "footer"
    PRIVACY_POLICY = "privacyPolicy"
    ANNOUNCEMENT = "announcement"
    PAYMENT_OPTIONS = "paymentOptions"
    ASSISTANT = "darpanAssistant"


SETTING_MODELS: Dict[SettingKey, Type[BaseModel]] = {
    SettingKey.FOOTER: FooterSetting,
    SettingKey.PRIVACY_POLICY: PrivacyPolicySetting,
    SettingKey.ANNOUNCEMENT: AnnouncementSetting,
    SettingKey.PAYMENT_OPTIONS: PaymentSetting,
    SettingKey.ASSISTANT: AssistantPromptSetting,
}

DEFAULT_PRIVACY_POLICY = (
    f"Welcome to {config.STORE_NAME}. We are committed to protecting your privacy. "
    "This Privacy Policy explains how we collect, use, disclose, and safeguard your "
    "information when you visit our website."
)

DEFAULT_ASSISTANT_PROMPT = f"""You are Darpan 2.0, a friendly and helpful AI shopping assistant for an e-commerce store called {config.STORE_NAME}.

Your goal is to answer user questions about products, ordering, shipping, or anything related to the store. Be concise and encouraging.

If the user provides an image, your primary task is to identify the product in the image by comparing it to the product catalog. State which product you think it is and why. If it's a screenshot from social media, acknowledge that and still try to find the matching product.

If no image is provided, answer the user's text-based question.

How to order:
1. Browse products and select one.
2. Check details, select a size, and click 'Order Now'.
3. Fill in your details and click 'Send Order on WhatsApp'.
All orders are placed via WhatsApp. Cash on Delivery is available for most products."""


def default_footer(today: Optional[date] = None) -> str:
    year = (today or date.today()).year
    return f"© {year} {config.STORE_NAME}. All rights reserved."


def default_setting(key: SettingKey, today: Optional[date] = None) -> BaseModel:
    key = SettingKey(key)
    if key is SettingKey.FOOTER:
        return FooterSetting(content=default_footer(today))
    if key is SettingKey.PRIVACY_POLICY:
        return PrivacyPolicySetting(content=DEFAULT_PRIVACY_POLICY)
    if key is SettingKey.ANNOUNCEMENT:
        return AnnouncementSetting(content="")
    if key is SettingKey.PAYMENT_OPTIONS:
        return PaymentSetting(is_cash_on_delivery_enabled=True)
    return AssistantPromptSetting(base_prompt=DEFAULT_ASSISTANT_PROMPT)


def resolve(key: SettingKey, stored: Optional[dict], today: Optional[date] = None) -> BaseModel:
    key = SettingKey(key)
    if not stored:
        return default_setting(key, today)
    try:
        return SETTING_MODELS[key].model_validate(stored)
    except ValidationError:
        return default_setting(key, today)


def announcement_visible(setting: AnnouncementSetting) -> bool:
    return bool(setting.content and setting.content.strip())


def load_setting(key: SettingKey) -> BaseModel:
    key = SettingKey(key)
    try:
        stored = database.get_document(SETTINGS, key.value)
    except (PyMongoError, database.DatabaseUnavailable) as e:
        logger.warning("Could not read setting %s, using default: %s", key.value, e)
        stored = None
    return resolve(key, stored)


def validate_setting(key: SettingKey, payload: dict) -> BaseModel:
    """Raises ValidationError when the payload does not fit the key's model."""
    return SETTING_MODELS[SettingKey(key)].model_validate(payload)


def save_setting(key: SettingKey, payload: dict) -> BaseModel:
    key = SettingKey(key)
    setting = validate_setting(key, payload)
    database.update_document(SETTINGS, key.value, setting.model_dump(), upsert=True)
    return setting


class SettingsView:
    """Keeps the resolved value of one setting current through a subscription."""

    def __init__(self, key: SettingKey):
        self.key = SettingKey(key)
        self.value: BaseModel = default_setting(self.key)
        self.loading = True
        self._unsubscribe: Optional[Callable[[], None]] = None

    def attach(self, subscribe=None) -> "SettingsView":
        subscribe = subscribe or database.subscribe_document
        self._unsubscribe = subscribe(SETTINGS, self.key.value, self.on_snapshot)
        return self

    def close(self):
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def on_snapshot(self, doc: Optional[dict]):
        self.value = resolve(self.key, doc)
        self.loading = False
