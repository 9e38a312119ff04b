"""
Organization settings.

Each settings page owns one JSON document ("settings.general", ...). Values are
always passed through normalize() on the way out (lenient: fill defaults, drop
junk) and on the way in (strict: also report field errors keyed by path, e.g.
"accounts.acct_1.nickname").
"""
from __future__ import annotations

import copy
import math
import re
import uuid
from dataclasses import dataclass
from typing import Any, Callable

from app.pms.errors import not_found
from app.pms.json_store import read_json, update_json, write_json
from app.pms.utils import now_iso

Errors = dict[str, str]

_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

DEFAULT_GENERAL: dict[str, Any] = {
    "orgName": "Orfane Tower",
    "displayName": "Orfane Tower",
    "email": "ops@orfane.com",
    "phone": "",
    "address": "",
    "defaultCurrency": "USD",
    "fiscalYearStartMonth": 1,
    "timezone": "UTC",
}

DEFAULT_BRANDING: dict[str, Any] = {
    "appName": "Orfane Tower",
    "tagline": "Property operations & finance",
    "logoPath": "/logos/orfane-logo-crop.png",
    "brandMode": "icon_text",
}

DEFAULT_BANK: dict[str, Any] = {
    "accounts": [
        {
            "id": "acct_default",
            "nickname": "Business Bank Account",
            "bankName": "",
            "holder": "Orfane Tower",
            "accountNumber": "",
            "iban": "",
            "swift": "",
            "currency": "USD",
            "isDefault": True,
        }
    ],
    "tenantInstructions": "Please use your Unit + Name as the payment reference.",
}

DEFAULT_PROPERTY_TYPES: dict[str, Any] = {
    "types": [
        {"id": "type_res", "name": "Residence", "code": "RES"},
        {"id": "type_off", "name": "Office", "code": "OFF"},
        {"id": "type_com", "name": "Commercial", "code": "COM"},
    ]
}

DEFAULT_PAYMENT_METHODS: dict[str, Any] = {
    "methods": [
        {"id": "pm_bank", "name": "Bank Transfer", "enabled": True, "requiresProof": False, "autoMatchEligible": True, "notes": ""},
        {"id": "pm_cash", "name": "Cash", "enabled": True, "requiresProof": True, "autoMatchEligible": False, "notes": ""},
        {"id": "pm_mobile", "name": "Mobile Money", "enabled": True, "requiresProof": True, "autoMatchEligible": False, "notes": ""},
    ]
}

DEFAULT_INITIAL_READINGS: dict[str, Any] = {
    "enabledMeters": ["electricity", "water"],
    "units": {"electricity": "kWh", "water": "m3"},
    "initialReadings": {"electricity": 0, "water": 0},
    "requireProof": True,
    "defaultReadingDay": 1,
    "rules": {"allowZero": True},
}


def _category(code: str, name: str) -> dict[str, Any]:
    return {
        "id": f"exp_{code}",
        "code": code,
        "name": name,
        "type": "expense",
        "taxRate": "No Tax",
        "description": "",
        "active": True,
        "showOnPurchases": True,
    }


DEFAULT_EXPENSE_CATEGORIES: dict[str, Any] = {
    "categories": [
        _category("5000", "Maintenance & Repairs"),
        _category("5050", "Cleaning & Housekeeping"),
        _category("5100", "Utilities"),
        _category("5200", "Insurance"),
        _category("5999", "Miscellaneous Expense"),
    ]
}


# ---------- Coercion helpers ----------
def _record(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _str(value: Any, fallback: str = "") -> str:
    return value if isinstance(value, str) else fallback


def _num(value: Any, fallback: float) -> float:
    if isinstance(value, bool) or value is None or value == "":
        return fallback
    try:
        n = float(value)
    except (TypeError, ValueError):
        return fallback
    return n if math.isfinite(n) else fallback


def _int_or_float(n: float) -> int | float:
    return int(n) if float(n).is_integer() else n


def _bool(value: Any, fallback: bool) -> bool:
    return value if isinstance(value, bool) else fallback


def _item_id(item: dict[str, Any]) -> str:
    return _str(item.get("id")) or str(uuid.uuid4())


def _items(src: dict[str, Any], field: str) -> list[dict[str, Any]]:
    raw = src.get(field)
    return [item for item in raw if isinstance(item, dict)] if isinstance(raw, list) else []


# ---------- Normalizers ----------
def normalize_general(data: Any, strict: bool) -> tuple[dict[str, Any], Errors]:
    src = _record(data)
    errors: Errors = {}
    value = {
        "orgName": _str(src.get("orgName"), DEFAULT_GENERAL["orgName"]).strip(),
        "displayName": _str(src.get("displayName")).strip(),
        "email": _str(src.get("email"), DEFAULT_GENERAL["email"]).strip(),
        "phone": _str(src.get("phone")).strip(),
        "address": _str(src.get("address")).strip(),
        "defaultCurrency": _str(src.get("defaultCurrency"), DEFAULT_GENERAL["defaultCurrency"]).strip() or "USD",
        "fiscalYearStartMonth": _int_or_float(min(12, max(1, _num(src.get("fiscalYearStartMonth"), 1)))),
        "timezone": _str(src.get("timezone"), DEFAULT_GENERAL["timezone"]).strip() or "UTC",
    }
    if strict:
        if not value["orgName"]:
            errors["orgName"] = "Organization name is required."
        if not value["email"] or not _EMAIL.match(value["email"]):
            errors["email"] = "Valid primary email is required."
    return value, errors


def normalize_branding(data: Any, strict: bool) -> tuple[dict[str, Any], Errors]:
    src = _record(data)
    errors: Errors = {}
    value = {
        "appName": _str(src.get("appName"), DEFAULT_BRANDING["appName"]).strip(),
        "tagline": _str(src.get("tagline"), DEFAULT_BRANDING["tagline"]).strip(),
        "logoPath": _str(src.get("logoPath"), DEFAULT_BRANDING["logoPath"]).strip(),
        "brandMode": "icon_only" if src.get("brandMode") == "icon_only" else "icon_text",
    }
    if strict and not value["appName"]:
        errors["appName"] = "App name is required."
    return value, errors


def normalize_bank(data: Any, strict: bool) -> tuple[dict[str, Any], Errors]:
    src = _record(data)
    errors: Errors = {}
    accounts = [
        {
            "id": _item_id(item),
            "nickname": _str(item.get("nickname")).strip(),
            "bankName": _str(item.get("bankName")).strip(),
            "holder": _str(item.get("holder")).strip(),
            "accountNumber": _str(item.get("accountNumber")).strip(),
            "iban": _str(item.get("iban")).strip(),
            "swift": _str(item.get("swift")).strip(),
            "currency": _str(item.get("currency"), "USD").strip() or "USD",
            "isDefault": _bool(item.get("isDefault"), False),
        }
        for item in _items(src, "accounts")
    ]
    # Exactly one default: the first flagged one, else the first account.
    default_index = next((i for i, acct in enumerate(accounts) if acct["isDefault"]), 0)
    for i, acct in enumerate(accounts):
        acct["isDefault"] = i == default_index
        if strict and not acct["nickname"]:
            errors[f"accounts.{acct['id']}.nickname"] = "Account nickname is required."
    value = {
        "accounts": accounts,
        "tenantInstructions": _str(src.get("tenantInstructions"), DEFAULT_BANK["tenantInstructions"]),
    }
    return value, errors


def normalize_property_types(data: Any, strict: bool) -> tuple[dict[str, Any], Errors]:
    errors: Errors = {}
    types = []
    for item in _items(_record(data), "types"):
        t = {
            "id": _item_id(item),
            "name": _str(item.get("name")).strip(),
            "code": _str(item.get("code")).strip(),
            "glCategory": _str(item.get("glCategory")).strip(),
        }
        if not t["name"]:
            if not strict:
                continue
            errors[f"types.{t['id']}.name"] = "Type name is required."
        types.append(t)
    return {"types": types}, errors


def normalize_payment_methods(data: Any, strict: bool) -> tuple[dict[str, Any], Errors]:
    errors: Errors = {}
    methods = []
    for item in _items(_record(data), "methods"):
        m = {
            "id": _item_id(item),
            "name": _str(item.get("name")).strip(),
            "enabled": _bool(item.get("enabled"), True),
            "requiresProof": _bool(item.get("requiresProof"), False),
            "autoMatchEligible": _bool(item.get("autoMatchEligible"), False),
            "notes": _str(item.get("notes")).strip(),
        }
        if not m["name"]:
            if not strict:
                continue
            errors[f"methods.{m['id']}.name"] = "Method name is required."
        methods.append(m)
    return {"methods": methods}, errors


def normalize_initial_readings(data: Any, strict: bool) -> tuple[dict[str, Any], Errors]:
    src = _record(data)
    errors: Errors = {}
    defaults = DEFAULT_INITIAL_READINGS
    enabled_raw = src.get("enabledMeters") if isinstance(src.get("enabledMeters"), list) else defaults["enabledMeters"]
    enabled = [m for m in enabled_raw if m in ("electricity", "water")]
    units = _record(src.get("units"))
    initial = _record(src.get("initialReadings"))
    rules_src = src.get("rules")

    rules: dict[str, Any] = {
        "allowZero": _bool(rules_src.get("allowZero") if isinstance(rules_src, dict) else None, defaults["rules"]["allowZero"]),
    }
    if isinstance(rules_src, dict):
        for bound in ("min", "max"):
            n = _num(rules_src.get(bound), math.nan)
            if not math.isnan(n):
                rules[bound] = _int_or_float(n)

    value = {
        "enabledMeters": enabled or list(defaults["enabledMeters"]),
        "units": {
            "electricity": _str(units.get("electricity"), defaults["units"]["electricity"]),
            "water": _str(units.get("water"), defaults["units"]["water"]),
        },
        "initialReadings": {
            "electricity": _int_or_float(_num(initial.get("electricity"), defaults["initialReadings"]["electricity"])),
            "water": _int_or_float(_num(initial.get("water"), defaults["initialReadings"]["water"])),
        },
        "requireProof": _bool(src.get("requireProof"), defaults["requireProof"]),
        "defaultReadingDay": _int_or_float(min(28, max(1, _num(src.get("defaultReadingDay"), defaults["defaultReadingDay"])))),
        "rules": rules,
    }
    if strict and not value["enabledMeters"]:
        errors["enabledMeters"] = "Select at least one meter type."
    return value, errors


def normalize_expense_categories(data: Any, strict: bool) -> tuple[dict[str, Any], Errors]:
    errors: Errors = {}
    categories = []
    for item in _items(_record(data), "categories"):
        raw_type = _str(item.get("type"), "expense")
        cat_id = _item_id(item)
        c = {
            "id": cat_id,
            "code": _str(item.get("code"), cat_id).strip(),
            "name": _str(item.get("name")).strip(),
            "type": raw_type if raw_type in ("cost_of_sales", "overhead") else "expense",
            "taxRate": _str(item.get("taxRate")).strip(),
            "description": _str(item.get("description")).strip(),
            "active": _bool(item.get("active"), True),
            "showOnPurchases": _bool(item.get("showOnPurchases"), True),
        }
        if strict:
            if not c["name"]:
                errors[f"categories.{cat_id}.name"] = "Category name is required."
            if not c["code"]:
                errors[f"categories.{cat_id}.code"] = "Account code is required."
        if c["name"]:
            categories.append(c)
    return {"categories": categories}, errors


@dataclass(frozen=True)
class SettingsMeta:
    dataset_key: str
    defaults: dict[str, Any]
    normalize: Callable[[Any, bool], tuple[dict[str, Any], Errors]]


SETTINGS: dict[str, SettingsMeta] = {
    "general": SettingsMeta("settings.general", DEFAULT_GENERAL, normalize_general),
    "branding": SettingsMeta("settings.branding", DEFAULT_BRANDING, normalize_branding),
    "bank": SettingsMeta("settings.bank", DEFAULT_BANK, normalize_bank),
    "property-types": SettingsMeta("settings.propertyTypes", DEFAULT_PROPERTY_TYPES, normalize_property_types),
    "payment-methods": SettingsMeta("settings.paymentMethods", DEFAULT_PAYMENT_METHODS, normalize_payment_methods),
    "initial-readings": SettingsMeta("settings.initialReadings", DEFAULT_INITIAL_READINGS, normalize_initial_readings),
    "expense-categories": SettingsMeta("settings.expenseCategories", DEFAULT_EXPENSE_CATEGORIES, normalize_expense_categories),
}


def settings_meta(key: str) -> SettingsMeta:
    meta = SETTINGS.get(key)
    if meta is None:
        raise not_found("Unknown settings key.")
    return meta


def normalize(key: str, data: Any, strict: bool = False) -> tuple[dict[str, Any], Errors]:
    return settings_meta(key).normalize(data, strict)


def load_settings(key: str) -> dict[str, Any]:
    meta = settings_meta(key)
    raw = read_json(meta.dataset_key, copy.deepcopy(meta.defaults))
    value, _ = meta.normalize(raw, False)
    return value


def save_settings(key: str, data: Any) -> tuple[dict[str, Any] | None, Errors]:
    """Strict normalize; stores and returns the value only when there are no errors."""
    meta = settings_meta(key)
    value, errors = meta.normalize(data, True)
    if errors:
        return None, errors
    write_json(meta.dataset_key, value)
    return value, {}


# ---------- Staff documents (house rules, SOP) ----------
STAFF_DOCS: dict[str, tuple[str, str]] = {
    "house-rules": ("house_rules", "House rules"),
    "sop": ("sop", "Standard operating procedures"),
}


def _empty_doc() -> dict[str, str]:
    return {"content": "", "updatedAt": ""}


def staff_doc_meta(slug: str) -> tuple[str, str]:
    meta = STAFF_DOCS.get(slug)
    if meta is None:
        raise not_found("Unknown document.")
    return meta


def load_staff_doc(slug: str) -> dict[str, str]:
    key, _ = staff_doc_meta(slug)
    doc = read_json(key, _empty_doc())
    return doc if isinstance(doc, dict) else _empty_doc()


def update_staff_doc(slug: str, content: str | None) -> dict[str, str]:
    """content None keeps the stored text and only bumps updatedAt."""
    key, _ = staff_doc_meta(slug)

    def _apply(current: Any) -> dict[str, str]:
        current = current if isinstance(current, dict) else _empty_doc()
        return {
            "content": content if content is not None else str(current.get("content") or ""),
            "updatedAt": now_iso(),
        }

    return update_json(key, _apply, _empty_doc())
