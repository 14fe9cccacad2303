from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any

import streamlit as st
from dotenv import load_dotenv

from logic import DEFAULT_PAGE_SIZE

load_dotenv()

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class DueSettings:
    database_url: str | None
    page_size: int = DEFAULT_PAGE_SIZE
    currency_symbol: str = "₹"
    log_level: str = "INFO"


def _from_secrets(name: str) -> Any:
    # st.secrets raises when no secrets.toml exists; treat that as "not configured".
    try:
        if name in st.secrets:
            return st.secrets[name]
        lowered = name.lower()
        if lowered in st.secrets:
            return st.secrets[lowered]
        if name == "DATABASE_URL" and "database" in st.secrets and "url" in st.secrets["database"]:
            return st.secrets["database"]["url"]
    except Exception:
        return None
    return None


def get_setting(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None or not value.strip():
        value = _from_secrets(name)
    if value is None:
        return default
    value = str(value).strip()
    return value or default


def _int_setting(name: str, default: int) -> int:
    raw = get_setting(name)
    try:
        value = int(raw) if raw is not None else default
    except ValueError:
        return default
    return value if value > 0 else default


def load_settings() -> DueSettings:
    return DueSettings(
        database_url=get_setting("DATABASE_URL"),
        page_size=_int_setting("DUE_PAGE_SIZE", DEFAULT_PAGE_SIZE),
        currency_symbol=get_setting("DUE_CURRENCY_SYMBOL", "₹") or "₹",
        log_level=(get_setting("LOG_LEVEL", "INFO") or "INFO").upper(),
    )


def configure_logging(level: str | None = None) -> None:
    resolved = (level or load_settings().log_level).upper()
    logging.basicConfig(level=getattr(logging, resolved, logging.INFO), format=LOG_FORMAT)
