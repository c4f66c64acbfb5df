"""
消息本地化

gettext 目录位于项目根的 locales/<locale>/LC_MESSAGES/messages.mo；
没有对应目录时 t() 返回调用方给出的英文默认文案。
"""
from __future__ import annotations

import gettext
from contextvars import ContextVar
from pathlib import Path
from typing import Optional

from core.logging_config import get_logger


DEFAULT_LOCALE = "en"
LOCALE_DIR = Path(__file__).resolve().parent.parent / "locales"

# 浏览器语言标签 -> 目录名
_ALIASES = {
    "en-us": "en",
    "en-gb": "en",
    "en-ng": "en",
    "fr-fr": "fr",
    "zh": "zh_Hans",
    "zh-cn": "zh_Hans",
    "zh-hans": "zh_Hans",
}

_current_locale: ContextVar[str] = ContextVar("current_locale", default=DEFAULT_LOCALE)
_translators: dict[str, gettext.NullTranslations] = {}
logger = get_logger(__name__)


def normalize_locale(tag: Optional[str]) -> str:
    if not tag:
        return DEFAULT_LOCALE
    key = tag.strip().replace("_", "-").lower()
    return _ALIASES.get(key, key.split("-")[0] or DEFAULT_LOCALE)


def negotiate_locale(accept_language: Optional[str]) -> str:
    """按 q 值挑选 Accept-Language 中权重最高的语言"""
    best, best_q = DEFAULT_LOCALE, -1.0
    for part in (accept_language or "").split(","):
        tag, _, param = part.strip().partition(";")
        if not tag or tag == "*":
            continue
        q = 1.0
        if param.strip().startswith("q="):
            try:
                q = float(param.strip()[2:])
            except ValueError:
                continue
        if q > best_q:
            best, best_q = tag, q
    return normalize_locale(best)


def set_locale(locale: str) -> None:
    _current_locale.set(locale or DEFAULT_LOCALE)


def get_locale() -> str:
    return _current_locale.get()


def _translator(locale: str) -> gettext.NullTranslations:
    tr = _translators.get(locale)
    if tr is None:
        tr = gettext.translation("messages", localedir=str(LOCALE_DIR), languages=[locale], fallback=True)
        _translators[locale] = tr
    return tr


def t(msgid: str, default: Optional[str] = None, **params) -> str:
    """
    翻译 msgid 并格式化参数

    找不到翻译时使用 default（未给出则为 msgid 本身）
    """
    text = _translator(get_locale()).gettext(msgid)
    if text == msgid and default is not None:
        text = default
    if not params:
        return text
    try:
        return text.format(**params)
    except (KeyError, IndexError, ValueError) as exc:
        logger.warning("i18n_format_failed", msgid=msgid, params=list(params), error=str(exc))
        return text
