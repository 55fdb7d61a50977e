# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Post-processing prompt presets.

Built-in modes ("format", "summary") come in localized variants; the
locale is chosen from language_override, then the transcription language,
then "global". To add a locale, add entries to PRESET_REGISTRY.

Templates understand two placeholders:
    {{transcript}}  the (dictionary-substituted) transcript
    {{dictionary}}  the user dictionary rendered as a hint block
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ..config import PostProcessConfig
from .base import Prompt

PLACEHOLDER_TRANSCRIPT = "{{transcript}}"
PLACEHOLDER_DICTIONARY = "{{dictionary}}"

MODE_FORMAT = "format"
MODE_SUMMARY = "summary"
MODE_CUSTOM = "custom"

LOCALE_GLOBAL = "global"
LOCALE_EN_US = "en-US"
LOCALE_JA_JP = "ja-JP"


@dataclass
class Preset:
    """A built-in prompt for one mode and locale."""
    mode: str
    locale: str
    system_prompt: str
    user_prompt_template: str


# ============================================================================
# PRESET PROMPTS
# ============================================================================

FORMAT_SYSTEM_EN = (
    "You receive an automatic transcript. Fix recognition mistakes, add punctuation, "
    "keep a neutral narrator style, and remove filler words such as \"um\" or \"uh\". "
    "Return only the corrected text."
)

FORMAT_SYSTEM_JA = (
    "ユーザーは文字起こしされたテキストを送ってくるので内容を確認して、"
    "文字起こしで欠損したり誤変換した単語などを全体の文脈を考慮して修正してください。"
    "段落ごとに改行や空行を積極的に使って、読みやすい構造にしてください。"
    "結果は修正後のテキストのみを返却します。修正が必要ない場合は元の文章のみを返します。"
    "「えーと」「あー」などの人が話す際に発した不要な情報は除去します。"
)

FORMAT_SYSTEM_GLOBAL = (
    "You receive an automatic transcript. Clean it up, fix recognition mistakes, "
    "add punctuation, and remove filler words. Return only the corrected text in "
    "the same language as the input."
)

SUMMARY_SYSTEM_EN = (
    "Summarize the transcript into at most five concise bullet points written in "
    "English. Start each bullet with \"- \" and avoid any commentary."
)

SUMMARY_SYSTEM_JA = (
    "以下の文字起こしを最大5つの簡潔な箇条書きで日本語のまま要約してください。"
    "各行は \"- \" で開始し、余計な前置きや感想は入れないでください。"
)

SUMMARY_SYSTEM_GLOBAL = (
    "Summarize the transcript into at most five concise bullet points. Prefer the "
    "transcript language when obvious, otherwise use English. Start each bullet with \"- \"."
)


# ============================================================================
# PRESET REGISTRY - (mode, locale) -> Preset
# ============================================================================
PRESET_REGISTRY: Dict[Tuple[str, str], Preset] = {
    (p.mode, p.locale.lower()): p
    for p in (
        Preset(MODE_FORMAT, LOCALE_EN_US, FORMAT_SYSTEM_EN, "Transcript to revise:\n{{transcript}}"),
        Preset(MODE_FORMAT, LOCALE_JA_JP, FORMAT_SYSTEM_JA, "校正対象:\n{{transcript}}"),
        Preset(MODE_FORMAT, LOCALE_GLOBAL, FORMAT_SYSTEM_GLOBAL, "Transcript:\n{{transcript}}"),
        Preset(MODE_SUMMARY, LOCALE_EN_US, SUMMARY_SYSTEM_EN, "{{transcript}}"),
        Preset(MODE_SUMMARY, LOCALE_JA_JP, SUMMARY_SYSTEM_JA, "{{transcript}}"),
        Preset(MODE_SUMMARY, LOCALE_GLOBAL, SUMMARY_SYSTEM_GLOBAL, "{{transcript}}"),
    )
}


def normalize_locale(raw: Optional[str]) -> Optional[str]:
    """Map a language code ("en", "ja_jp", "pt-BR") to a locale, or None for auto."""
    if not raw:
        return None
    trimmed = raw.strip()
    if not trimmed or trimmed.lower() == "auto":
        return None
    parts = [p for p in trimmed.replace("_", "-").split("-") if p]
    if not parts:
        return None
    language = parts[0].lower()
    if len(parts) >= 2:
        return f"{language}-{parts[1].upper()}"
    if language == "ja":
        return LOCALE_JA_JP
    if language == "en":
        return LOCALE_EN_US
    return language


def locale_priority(language_override: str, language_hint: Optional[str]) -> List[str]:
    """Locales to try, most specific first, always ending with global."""
    locales = []
    locale = normalize_locale(language_override) or normalize_locale(language_hint)
    if locale:
        locales.append(locale)
    if LOCALE_GLOBAL not in (loc.lower() for loc in locales):
        locales.append(LOCALE_GLOBAL)
    return locales


def get_preset(mode: str, locales: List[str]) -> Optional[Preset]:
    for locale in locales:
        preset = PRESET_REGISTRY.get((mode, locale.lower()))
        if preset:
            return preset
    return None


def render(template: str, transcript: str, dictionary: str) -> Tuple[str, bool]:
    """Fill placeholders; returns (text, whether {{transcript}} was present)."""
    has_transcript = PLACEHOLDER_TRANSCRIPT in template
    rendered = template.replace(PLACEHOLDER_DICTIONARY, dictionary)
    rendered = rendered.replace(PLACEHOLDER_TRANSCRIPT, transcript)
    return rendered, has_transcript


def _custom_prompt(config: PostProcessConfig, transcript: str, dictionary: str) -> Prompt:
    system = None
    if config.custom_system_prompt.strip():
        system, _ = render(config.custom_system_prompt, transcript, dictionary)

    user, had_transcript = render(config.custom_prompt, transcript, dictionary)
    if not had_transcript:
        user = f"{user}\n\nTranscript:\n{transcript}" if user.strip() else f"Transcript:\n{transcript}"
    return Prompt(user=user, system=system)


def resolve_prompt(
    config: PostProcessConfig,
    transcript: str,
    dictionary: str = "",
    language_hint: Optional[str] = None,
) -> Prompt:
    """Build the prompt for the configured mode."""
    if config.mode == MODE_CUSTOM:
        return _custom_prompt(config, transcript, dictionary)

    locales = locale_priority(config.language_override, language_hint)
    preset = get_preset(config.mode, locales) or get_preset(MODE_FORMAT, locales)
    system, _ = render(preset.system_prompt, transcript, dictionary)
    if dictionary and PLACEHOLDER_DICTIONARY not in preset.system_prompt:
        system = f"{system}\n\n{dictionary}"
    user, _ = render(preset.user_prompt_template, transcript, dictionary)
    return Prompt(user=user, system=system)
