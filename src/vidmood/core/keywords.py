"""
Keyword Utilities

Keyword extraction for results and the keyword-count scoring shared by the
rule-based classifier and the LLM text-scan fallback.
"""

import re
import unicodedata

from .models import MAX_KEYWORDS, BackendTag, EmotionLabel, EmotionResult


# Six canonical keywords per label
EMOTION_KEYWORDS: dict[EmotionLabel, tuple[str, ...]] = {
    EmotionLabel.JOY: ("开心", "快乐", "高兴", "兴奋", "愉快", "欢乐"),
    EmotionLabel.SADNESS: ("难过", "伤心", "痛苦", "沮丧", "失望", "悲伤"),
    EmotionLabel.ANGER: ("生气", "愤怒", "恼火", "气愤", "暴怒", "怒火"),
    EmotionLabel.FEAR: ("害怕", "恐惧", "担心", "焦虑", "紧张", "恐慌"),
    EmotionLabel.SURPRISE: ("惊讶", "震惊", "意外", "吃惊", "惊奇", "诧异"),
    EmotionLabel.DISGUST: ("恶心", "厌恶", "讨厌", "反感", "嫌弃", "憎恶"),
    EmotionLabel.NEUTRAL: ("平静", "一般", "普通", "正常", "平淡", "还行"),
}

# Confidence floor for keyword-derived results
MIN_SCAN_CONFIDENCE = 0.3

_DELIMITERS = re.compile(r"[\s，。！？、；：,.!?;:]+")
_MAX_KEYWORD_LENGTH = 10


def _is_punctuation(token: str) -> bool:
    return all(
        ch.isspace() or unicodedata.category(ch).startswith(("P", "S"))
        for ch in token
    )


def extract_keywords(text: str, limit: int = MAX_KEYWORDS) -> list[str]:
    """Split text on punctuation/whitespace and keep the first short tokens."""
    keywords = []
    for token in _DELIMITERS.split(text or ""):
        if not 1 < len(token) <= _MAX_KEYWORD_LENGTH:
            continue
        if _is_punctuation(token):
            continue
        keywords.append(token)
        if len(keywords) >= limit:
            break
    return keywords


def score_emotions(*texts: str) -> tuple[EmotionLabel, float]:
    """
    Pick the label whose keyword set matches best across the given texts.

    A keyword counts once if it appears in any of the texts. The ratio is
    matches / keyword-set size; the first label in order wins ties and
    Neutral is returned when nothing matches.
    """
    haystacks = [t for t in texts if t]
    best_label = EmotionLabel.NEUTRAL
    best_ratio = 0.0

    for label, words in EMOTION_KEYWORDS.items():
        matches = sum(1 for word in words if any(word in h for h in haystacks))
        ratio = matches / len(words)
        if ratio > best_ratio:
            best_label = label
            best_ratio = ratio

    return best_label, best_ratio


def text_scan(
    original_text: str,
    source_backend: BackendTag,
    model_response: str = "",
) -> EmotionResult:
    """Classify by keyword counts over the model response and original text."""
    label, ratio = score_emotions(model_response, original_text)
    score = max(ratio, MIN_SCAN_CONFIDENCE)
    return EmotionResult(
        emotion=label,
        confidence=score,
        intensity=score,
        keywords=extract_keywords(original_text),
        source_backend=source_backend,
    )
