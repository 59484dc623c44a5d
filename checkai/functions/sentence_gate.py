"""Sentence Gate — Function (no LLM).

Decides whether a sentence is worth sending to claim extraction. Each
heuristic signal adds to (or subtracts from) a running score and is
recorded by name:

    length >= 20 chars            +1   length
    URL-like token                -4   url
    number / percentage           +2   numeric
    currency amount               +1   money
    ranking / ordinal marker      +1   order
    trend or comparison verb      +1   change
    event-announcement verb       +1   event
    location marker               +1   location
    year / month / weekday token  +1   time
    question or opinion marker    -2   opinion
    < 4 letters or CJK chars      -3   non_sentence
    length < 8 chars              -1

score >= 3 is ALLOW, score <= 0 is REJECT, anything between is REVIEW.
A sentence carrying a URL is never ALLOWed, whatever its score.

Type: Function (pure, synchronous, no I/O)
"""

from __future__ import annotations

import re

from checkai.models import GateResult

ALLOW_THRESHOLD = 3
REJECT_THRESHOLD = 0
EMPTY_SCORE = -5

_NUMERIC = re.compile(r"(?:\d+[,.]?\d*%?)|(?:百分之\d+)", re.IGNORECASE)
_MONEY = re.compile(
    r"(?:\d+(?:\.\d+)?)\s?(?:亿美元|亿元|万亿元|万美元|元|美元|人民币|USD|RMB|EUR|dollars?|euros?|¥)"
    r"|[$€£¥]\s?\d",
    re.IGNORECASE,
)
_ORDER = re.compile(
    r"(排名|第[一二三四五六七八九十百千\d]|top\s?\d|\branked\b|\b\d+(?:st|nd|rd|th)\b)",
    re.IGNORECASE,
)
_CHANGE = re.compile(
    r"(增长|下降|同比|环比|增加|减少|提升|下滑|涨幅|跌幅"
    r"|\b(?:grew|grow(?:s|th)?|rose|rise[sn]?|increased?|decreased?|declined?|fell|dropped"
    r"|doubled|tripled|surged|plunged|year-on-year|compared)\b)",
    re.IGNORECASE,
)
_EVENT = re.compile(
    r"(宣布|发布|签署|举行|发生|达成|成立|获批|启动|完成"
    r"|\b(?:announce[sd]?|sign(?:s|ed)?|h[eo]ld(?:s)?|establish(?:es|ed)?|launch(?:es|ed)?"
    r"|approved?|founded|completed?|released?)\b)",
    re.IGNORECASE,
)
_LOCATION = re.compile(r"(位于|坐落|来自|总部|设在|\blocated\b|\bheadquartered\b|\bbased in\b)", re.IGNORECASE)
_TIME = re.compile(
    r"((?:19|20)\d{2})|年|月|日|季度|周|星期"
    r"|\b(?:Monday|Tuesday|Wednesday|Thursday|Friday|Saturday|Sunday"
    r"|January|February|March|April|June|July|August|September|October|November|December)\b",
    re.IGNORECASE,
)
_QUESTION = re.compile(r"[?？]|^(是否|为什么)")
_OPINION = re.compile(
    r"(我认为|看来|觉得|希望|呼吁|应该|必须|建议"
    r"|\b(?:I think|I believe|in my opinion|should|must|we recommend)\b)",
    re.IGNORECASE,
)
_URL = re.compile(r"(https?://|www\.)", re.IGNORECASE)
_ALPHA_OR_CJK = re.compile(r"[A-Za-z一-龥]")


def count_alpha_or_cjk(text: str) -> int:
    """Number of Latin letters and CJK ideographs in text."""
    return len(_ALPHA_OR_CJK.findall(text))


def evaluate(text: str) -> GateResult:
    """Classify a sentence as ALLOW, REVIEW or REJECT.

    Args:
        text: One sentence from the source document.

    Returns:
        GateResult with decision, additive score, and the signals that fired.
    """
    clean = (text or "").strip()
    if not clean:
        return GateResult(decision="REJECT", score=EMPTY_SCORE, signals=["empty"])

    score = 0
    signals: list[str] = []

    if len(clean) >= 20:
        score += 1
        signals.append("length")
    has_url = bool(_URL.search(clean))
    if has_url:
        score -= 4
        signals.append("url")
    if _NUMERIC.search(clean):
        score += 2
        signals.append("numeric")
    if _MONEY.search(clean):
        score += 1
        signals.append("money")
    if _ORDER.search(clean):
        score += 1
        signals.append("order")
    if _CHANGE.search(clean):
        score += 1
        signals.append("change")
    if _EVENT.search(clean):
        score += 1
        signals.append("event")
    if _LOCATION.search(clean):
        score += 1
        signals.append("location")
    if _TIME.search(clean):
        score += 1
        signals.append("time")
    if _QUESTION.search(clean) or _OPINION.search(clean):
        score -= 2
        signals.append("opinion")
    if count_alpha_or_cjk(clean) < 4:
        score -= 3
        signals.append("non_sentence")
    if len(clean) < 8:
        score -= 1

    if score >= ALLOW_THRESHOLD and not has_url:
        decision = "ALLOW"
    elif score <= REJECT_THRESHOLD:
        decision = "REJECT"
    else:
        decision = "REVIEW"

    return GateResult(decision=decision, score=score, signals=signals)
