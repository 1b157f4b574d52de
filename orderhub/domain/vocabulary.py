# orderhub/domain/vocabulary.py
"""
Delivery-status vocabularies.

Courier tracking texts are free-form and multilingual. Each courier variant
gets a vocabulary of keywords meaning "returned" and "delivered"; workspaces
can extend or replace them through settings["delivery_vocabulary"].

Matching rule:
  - both sides are case-folded, stripped of diacritics, and "_" / "-" / runs
    of whitespace collapse to one space
  - a keyword matches when it occurs at the start of a word in the status
    text ("return" matches "RETURNED TO SENDER", "delivered" does not match
    "UNDELIVERED")
  - phrases listed in `negative` win over `delivered` ("NOT DELIVERED")
"""
from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

_SEP_RE = re.compile(r"[\s_\-]+")


def normalize_text(value: Optional[str]) -> str:
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFKD", str(value))
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _SEP_RE.sub(" ", stripped.casefold()).strip()


@lru_cache(maxsize=512)
def _keyword_re(keyword: str) -> "re.Pattern[str]":
    return re.compile(r"(?<!\w)" + re.escape(keyword))


def _matches_any(text: str, keywords: Iterable[str]) -> bool:
    return any(kw and _keyword_re(kw).search(text) for kw in keywords)


def _norm_all(words: Iterable[str]) -> Tuple[str, ...]:
    return tuple(w for w in (normalize_text(x) for x in words) if w)


@dataclass(frozen=True)
class DeliveryVocabulary:
    returned: Tuple[str, ...] = ()
    delivered: Tuple[str, ...] = ()
    negative: Tuple[str, ...] = ()
    _norm: Dict[str, Tuple[str, ...]] = field(default_factory=dict, compare=False, repr=False)

    def __post_init__(self) -> None:
        self._norm.update(
            returned=_norm_all(self.returned),
            delivered=_norm_all(self.delivered),
            negative=_norm_all(self.negative),
        )

    def is_returned(self, status_text: Optional[str]) -> bool:
        text = normalize_text(status_text)
        return bool(text) and _matches_any(text, self._norm["returned"])

    def is_delivered(self, status_text: Optional[str]) -> bool:
        text = normalize_text(status_text)
        if not text or _matches_any(text, self._norm["negative"]):
            return False
        return _matches_any(text, self._norm["delivered"])

    def merged(self, other: "DeliveryVocabulary") -> "DeliveryVocabulary":
        return DeliveryVocabulary(
            returned=tuple(dict.fromkeys(self.returned + other.returned)),
            delivered=tuple(dict.fromkeys(self.delivered + other.delivered)),
            negative=tuple(dict.fromkeys(self.negative + other.negative)),
        )


_NEGATIVE_COMMON = ("not delivered", "undeliverable", "failed delivery", "delivery failed", "δεν παραδοθηκε")

GENIKI_VOCABULARY = DeliveryVocabulary(
    returned=("return", "επιστροφ", "returned to sender"),
    delivered=("delivered", "παραδοθηκε", "παραδοθηκαν"),
    negative=_NEGATIVE_COMMON,
)

MEEST_VOCABULARY = DeliveryVocabulary(
    returned=("return", "refused"),
    delivered=("delivered",),
    negative=_NEGATIVE_COMMON,
)

DEFAULT_VOCABULARY = GENIKI_VOCABULARY.merged(MEEST_VOCABULARY)

_BY_COURIER: Dict[str, DeliveryVocabulary] = {
    "geniki": GENIKI_VOCABULARY,
    "meest": MEEST_VOCABULARY,
    "fake": DEFAULT_VOCABULARY,
}


def vocabulary_for(
    courier: Optional[str],
    overrides: Optional[Mapping[str, Any]] = None,
) -> DeliveryVocabulary:
    """
    Vocabulary for a courier tag, optionally adjusted by workspace settings:

        {"returned": [...], "delivered": [...], "negative": [...], "replace": false}

    With replace=false (default) the lists extend the courier defaults.
    """
    base = _BY_COURIER.get((courier or "").lower(), DEFAULT_VOCABULARY)
    if not overrides:
        return base

    extra = DeliveryVocabulary(
        returned=tuple(overrides.get("returned") or ()),
        delivered=tuple(overrides.get("delivered") or ()),
        negative=tuple(overrides.get("negative") or ()),
    )
    if overrides.get("replace"):
        return extra
    return base.merged(extra)
