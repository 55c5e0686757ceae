"""Canonicalizer - 教区名の正規化

手入力の教区名を正規形に変換する。

- 前後の空白除去・連続空白の圧縮
- 敬称トークンの同値類を統一（トークン単位のみ。部分文字列は置換しない）
    {"St.", "St", "Saint"}   → "Saint"
    {"Sto.", "Sto", "Santo"} → "Santo"
    {"Sta.", "Sta", "Santa"} → "Santa"
- 比較キーは casefold + 発音記号除去（"Niño" と "Nino" は同じ教区）

canonicalize(canonicalize(x)) == canonicalize(x) が常に成り立つ。
"""

from __future__ import annotations

import re
import unicodedata

from parish_accounts.domain.errors import ValidationError
from parish_accounts.domain.models import CanonicalParishName

_HONORIFICS: dict[str, str] = {
    "st.": "Saint",
    "st": "Saint",
    "saint": "Saint",
    "sto.": "Santo",
    "sto": "Santo",
    "santo": "Santo",
    "sta.": "Santa",
    "sta": "Santa",
    "santa": "Santa",
}

# "St.Joseph" のようにピリオドの後に空白がない表記を2トークンに分ける
_ATTACHED_ABBREVIATION = re.compile(r"^(st|sto|sta)\.(\S+)$", re.IGNORECASE)


def fold(text: str) -> str:
    """比較用に casefold し、発音記号を取り除く"""
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return stripped.casefold()


def _tokens(raw: str) -> list[str]:
    tokens: list[str] = []
    for token in raw.split():
        match = _ATTACHED_ABBREVIATION.match(token)
        if match:
            tokens.extend((match.group(1) + ".", match.group(2)))
        else:
            tokens.append(token)
    return tokens


def canonicalize(raw: str | CanonicalParishName) -> CanonicalParishName:
    """
    教区名を正規化する。

    Args:
        raw: 入力された教区名（または正規化済みの教区名）

    Returns:
        CanonicalParishName（display は元の大文字小文字を保持）

    Raises:
        ValidationError(EMPTY_NAME): 空文字列または空白のみの場合
    """
    if isinstance(raw, CanonicalParishName):
        raw = raw.display
    if raw is None or not raw.strip():
        raise ValidationError("EMPTY_NAME", "Parish name must not be empty")

    # 敬称の置換はトークン単位で行い、その後に空白区切りで連結する
    tokens = [_HONORIFICS.get(token.casefold(), token) for token in _tokens(raw)]
    display = " ".join(tokens)
    return CanonicalParishName(display=display, key=fold(display))
