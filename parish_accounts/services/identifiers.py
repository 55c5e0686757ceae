"""IdentifierGenerator - 教区IDの生成

同名の教区が別の市町村に存在するため（例: "San Isidro Labrador Parish" は
Alburquerque と Buenavista の両方にある）、教区名だけでは識別できない。
diocese + municipality + 正規化済み教区名 から決定的なIDを生成する。

形式: {diocese}__{municipality}__{parish_name}
例:   "tagbilaran__loay__saint_joseph_the_worker_parish"

各要素は英数字（Unicode含む）と単一の "_" のみで構成され、先頭・末尾に "_" を
持たないため、区切り文字 "__" が要素内に現れることはない。
"""

from __future__ import annotations

import re

from parish_accounts.domain.errors import ValidationError
from parish_accounts.domain.models import CanonicalParishName
from parish_accounts.services.canonicalizer import canonicalize, fold

SEPARATOR = "__"

_NON_WORD = re.compile(r"[\W_]+")


def slug(text: str) -> str:
    """ID要素用に正規化（casefold・発音記号除去・記号と空白を "_" に）"""
    return _NON_WORD.sub("_", fold(" ".join(text.split()))).strip("_")


def identifier_for(
    diocese_id: str,
    municipality: str,
    canonical_name: CanonicalParishName | str,
) -> str:
    """
    教区IDを生成する（純関数）。

    Args:
        diocese_id: 教区（司教区）コード 例: "tagbilaran"
        municipality: 市町村名（大文字小文字は区別しない）
        canonical_name: 正規化済み教区名。文字列の場合はここで正規化する

    Raises:
        ValidationError: いずれかの要素が空の場合
    """
    if not isinstance(canonical_name, CanonicalParishName):
        canonical_name = canonicalize(canonical_name)

    diocese_part = slug(diocese_id or "")
    if not diocese_part:
        raise ValidationError("EMPTY_DIOCESE", "Diocese must not be empty")
    municipality_part = slug(municipality or "")
    if not municipality_part:
        raise ValidationError("EMPTY_MUNICIPALITY", "Municipality must not be empty")
    name_part = slug(canonical_name.key)
    if not name_part:
        raise ValidationError("EMPTY_NAME", "Parish name must not be empty")

    return SEPARATOR.join((diocese_part, municipality_part, name_part))


def parse_parish_identifier(parish_id: str) -> tuple[str, str, str] | None:
    """
    教区IDを (diocese, municipality, parish_name) に分解する。

    形式に合わない場合は None を返す。
    """
    parts = (parish_id or "").split(SEPARATOR)
    if len(parts) != 3 or not all(parts):
        return None
    return parts[0], parts[1], parts[2]


def format_parish_full_name(parish_name: str, municipality: str) -> str:
    """表示用の教区名 例: "Santo Niño Parish, Tagbilaran City" """
    return f"{parish_name.strip()}, {' '.join(municipality.split())}"
