"""市町村カタログ

司教区ごとの市町村一覧をバージョン付きのJSONファイルから読み込む。
既定のファイルは parish_accounts/data/municipalities.json
（出典: CBCP / Wikipedia の Tagbilaran・Talibon 司教区）。
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from parish_accounts.services.canonicalizer import fold

logger = logging.getLogger(__name__)

DEFAULT_PATH = Path(__file__).resolve().parent.parent / "data" / "municipalities.json"


def _key(text: str) -> str:
    return fold(" ".join(text.split()))


@dataclass(frozen=True)
class MunicipalityCatalog:
    """司教区 → 市町村一覧"""

    version: str
    by_diocese: dict[str, tuple[str, ...]]

    @classmethod
    def load(cls, path: str | Path | None = None) -> MunicipalityCatalog:
        """
        JSONファイルからカタログを読み込む。

        Raises:
            ValueError: ファイルの形式が不正な場合
        """
        path = Path(path) if path else DEFAULT_PATH
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)

        dioceses = raw.get("dioceses")
        if not isinstance(dioceses, dict):
            raise ValueError(f"Invalid municipality catalog (missing 'dioceses'): {path}")

        by_diocese = {
            diocese.strip().lower(): tuple(str(m) for m in municipalities)
            for diocese, municipalities in dioceses.items()
        }
        catalog = cls(version=str(raw.get("version", "")), by_diocese=by_diocese)
        logger.info(
            "Loaded municipality catalog: version=%s, dioceses=%d",
            catalog.version,
            len(by_diocese),
        )
        return catalog

    def dioceses(self) -> list[str]:
        return sorted(self.by_diocese)

    def municipalities(self, diocese_id: str) -> list[str]:
        """司教区の市町村一覧（未知の司教区は空リスト）"""
        return list(self.by_diocese.get((diocese_id or "").strip().lower(), ()))

    def contains(self, diocese_id: str, municipality: str) -> bool:
        """市町村が司教区に属するか（大文字小文字・空白の違いは無視）"""
        target = _key(municipality or "")
        return any(_key(m) == target for m in self.municipalities(diocese_id))

    def canonical_spelling(self, diocese_id: str, municipality: str) -> str | None:
        """カタログ上の表記を返す 例: "loay" → "Loay" """
        target = _key(municipality or "")
        for m in self.municipalities(diocese_id):
            if _key(m) == target:
                return m
        return None
