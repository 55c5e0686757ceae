"""テスト用の users/{uid} ドキュメント生成ヘルパー

3世代のレコード形状を組み立てる。
"""

import datetime

FIXED_NOW = datetime.datetime(2026, 10, 1, 9, 0, tzinfo=datetime.timezone.utc)


def current_doc(
    uid: str,
    email: str,
    parish_id: str,
    name: str,
    municipality: str,
    diocese: str = "tagbilaran",
    status: str = "active",
) -> dict:
    """現行スキーマのドキュメント"""
    return {
        "uid": uid,
        "email": email,
        "role": "parish_secretary",
        "diocese": diocese,
        "parishId": parish_id,
        "parishInfo": {
            "name": name,
            "municipality": municipality,
            "fullName": f"{name}, {municipality}",
        },
        "status": status,
    }


def legacy_structured_doc(
    uid: str, email: str, name: str, municipality: str, diocese: str = "tagbilaran"
) -> dict:
    """parishInfo はあるが parishId がない旧スキーマのドキュメント"""
    return {
        "uid": uid,
        "email": email,
        "role": "parish_secretary",
        "diocese": diocese,
        "parishInfo": {"name": name, "municipality": municipality},
        "status": "active",
    }


def legacy_free_text_doc(
    uid: str,
    email: str,
    parish: str,
    municipality: str,
    diocese: str = "tagbilaran",
    role: str = "parish",
) -> dict:
    """自由記述の parish フィールドのみを持つ最古のスキーマのドキュメント"""
    return {
        "uid": uid,
        "email": email,
        "role": role,
        "diocese": diocese,
        "parish": parish,
        "municipality": municipality,
        "status": "active",
    }


def chancery_doc(uid: str, diocese: str = "tagbilaran") -> dict:
    """チャンセリーユーザーのドキュメント"""
    return {
        "uid": uid,
        "email": f"{uid}@chancery.ph",
        "name": "Chancery Office",
        "role": "chancery_office",
        "diocese": diocese,
        "status": "active",
    }
