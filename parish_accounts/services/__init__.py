"""Services layer - ビジネスロジック"""

from parish_accounts.services.account_creation import AccountCreationCoordinator
from parish_accounts.services.canonicalizer import canonicalize
from parish_accounts.services.duplicate_resolver import DuplicateResolver
from parish_accounts.services.email_checker import EmailUniquenessChecker
from parish_accounts.services.identifiers import identifier_for
from parish_accounts.services.lookup import LookupFailurePolicy
from parish_accounts.services.municipalities import MunicipalityCatalog

__all__ = [
    "AccountCreationCoordinator",
    "DuplicateResolver",
    "EmailUniquenessChecker",
    "LookupFailurePolicy",
    "MunicipalityCatalog",
    "canonicalize",
    "identifier_for",
]
