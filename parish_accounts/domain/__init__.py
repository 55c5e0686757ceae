"""Domain layer - 外部依存なしのドメインモデルとインターフェース定義"""

from parish_accounts.domain.errors import (
    ClaimConflictError,
    CreationError,
    DirectoryWriteError,
    DuplicateEmailError,
    DuplicateParishError,
    IdentityIssuanceError,
    ParishAccountsError,
    TransientLookupError,
    ValidationError,
)
from parish_accounts.domain.models import (
    AccountRecord,
    AccountStatus,
    CanonicalParishName,
    Conflict,
    ConflictResult,
    CreatedBy,
    CreationResult,
    FieldFilter,
    MatchStrategy,
    NoConflict,
    ParishInfo,
    SimilarParish,
    StoredAccount,
    UniquenessClaims,
)
from parish_accounts.domain.ports import AccountDirectory, IdentityProvider

__all__ = [
    # Models
    "AccountRecord",
    "AccountStatus",
    "CanonicalParishName",
    "Conflict",
    "ConflictResult",
    "CreatedBy",
    "CreationResult",
    "FieldFilter",
    "MatchStrategy",
    "NoConflict",
    "ParishInfo",
    "SimilarParish",
    "StoredAccount",
    "UniquenessClaims",
    # Errors
    "ParishAccountsError",
    "ValidationError",
    "TransientLookupError",
    "DirectoryWriteError",
    "ClaimConflictError",
    "CreationError",
    "DuplicateParishError",
    "DuplicateEmailError",
    "IdentityIssuanceError",
    # Ports
    "AccountDirectory",
    "IdentityProvider",
]
