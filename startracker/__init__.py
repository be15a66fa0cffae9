"""
Star tracker ledger engine

This package provides:
- Award (credit) and redemption (debit) ledgers with balances derived on read
- Reason and reward catalogs with stable keys and retroactive value updates
- Per-entity translations resolved requested language -> English -> fallback
- Whole-store export and import
"""

from .catalog import CatalogService
from .container import Services, build_services
from .keys import make_key, uniquify
from .models import ImportMode, Reason, Redemption, Reward, Star, User, UserBalance
from .service import LedgerService
from .store import Store
from .transfer import TransferService
from .translations import EntityKind, TranslationStore
from .users import UserService

__all__ = [
    "CatalogService",
    "EntityKind",
    "ImportMode",
    "LedgerService",
    "Reason",
    "Redemption",
    "Reward",
    "Services",
    "Star",
    "Store",
    "TransferService",
    "TranslationStore",
    "User",
    "UserBalance",
    "UserService",
    "build_services",
    "make_key",
    "uniquify",
]
