"""Wiring of the services around one Store."""

import logging
from dataclasses import dataclass
from typing import Optional

from .catalog import CatalogService
from .config import Settings, get_settings
from .service import LedgerService
from .store import Store
from .transfer import TransferService
from .translations import TranslationStore
from .users import UserService

logger = logging.getLogger(__name__)


@dataclass
class Services:
    store: Store
    translations: TranslationStore
    users: UserService
    catalog: CatalogService
    ledger: LedgerService
    transfer: TransferService


def build_services(settings: Optional[Settings] = None, store: Optional[Store] = None) -> Services:
    settings = settings or get_settings()
    if store is None:
        store = Store(settings.database_url)
    store.create_schema()

    translations = TranslationStore(store)
    users = UserService(store, translations)
    catalog = CatalogService(store, translations)
    services = Services(
        store=store,
        translations=translations,
        users=users,
        catalog=catalog,
        ledger=LedgerService(store, catalog, translations),
        transfer=TransferService(store, translations),
    )

    if settings.seed_defaults:
        users.seed_users(settings.default_password)
        catalog.seed_rewards()
    logger.info("Star tracker store ready at %s", store.url)
    return services
