import importlib
import os

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from storefront.config import settings
from storefront.utils.log import get_logger

log = get_logger(__name__)

DATABASE_URL = settings.DATABASE_URL
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, future=True, echo=False, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

# every module that declares tables; imported before create_all so metadata is complete
MODEL_MODULES = [
    "storefront.models.product",
    "storefront.models.cart",
    "storefront.models.cart_item",
    "storefront.models.customer",
    "storefront.models.order",
]


def load_models():
    for mod in MODEL_MODULES:
        importlib.import_module(mod)


def init_db(reset: bool = None):
    """
    Initialize DB schema.

    Behavior:
      - If `reset` is true (or RESET_DB env var is 1/true/yes when `reset` is None),
        drop & recreate tables.
      - Otherwise create missing tables and leave existing ones in place.
    """
    if reset is None:
        reset = os.environ.get("RESET_DB", "false").lower() in ("1", "true", "yes")

    load_models()

    if reset:
        log.info("Resetting database schema")
        Base.metadata.drop_all(bind=engine)

    Base.metadata.create_all(bind=engine)
    log.info("Database initialized (%d tables)", len(Base.metadata.tables))


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
