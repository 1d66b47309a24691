from sqlalchemy.orm import sessionmaker

from backend.app.db import seed
from backend.app.db.models.models_v1 import ChannelMapping, Product, Warehouse
from backend.services.linked_products import resolve_group


def test_seed_is_rerunnable(engine, db_session, monkeypatch):
    monkeypatch.setattr(seed, "SessionLocal", sessionmaker(bind=engine, autoflush=False))

    seed.run_seed()
    seed.run_seed()

    assert db_session.query(Warehouse).count() == 1
    assert db_session.query(Product).count() == 2
    assert db_session.query(ChannelMapping).count() == 1
    assert resolve_group(db_session, "MUG-RED") == {"MUG-RED", "MUG-RED-GIFT"}
