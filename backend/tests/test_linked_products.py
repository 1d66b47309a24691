import pytest

from backend.app.db.models.models_v1 import InventoryGroup, Product
from backend.services.exceptions import ProductNotFound, ValidationError
from backend.services.linked_products import (
    assign_group,
    clear_group,
    linked_skus,
    resolve_group,
    resolve_groups,
)


def test_ungrouped_product_is_its_own_group(make_product, db_session):
    make_product("SOLO")

    assert resolve_group(db_session, "SOLO") == {"SOLO"}
    assert linked_skus(db_session, "SOLO") == set()


def test_unknown_sku_resolves_to_itself(db_session):
    assert resolve_group(db_session, "GHOST") == {"GHOST"}


def test_group_members_share_the_pool(make_product, db_session):
    make_product("MUG-RED", group_id="mug")
    make_product("MUG-RED-BUNDLE", group_id="mug")
    make_product("TEE")

    assert resolve_group(db_session, "MUG-RED") == {"MUG-RED", "MUG-RED-BUNDLE"}
    assert linked_skus(db_session, "MUG-RED-BUNDLE") == {"MUG-RED"}


def test_resolve_groups_batches_lookups(make_product, db_session):
    make_product("A", group_id="g1")
    make_product("B", group_id="g1")
    make_product("C")

    groups = resolve_groups(db_session, {"A", "C", "GHOST"})

    assert groups == {"A": {"A", "B"}, "C": {"C"}, "GHOST": {"GHOST"}}
    assert resolve_groups(db_session, set()) == {}


def test_assign_group_creates_group_and_moves_product(make_product, db_session):
    make_product("A", group_id="g1")

    assign_group(db_session, "A", "g2", "Second pool")
    db_session.commit()

    group = db_session.get(InventoryGroup, "g2")
    assert group.name == "Second pool"
    assert db_session.query(Product).filter_by(sku="A").one().physical_product_group_id == "g2"


def test_clear_group(make_product, db_session):
    make_product("A", group_id="g1")
    make_product("B", group_id="g1")

    clear_group(db_session, "A")
    db_session.commit()

    assert resolve_group(db_session, "A") == {"A"}
    assert resolve_group(db_session, "B") == {"B"}


def test_group_admin_errors(make_product, db_session):
    make_product("A")

    with pytest.raises(ValidationError):
        assign_group(db_session, "A", "   ")
    with pytest.raises(ProductNotFound):
        assign_group(db_session, "GHOST", "g1")
    with pytest.raises(ProductNotFound):
        clear_group(db_session, "GHOST")
