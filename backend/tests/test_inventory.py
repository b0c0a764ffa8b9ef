import pytest

from storefront.errors import NotFoundError, ValidationError
from storefront.repositories.product_repo import ProductRepository
from storefront.services.inventory_service import InventoryService


def test_decrement_reduces_stock(db, make_product):
    pid = make_product(stock=5)
    svc = InventoryService(db)

    res = svc.decrement(pid, 3)
    db.commit()

    assert res.new_count == 2
    assert res.sufficient is True
    db.expire_all()
    assert svc.check_availability(pid, 1).available == 2


@pytest.mark.parametrize("before,qty", [(5, 5), (2, 10), (0, 1)])
def test_decrement_floors_at_zero(db, make_product, before, qty):
    pid = make_product(stock=before)
    svc = InventoryService(db)

    res = svc.decrement(pid, qty)
    db.commit()

    assert res.new_count == max(0, before - qty)
    assert res.sufficient is (before >= qty)
    db.expire_all()
    assert ProductRepository(db).stock_of(pid) == max(0, before - qty)


def test_decrement_unknown_product(db):
    with pytest.raises(NotFoundError):
        InventoryService(db).decrement(4242, 1)


def test_decrement_rejects_non_positive_quantity(db, make_product):
    pid = make_product(stock=5)
    with pytest.raises(ValidationError):
        InventoryService(db).decrement(pid, 0)


def test_check_availability(db, make_product):
    pid = make_product(stock=3)
    svc = InventoryService(db)

    assert svc.check_availability(pid, 3).is_available
    check = svc.check_availability(pid, 4)
    assert not check.is_available
    assert check.available == 3

    with pytest.raises(NotFoundError):
        svc.check_availability(999, 1)


def test_inactive_product_is_not_found(db, make_product):
    pid = make_product(active=False)
    with pytest.raises(NotFoundError):
        InventoryService(db).check_availability(pid, 1)


def test_validate_lines_reports_every_shortfall(db, make_product):
    class Line:
        def __init__(self, product_id, quantity):
            self.product_id = product_id
            self.quantity = quantity

    ok = make_product(name="Plenty", stock=5)
    short = make_product(name="Scarce", stock=1)
    empty = make_product(name="Gone", stock=0)

    shortfalls = InventoryService(db).validate_lines(
        [Line(ok, 2), Line(short, 2), Line(empty, 1), Line(777, 1)]
    )

    by_id = {s.product_id: s for s in shortfalls}
    assert set(by_id) == {short, empty, 777}
    assert by_id[short].requested == 2 and by_id[short].available == 1
    assert by_id[short].name == "Scarce"
    assert by_id[777].error == "Product not found"
