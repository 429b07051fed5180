from unitorm.core import ManyToOne, Model, StringField
from unitorm.persistence import PendingWrite, UnitOfWork
from unitorm.persistence.unit_of_work import DELETE, INSERT, UPDATE, dependency_order


class Region(Model):
    name = StringField()


class Office(Model):
    name = StringField()
    region = ManyToOne(Region)


class Desk(Model):
    label = StringField()
    office = ManyToOne(Office)


def test_dependency_order_puts_referenced_entities_first():
    region = Region(id=1)
    office = Office(id=1, region=region)
    desk = Desk(id=1, office=office)

    assert dependency_order([desk, office, region]) == [region, office, desk]


def test_dependency_order_follows_raw_foreign_keys():
    region = Region(id=3)
    office = Office(id=1)
    office.region = 3

    assert dependency_order([office, region]) == [region, office]


def test_write_set_orders_inserts_updates_and_deletes():
    unit = UnitOfWork()
    region = Region(id=1)
    office = Office(id=1, region=region)
    old_region = Region(id=2)
    old_office = Office(id=2, region=old_region)
    changed = Desk(id=9)

    unit.register_new(office)
    unit.register_new(region)
    unit.register_deleted(old_region)
    unit.register_deleted(old_office)
    writes = unit.write_set([PendingWrite(UPDATE, changed, ("label",))])

    assert [(write.kind, write.entity) for write in writes] == [
        (INSERT, region),
        (INSERT, office),
        (UPDATE, changed),
        (DELETE, old_office),
        (DELETE, old_region),
    ]


def test_deleting_a_pending_insert_cancels_it():
    unit = UnitOfWork()
    region = Region(id=1)
    unit.register_new(region)

    assert unit.register_deleted(region) is False
    assert not unit.is_new(region)
    assert not unit.is_deleted(region)
    assert unit.write_set([]) == []


def test_restore_and_forget():
    unit = UnitOfWork()
    region, office = Region(id=1), Office(id=1)
    unit.register_deleted(region)
    unit.register_new(office)

    unit.restore(region)
    unit.forget(office)

    assert not unit.is_deleted(region)
    assert not unit.is_new(office)
