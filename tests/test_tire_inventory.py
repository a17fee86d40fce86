import pytest

from models import AuditLog, Tire, TireStatus
from tire_inventory import TireError, TireInventory


def _register(session, *serials):
    return TireInventory.add_tires(
        session, [{"serial_number": s} for s in serials], "admin",
        common={"brand": "MRF", "size": "10.00R20", "bill_number": "B-77"},
    )


def test_positions_per_wheel_config():
    assert len(TireInventory.positions_for("10 WHEEL")) == 10
    assert len(TireInventory.positions_for("12 WHEEL")) == 12
    assert len(TireInventory.positions_for("14 wheel")) == 14
    assert len(TireInventory.positions_for("16 WHEEL")) == 16
    assert TireInventory.positions_for("TRACTOR") == []


def test_add_tires_uses_common_fields(session):
    tires = _register(session, "mrf-001", "MRF-002")

    assert [t.serial_number for t in tires] == ["MRF-001", "MRF-002"]
    assert all(t.brand == "MRF" and t.status == TireStatus.NEW for t in tires)
    assert tires[0].expected_lifespan == 100000
    assert TireInventory.history_rows(tires[0])[0]["Event"] == "Procured"
    assert session.query(AuditLog).filter(AuditLog.resource_type == "Tire").count() == 1


@pytest.mark.parametrize("serials", [["MRF-001", "mrf-001"], ["MRF-009", ""]])
def test_add_tires_rejects_bad_serials(session, serials):
    with pytest.raises(TireError):
        _register(session, *serials)
    assert session.query(Tire).count() == 0


def test_add_tires_rejects_existing_serial(session):
    _register(session, "MRF-001")
    with pytest.raises(TireError, match="already registered"):
        _register(session, "MRF-002", "MRF-001")
    assert session.query(Tire).count() == 1


def test_mount_and_unmount_accumulate_mileage(session, truck):
    (tire,) = _register(session, "MRF-001")

    TireInventory.mount(session, tire.id, truck.id, "axle-1 left", "admin")
    assert tire.status == TireStatus.MOUNTED
    assert tire.position == "AXLE-1 LEFT"
    assert tire.mounted_at_odometer == 1000

    truck.current_odometer = 4500
    session.commit()
    assert TireInventory.live_mileage(tire, truck) == 3500
    assert TireInventory.life_used_pct(tire, truck) == 3.5

    run = TireInventory.unmount(session, tire.id, "admin", status="SPARE", odometer=5000)
    assert run == 4000
    assert tire.mileage == 4000
    assert tire.truck_id is None and tire.position is None
    assert [r["Run KM"] for r in TireInventory.history_rows(tire)] == [0.0, 0.0, 4000.0]


def test_mount_rejects_unknown_or_taken_position(session, truck):
    first, second = _register(session, "MRF-001", "MRF-002")
    with pytest.raises(TireError, match="not a wheel position"):
        TireInventory.mount(session, first.id, truck.id, "AXLE-4 L-OUT", "admin")

    TireInventory.mount(session, first.id, truck.id, "AXLE-2 L-IN", "admin")
    with pytest.raises(TireError, match="already carries"):
        TireInventory.mount(session, second.id, truck.id, "AXLE-2 L-IN", "admin")
    assert second.status == TireStatus.NEW


def test_unmount_rejects_odometer_rollback(session, truck):
    (tire,) = _register(session, "MRF-001")
    TireInventory.mount(session, tire.id, truck.id, "AXLE-1 RIGHT", "admin", odometer=2000)
    with pytest.raises(TireError, match="below the mount odometer"):
        TireInventory.unmount(session, tire.id, "admin", odometer=1500)
    assert tire.status == TireStatus.MOUNTED


def test_scrap_needs_reason(session, truck):
    (tire,) = _register(session, "MRF-001")
    with pytest.raises(TireError, match="scrap reason"):
        TireInventory.set_status(session, tire.id, "SCRAPPED", "admin")
    TireInventory.set_status(session, tire.id, "SCRAPPED", "admin", scrapped_reason="sidewall cut")
    assert tire.scrapped_reason == "sidewall cut"
    with pytest.raises(TireError, match="NEW or SPARE"):
        TireInventory.mount(session, tire.id, truck.id, "AXLE-1 LEFT", "admin")


def test_set_status_refuses_mounted_tire(session, truck):
    (tire,) = _register(session, "MRF-001")
    TireInventory.mount(session, tire.id, truck.id, "AXLE-1 LEFT", "admin")
    with pytest.raises(TireError, match="Unmount"):
        TireInventory.set_status(session, tire.id, "REPAIR", "admin")


def test_replace_swaps_position(session, truck):
    old, new = _register(session, "MRF-001", "MRF-002")
    TireInventory.mount(session, old.id, truck.id, "AXLE-3 R-OUT", "admin")

    TireInventory.replace(session, old.id, new.id, "admin", old_status="REPAIR", odometer=1800)

    assert old.status == TireStatus.REPAIR and old.mileage == 800
    assert new.status == TireStatus.MOUNTED and new.position == "AXLE-3 R-OUT"
    assert new.mounted_at_odometer == 1800
    layout = {row["position"]: row["tire"] for row in TireInventory.truck_layout(session, truck)}
    assert layout["AXLE-3 R-OUT"].serial_number == "MRF-002"
    assert sum(1 for t in layout.values() if t is not None) == 1


def test_filter(session, truck):
    mounted, spare = _register(session, "MRF-001", "MRF-002")
    TireInventory.mount(session, mounted.id, truck.id, "AXLE-1 LEFT", "admin")
    tires = session.query(Tire).all()

    assert TireInventory.filter(tires, [truck], search="1234") == [mounted]
    assert TireInventory.filter(tires, status="NEW") == [spare]
    assert len(TireInventory.filter(tires, brand="MRF")) == 2
