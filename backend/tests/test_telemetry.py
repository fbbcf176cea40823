"""
Movement and sensor-reading tests.
"""

import logging
from datetime import timedelta
from decimal import Decimal

import pytest

from packloop.errors import NotFound, ValidationError
from packloop.services import instance_service, telemetry_service

from conftest import T0


def test_last_known_location_and_dwell_time(instance, make_location):
    """Scenario: A->B at t1, B->C at t2."""
    a, b, c = make_location("retailer"), make_location("dropbox"), make_location("retailer")
    t1 = T0 + timedelta(hours=1)
    t2 = T0 + timedelta(hours=5, minutes=30)

    telemetry_service.record_movement(instance.id, from_loc_id=a.id, to_loc_id=b.id, moved_at=t1)
    telemetry_service.record_movement(instance.id, from_loc_id=b.id, to_loc_id=c.id, moved_at=t2)

    assert telemetry_service.last_known_location(instance.id) == c.id
    assert telemetry_service.dwell_time(instance.id) == t2 - t1


def test_no_movements_means_unknown(instance):
    assert telemetry_service.last_known_location(instance.id) is None
    assert telemetry_service.dwell_time(instance.id) is None


def test_single_movement_has_no_dwell_time(instance, make_location):
    loc = make_location("retailer")
    telemetry_service.record_movement(instance.id, to_loc_id=loc.id, moved_at=T0)
    assert telemetry_service.last_known_location(instance.id) == loc.id
    assert telemetry_service.dwell_time(instance.id) is None


def test_latest_is_max_moved_at_not_insert_order(instance, make_location):
    early, late = make_location("retailer"), make_location("dropbox")
    telemetry_service.record_movement(instance.id, to_loc_id=late.id, moved_at=T0 + timedelta(hours=3))
    # arrives later but describes an earlier scan
    telemetry_service.record_movement(instance.id, to_loc_id=early.id, moved_at=T0 + timedelta(hours=1))

    assert telemetry_service.last_known_location(instance.id) == late.id


def test_equal_timestamps_break_ties_by_id(instance, make_location):
    first, second = make_location("retailer"), make_location("dropbox")
    telemetry_service.record_movement(instance.id, to_loc_id=first.id, moved_at=T0)
    telemetry_service.record_movement(instance.id, to_loc_id=second.id, moved_at=T0)

    assert telemetry_service.last_known_location(instance.id) == second.id
    assert telemetry_service.dwell_time(instance.id) == timedelta(0)


def test_unknown_destination_is_none(instance, make_location):
    loc = make_location("retailer")
    telemetry_service.record_movement(instance.id, to_loc_id=loc.id, moved_at=T0)
    telemetry_service.record_movement(instance.id, from_loc_id=loc.id, moved_at=T0 + timedelta(hours=1))
    assert telemetry_service.last_known_location(instance.id) is None


def test_origin_mismatch_is_logged_not_rejected(instance, make_location, caplog):
    a, b, c = make_location("retailer"), make_location("retailer"), make_location("dropbox")
    telemetry_service.record_movement(instance.id, to_loc_id=a.id, moved_at=T0)

    with caplog.at_level(logging.WARNING):
        telemetry_service.record_movement(instance.id, from_loc_id=b.id, to_loc_id=c.id, moved_at=T0 + timedelta(hours=1))

    assert telemetry_service.last_known_location(instance.id) == c.id
    assert any("does not match" in r.getMessage() for r in caplog.records)


def test_origin_mismatch_rejected_when_strict(instance, make_location, app, monkeypatch):
    monkeypatch.setitem(app.config, "STRICT_MOVEMENT_ORIGIN", True)
    a, b = make_location("retailer"), make_location("retailer")
    telemetry_service.record_movement(instance.id, to_loc_id=a.id, moved_at=T0)

    with pytest.raises(ValidationError):
        telemetry_service.record_movement(instance.id, from_loc_id=b.id, to_loc_id=a.id, moved_at=T0 + timedelta(hours=1))
    assert telemetry_service.last_known_location(instance.id) == a.id


def test_movement_to_hub_transitions_to_at_hub(instance, hub):
    telemetry_service.record_movement(instance.id, to_loc_id=hub.location_id, moved_at=T0)
    assert instance_service.get_instance(instance.id).state == "at_hub"


def test_movement_to_hub_from_disallowed_state_keeps_state(instance, hub, caplog):
    instance_service.mark_damaged(instance.id, now=T0)

    with caplog.at_level(logging.WARNING):
        movement = telemetry_service.record_movement(instance.id, to_loc_id=hub.location_id, moved_at=T0 + timedelta(hours=1))

    assert movement.id is not None
    assert instance_service.get_instance(instance.id).state == "damaged"
    assert any("state left unchanged" in r.getMessage() for r in caplog.records)


def test_movement_unknown_location(instance):
    with pytest.raises(NotFound):
        telemetry_service.record_movement(instance.id, to_loc_id=777777)


def test_sensor_readings_latest_per_type(instance, make_location):
    loc = make_location("hub")
    telemetry_service.record_sensor_reading(sensor_type="temperature", value=4.5, instance_id=instance.id, measured_at=T0)
    telemetry_service.record_sensor_reading(sensor_type="temperature", value="5.25", instance_id=instance.id,
                                            measured_at=T0 + timedelta(minutes=10))
    telemetry_service.record_sensor_reading(sensor_type="shock", value=1, instance_id=instance.id, location_id=loc.id,
                                            measured_at=T0 + timedelta(minutes=5))

    latest = telemetry_service.latest_readings(instance.id)
    assert set(latest) == {"temperature", "shock"}
    assert latest["temperature"].value == Decimal("5.250")
    assert latest["shock"].location_id == loc.id


@pytest.mark.parametrize("sensor_type,value", [("pressure", 1), ("humidity", "wet"), ("humidity", True)])
def test_sensor_reading_validation(instance, sensor_type, value):
    with pytest.raises(ValidationError):
        telemetry_service.record_sensor_reading(sensor_type=sensor_type, value=value, instance_id=instance.id)


def test_location_only_sensor_reading(make_location):
    loc = make_location("hub")
    reading = telemetry_service.record_sensor_reading(sensor_type="humidity", value=61.2, location_id=loc.id)
    assert reading.instance_id is None
    assert reading.location_id == loc.id
