from datetime import datetime, timedelta, timezone

from splitstats.core.utils import (
    day_id_range,
    day_range,
    id_floor,
    new_record_id,
    next_day,
    snap_to_day,
    to_naive_utc,
)


def test_snap_to_day():
    assert snap_to_day(datetime(2024, 3, 10, 23, 59, 59)) == datetime(2024, 3, 10)
    assert next_day(datetime(2024, 2, 28, 5)) == datetime(2024, 2, 29)


def test_day_range_is_half_open():
    days = list(day_range(datetime(2024, 3, 8, 15), datetime(2024, 3, 10)))
    assert days == [datetime(2024, 3, 8), datetime(2024, 3, 9)]

    # A partial last day is included
    days = list(day_range(datetime(2024, 3, 8), datetime(2024, 3, 9, 1)))
    assert days == [datetime(2024, 3, 8), datetime(2024, 3, 9)]

    assert list(day_range(datetime(2024, 3, 8), datetime(2024, 3, 8))) == []


def test_record_ids_sort_by_creation_time():
    earlier = new_record_id(datetime(2024, 3, 9, 23, 59, 59))
    later = new_record_id(datetime(2024, 3, 10, 0, 0, 0))
    assert len(earlier) == len(later) == 24
    assert earlier < later


def test_record_ids_in_the_same_second_keep_creation_order():
    created_at = datetime(2024, 3, 10, 12)
    ids = [new_record_id(created_at) for _ in range(50)]
    assert ids == sorted(ids)
    assert len(set(ids)) == 50


def test_id_floor_and_day_bounds():
    day = datetime(2024, 3, 10)
    low, high = day_id_range(datetime(2024, 3, 10, 17, 30))
    assert low == id_floor(day)
    assert high == id_floor(datetime(2024, 3, 11))

    inside = new_record_id(datetime(2024, 3, 10, 23, 59, 59))
    before = new_record_id(datetime(2024, 3, 9, 23, 59, 59))
    assert low <= inside < high
    assert before < low


def test_aware_datetimes_snap_to_their_utc_day():
    plus_five = timezone(timedelta(hours=5))
    # 01:00 on the 11th at +05:00 is 20:00 on the 10th in UTC
    local = datetime(2024, 3, 11, 1, 0, tzinfo=plus_five)
    assert to_naive_utc(local) == datetime(2024, 3, 10, 20, 0)
    assert snap_to_day(local) == datetime(2024, 3, 10)
    assert next_day(local) == datetime(2024, 3, 11)
    assert to_naive_utc(datetime(2024, 3, 10, 20)) == datetime(2024, 3, 10, 20)


def test_aware_datetimes_give_the_same_id_bounds():
    local = datetime(2024, 3, 11, 1, 0, tzinfo=timezone(timedelta(hours=5)))
    assert id_floor(local) == id_floor(datetime(2024, 3, 10, 20, 0))
    assert day_id_range(local) == day_id_range(datetime(2024, 3, 10))
