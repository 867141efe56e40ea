import re

from parse_bench.obs import timing
from parse_bench.obs.timing import ManualClock, new_run_id, parse_iso, to_iso


def test_run_ids_are_unique_within_one_millisecond() -> None:
    clock = ManualClock()

    ids = {new_run_id(clock) for _ in range(500)}

    assert len(ids) == 500
    assert all(re.fullmatch(r"run-1704067200000-[a-z0-9]{6}", run_id) for run_id in ids)


def test_only_current_millisecond_ids_are_retained() -> None:
    clock = ManualClock()
    for _ in range(50):
        new_run_id(clock)

    clock.advance(1)
    latest = new_run_id(clock)

    assert timing._recent_run_ids == {latest}


def test_iso_round_trip_uses_z_suffix() -> None:
    moment = ManualClock().now()

    assert to_iso(moment) == "2024-01-01T00:00:00Z"
    assert parse_iso("2024-01-01T00:00:00Z") == moment
