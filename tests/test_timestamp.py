import time

from pasvftp.timestamp import MICROS_PER_SECOND, Timestamp


def test_now_is_close_to_system_time():
    before = time.time_ns() // 1000
    stamp = Timestamp.now()
    after = time.time_ns() // 1000
    assert before <= stamp.micro_seconds_since_epoch <= after


def test_now_is_valid():
    assert Timestamp.now().valid() is True


def test_zero_and_negative_are_invalid():
    assert Timestamp(0).valid() is False
    assert Timestamp(-1).valid() is False


def test_seconds_since_epoch_truncates():
    stamp = Timestamp(7 * MICROS_PER_SECOND + MICROS_PER_SECOND - 1)
    assert stamp.seconds_since_epoch() == 7


def test_ordering_follows_microseconds():
    early = Timestamp(10)
    late = Timestamp(20)
    assert early < late
    assert late > early
    assert early <= Timestamp(10)
    assert late >= Timestamp(20)
    assert early == Timestamp(10)


def test_add_time_round_trip_with_difference():
    base = Timestamp.now()
    later = base.add_time(3.0)
    assert later > base
    assert Timestamp.time_difference(later, base) == 3.0


def test_time_difference_counts_whole_seconds_only():
    base = Timestamp(MICROS_PER_SECOND)
    later = base.add_time(2.5)
    assert Timestamp.time_difference(later, base) == 2.0


def test_time_difference_is_antisymmetric():
    base = Timestamp(MICROS_PER_SECOND)
    later = base.add_time(4.0)
    assert Timestamp.time_difference(base, later) == -Timestamp.time_difference(later, base)


def test_add_negative_time_moves_back():
    base = Timestamp(5 * MICROS_PER_SECOND)
    assert base.add_time(-1.0) < base
    assert base.add_time(-1.0).add_time(1.0) == base