from pasvftp.timer import Timer, TimerId
from pasvftp.timestamp import Timestamp


def test_sequences_increase():
    first = Timer(lambda: None, Timestamp(1), 0)
    second = Timer(lambda: None, Timestamp(1), 0)
    assert second.sequence > first.sequence


def test_repeat_follows_interval():
    assert Timer(lambda: None, Timestamp(1), 2.5).repeat
    assert not Timer(lambda: None, Timestamp(1), 0).repeat
    assert not Timer(lambda: None, Timestamp(1), -1).repeat


def test_run_calls_callback():
    calls = []
    timer = Timer(lambda: calls.append("hit"), Timestamp(1), 0)
    timer.run()
    timer.run()
    assert calls == ["hit", "hit"]


def test_restart_repeating():
    timer = Timer(lambda: None, Timestamp(5), 2.0)
    now = Timestamp(1_000_000)
    timer.restart(now)
    assert timer.expiration == now.add_time(2.0)
    assert timer.expiration > now


def test_restart_one_shot_invalidates():
    timer = Timer(lambda: None, Timestamp(5), 0)
    timer.restart(Timestamp(1_000_000))
    assert timer.expiration == Timestamp(-1)
    assert not timer.expiration.valid()


def test_timer_id_equality():
    timer = Timer(lambda: None, Timestamp(5), 0)
    assert TimerId(timer, timer.sequence) == TimerId(timer, timer.sequence)
    assert TimerId(timer, timer.sequence).timer is timer