import pytest

from edu_advisor.stream.accumulator import ContentAccumulator
from edu_advisor.types import AccumulatedBuffer, StreamFragment


def test_accumulator_notifies_snapshot_after_every_fragment() -> None:
    accumulator = ContentAccumulator()
    seen: list[AccumulatedBuffer] = []
    accumulator.subscribe(seen.append)

    accumulator.append(StreamFragment(0, "Strong "))
    accumulator.append(StreamFragment(1, "profile"))
    accumulator.append(StreamFragment(2, "", is_final=True))

    assert [snapshot.text for snapshot in seen] == ["Strong ", "Strong profile", "Strong profile"]
    assert [snapshot.fragment_count for snapshot in seen] == [1, 2, 3]
    assert [snapshot.complete for snapshot in seen] == [False, False, True]
    assert accumulator.final_text() == "Strong profile"


def test_accumulator_rejects_out_of_order_and_late_fragments() -> None:
    accumulator = ContentAccumulator()

    assert accumulator.append(StreamFragment(3, "a"))
    assert not accumulator.append(StreamFragment(3, "dup"))
    assert not accumulator.append(StreamFragment(1, "old"))
    assert accumulator.append(StreamFragment(4, "", is_final=True))
    assert not accumulator.append(StreamFragment(5, "late"))

    assert accumulator.snapshot() == AccumulatedBuffer(text="a", fragment_count=2, complete=True)


def test_final_text_requires_completion() -> None:
    accumulator = ContentAccumulator()
    accumulator.append(StreamFragment(0, "partial"))

    with pytest.raises(RuntimeError):
        accumulator.final_text()


def test_closed_accumulator_stops_growing_and_notifying() -> None:
    accumulator = ContentAccumulator()
    seen: list[AccumulatedBuffer] = []
    accumulator.subscribe(seen.append)
    accumulator.append(StreamFragment(0, "kept"))

    accumulator.close()

    assert not accumulator.append(StreamFragment(1, "dropped"))
    assert accumulator.snapshot().text == "kept"
    assert len(seen) == 1
    with pytest.raises(RuntimeError):
        accumulator.subscribe(seen.append)


def test_snapshots_share_the_running_text() -> None:
    accumulator = ContentAccumulator()
    for sequence in range(1000):
        accumulator.append(StreamFragment(sequence, "ab"))
    accumulator.append(StreamFragment(1000, "", is_final=True))

    snapshot = accumulator.snapshot()

    assert snapshot.text is accumulator.final_text()
    assert snapshot.text == "ab" * 1000
    assert snapshot.fragment_count == 1001
