from datetime import timedelta

import pytest

from clipboard.memory import InMemoryClipboard
from models.errors import ClipboardUnavailable, WriteFailure
from models.events import OptimizationComplete, OptimizationStart
from models.formats import FILE_LIST, JPEG, PNG, TEXT
from models.optimization import Outcome, PipelineState
from services.optimizer_service import OptimizationPipeline

from conftest import BlockingCodec, FakeCodec, fake_png


def _names(events):
    return [event.name for event in events]


def test_large_png_is_replaced_with_smaller_jpeg(clipboard, subscription, make_pipeline):
    pipeline = make_pipeline(FakeCodec(encoded_size=450_000))
    sequence_id = clipboard.copy({PNG: fake_png(2_000_000)})

    assert pipeline.process(sequence_id) is Outcome.COMMITTED

    emitted = subscription.drain()
    assert _names(emitted) == ["optimization-start", "optimization-complete"]
    assert emitted[1] == OptimizationComplete(original_size=2_000_000, new_size=450_000)
    assert emitted[1].to_message() == {
        "event": "optimization-complete",
        "payload": {"original_size": 2_000_000, "new_size": 450_000},
    }
    assert list(clipboard.contents) == [JPEG]
    assert len(clipboard.contents[JPEG]) == 450_000
    assert pipeline.state is PipelineState.IDLE


def test_small_icon_is_skipped_silently(clipboard, subscription, make_pipeline):
    pipeline = make_pipeline()
    icon = fake_png(500)
    sequence_id = clipboard.copy({PNG: icon})

    assert pipeline.process(sequence_id) is Outcome.SKIPPED

    assert subscription.drain() == []
    assert clipboard.contents == {PNG: icon}
    assert clipboard.writes == []
    assert pipeline.session is None


def test_jpeg_that_does_not_shrink_is_left_alone(clipboard, subscription, make_pipeline):
    pipeline = make_pipeline(FakeCodec(encoded_size=300_000))
    original = b"\xff\xd8" + b"q" * (300_000 - 2)
    sequence_id = clipboard.copy({JPEG: original})

    assert pipeline.process(sequence_id) is Outcome.SKIPPED

    assert "optimization-complete" not in _names(subscription.drain())
    assert clipboard.contents == {JPEG: original}
    assert clipboard.writes == []


def test_equal_size_result_is_not_committed(clipboard, subscription, make_pipeline):
    pipeline = make_pipeline(FakeCodec(encoded_size=50_000))
    sequence_id = clipboard.copy({PNG: fake_png(50_000)})

    assert pipeline.process(sequence_id) is Outcome.SKIPPED
    assert clipboard.writes == []


def test_small_jpeg_is_skipped_before_decoding(clipboard, subscription, make_pipeline):
    codec = FakeCodec(encoded_size=1_000)
    pipeline = make_pipeline(codec)
    sequence_id = clipboard.copy({JPEG: b"\xff\xd8" + b"q" * 20_000})

    assert pipeline.process(sequence_id) is Outcome.SKIPPED
    assert codec.decoded == []
    assert subscription.drain() == []


def test_tiny_dimensions_are_skipped(clipboard, subscription, make_pipeline):
    pipeline = make_pipeline(FakeCodec(width=8, height=400))
    sequence_id = clipboard.copy({PNG: fake_png(40_000)})

    assert pipeline.process(sequence_id) is Outcome.SKIPPED
    assert subscription.drain() == []


def test_non_image_content_emits_nothing(clipboard, subscription, make_pipeline):
    pipeline = make_pipeline()
    sequence_id = clipboard.copy({TEXT: b"hello world" * 5000})

    assert pipeline.process(sequence_id) is Outcome.IGNORED

    assert subscription.drain() == []
    assert clipboard.writes == []


def test_own_write_is_not_evaluated_again(clipboard, subscription, make_pipeline):
    codec = FakeCodec(encoded_size=20_000)
    pipeline = make_pipeline(codec)
    pipeline.process(clipboard.copy({PNG: fake_png(200_000)}))
    subscription.drain()

    assert pipeline.last_written_sequence == clipboard.sequence_id()
    assert pipeline.process(pipeline.last_written_sequence) is Outcome.IGNORED
    assert len(codec.decoded) == 1
    assert subscription.drain() == []


def test_optimized_output_copied_again_is_skipped(clipboard, subscription, make_pipeline):
    pipeline = make_pipeline(FakeCodec(encoded_size=100_000))
    pipeline.process(clipboard.copy({PNG: fake_png(400_000)}))
    optimized = clipboard.contents[JPEG]
    subscription.drain()

    # another application copies our JPEG back onto the clipboard
    sequence_id = clipboard.copy({JPEG: optimized})

    assert pipeline.process(sequence_id) is Outcome.SKIPPED
    assert subscription.drain() == []
    assert len(clipboard.writes) == 1


def test_revert_restores_original_bytes(clipboard, subscription, make_pipeline):
    pipeline = make_pipeline(FakeCodec(encoded_size=30_000))
    original = {PNG: fake_png(300_000), TEXT: b"screenshot.png"}
    pipeline.process(clipboard.copy(original))
    assert clipboard.contents != original

    pipeline.revert()

    assert clipboard.contents == original
    assert pipeline.session is None
    # the restored original must not be optimized again
    assert pipeline.process(clipboard.sequence_id()) is Outcome.IGNORED


def test_revert_without_session_is_a_noop(clipboard, make_pipeline):
    pipeline = make_pipeline()
    clipboard.copy({TEXT: b"unrelated"})

    pipeline.revert()

    assert clipboard.contents == {TEXT: b"unrelated"}
    assert clipboard.writes == []


def test_second_revert_is_a_noop(clipboard, make_pipeline):
    pipeline = make_pipeline(FakeCodec(encoded_size=30_000))
    original = {PNG: fake_png(300_000)}
    pipeline.process(clipboard.copy(original))

    pipeline.revert()
    pipeline.revert()

    assert clipboard.contents == original
    assert len(clipboard.writes) == 2


def test_new_commit_replaces_session(clipboard, make_pipeline):
    pipeline = make_pipeline(FakeCodec(encoded_size=30_000))
    pipeline.process(clipboard.copy({PNG: fake_png(300_000)}))
    first = pipeline.session
    second_original = {PNG: fake_png(310_000)}
    pipeline.process(clipboard.copy(second_original))

    assert pipeline.session is not first
    assert pipeline.session.original_size == 310_000

    pipeline.revert()
    assert clipboard.contents == second_original


def test_expired_session_is_not_reverted_when_enforced(clipboard, clock, make_pipeline):
    pipeline = make_pipeline(FakeCodec(encoded_size=30_000),
                             enforce_revert_expiry=True, revert_window=5.0)
    pipeline.process(clipboard.copy({PNG: fake_png(300_000)}))
    optimized = clipboard.contents

    clock.advance(6)
    pipeline.revert()

    assert clipboard.contents == optimized
    assert pipeline.session is None


def test_expiry_is_advisory_by_default(clipboard, clock, make_pipeline):
    pipeline = make_pipeline(FakeCodec(encoded_size=30_000))
    original = {PNG: fake_png(300_000)}
    pipeline.process(clipboard.copy(original))
    assert pipeline.session.expires_at == clock.now + timedelta(seconds=5)

    clock.advance(60)
    pipeline.revert()

    assert clipboard.contents == original


def test_corrupt_image_fails_without_touching_clipboard(clipboard, subscription, make_pipeline):
    pipeline = make_pipeline()
    corrupt = b"corrupt" + b"\x00" * 50_000
    sequence_id = clipboard.copy({PNG: corrupt})

    assert pipeline.process(sequence_id) is Outcome.FAILED

    assert subscription.drain() == []
    assert clipboard.contents == {PNG: corrupt}
    assert pipeline.state is PipelineState.IDLE


def test_encode_failure_emits_no_completion(clipboard, subscription, make_pipeline):
    codec = FakeCodec()
    codec.fail_encode = True
    pipeline = make_pipeline(codec)
    original = {PNG: fake_png(500_000)}

    assert pipeline.process(clipboard.copy(original)) is Outcome.FAILED

    assert _names(subscription.drain()) == ["optimization-start"]
    assert clipboard.contents == original


def test_write_failure_keeps_original_and_session(clipboard, subscription, make_pipeline):
    pipeline = make_pipeline(FakeCodec(encoded_size=1_000_000))
    original = {PNG: fake_png(2_000_000)}
    sequence_id = clipboard.copy(original)
    clipboard.fail_writes = True

    assert pipeline.process(sequence_id) is Outcome.FAILED

    assert "optimization-complete" not in _names(subscription.drain())
    assert clipboard.contents == original
    assert pipeline.session is None


def test_locked_clipboard_waits_for_next_change(clipboard, subscription, make_pipeline):
    pipeline = make_pipeline(FakeCodec(encoded_size=10_000))
    sequence_id = clipboard.copy({PNG: fake_png(100_000)})
    clipboard.locked = True

    assert pipeline.process(sequence_id) is Outcome.IGNORED
    assert subscription.drain() == []

    clipboard.locked = False
    assert pipeline.process(clipboard.copy({PNG: fake_png(120_000)})) is Outcome.COMMITTED


def test_copied_image_file_is_optimized(tmp_path, clipboard, subscription, make_pipeline):
    image_file = tmp_path / "holiday photo.png"
    image_file.write_bytes(fake_png(80_000))
    pipeline = make_pipeline(FakeCodec(encoded_size=12_000))
    original = {FILE_LIST: image_file.as_uri().encode("utf-8")}

    assert pipeline.process(clipboard.copy(original)) is Outcome.COMMITTED

    emitted = subscription.drain()
    assert emitted[-1] == OptimizationComplete(original_size=80_000, new_size=12_000)
    assert list(clipboard.contents) == [JPEG]

    pipeline.revert()
    assert clipboard.contents == original


def test_several_copied_files_are_ignored(tmp_path, clipboard, subscription, make_pipeline):
    uris = []
    for name in ("a.png", "b.png"):
        path = tmp_path / name
        path.write_bytes(fake_png(80_000))
        uris.append(path.as_uri())
    pipeline = make_pipeline()

    sequence_id = clipboard.copy({FILE_LIST: "\r\n".join(uris).encode("utf-8")})

    assert pipeline.process(sequence_id) is Outcome.IGNORED
    assert subscription.drain() == []


def test_non_image_file_is_ignored(tmp_path, clipboard, make_pipeline):
    document = tmp_path / "notes.txt"
    document.write_bytes(b"x" * 80_000)
    pipeline = make_pipeline()

    sequence_id = clipboard.copy({FILE_LIST: document.as_uri().encode("utf-8")})

    assert pipeline.process(sequence_id) is Outcome.IGNORED


def test_running_pipeline_reacts_to_clipboard_changes(clipboard, subscription, make_pipeline):
    pipeline = make_pipeline(FakeCodec(encoded_size=25_000))
    pipeline.start()

    clipboard.copy({PNG: fake_png(250_000)})
    assert pipeline.wait_idle(timeout=5.0)

    assert _names(subscription.drain()) == ["optimization-start", "optimization-complete"]
    assert len(clipboard.writes) == 1
    assert pipeline.last_outcome is Outcome.IGNORED  # our own write came back and was dropped


def test_changes_during_encoding_are_coalesced(clipboard, subscription, make_pipeline):
    codec = BlockingCodec(encoded_size=5_000)
    pipeline = make_pipeline(codec)
    pipeline.start()
    first, middle, last = fake_png(20_000), fake_png(30_000), fake_png(40_000)

    clipboard.copy({PNG: first})
    assert codec.entered.wait(5.0)
    clipboard.copy({PNG: middle})
    clipboard.copy({PNG: last})
    codec.release.set()
    assert pipeline.wait_idle(timeout=5.0)

    assert codec.decoded == [first, last]
    completions = [event for event in subscription.drain() if isinstance(event, OptimizationComplete)]
    assert completions == [OptimizationComplete(original_size=40_000, new_size=5_000)]
    assert pipeline.session.original_snapshot.payload == {PNG: last}


def test_only_one_pipeline_runs_per_process(make_pipeline):
    first = make_pipeline()
    second = make_pipeline()
    first.start()

    with pytest.raises(RuntimeError):
        second.start()

    first.stop()
    second.start()
    assert second.is_running


def test_start_event_precedes_completion(clipboard, events, make_pipeline):
    seen = []
    events.add_listener(lambda event: seen.append(type(event)))
    pipeline = make_pipeline(FakeCodec(encoded_size=10_000))

    pipeline.process(clipboard.copy({PNG: fake_png(100_000)}))

    assert seen == [OptimizationStart, OptimizationComplete]


class ClearingClipboard(InMemoryClipboard):
    """Rejects the next write only after it has already replaced the content."""

    def __init__(self) -> None:
        super().__init__()
        self.clear_before_failing = False

    def _write_formats(self, payloads):
        if self.clear_before_failing:
            self.clear_before_failing = False
            self._replace({JPEG: b"\xff\xd8 partial"})
            raise WriteFailure("clipboard rejected the write after clearing it")
        super()._write_formats(payloads)


def test_write_failure_after_clearing_restores_original(events, subscription, clock):
    board = ClearingClipboard()
    pipeline = OptimizationPipeline(board, codec=FakeCodec(encoded_size=450_000), events=events, clock=clock)
    original = {PNG: fake_png(2_000_000), TEXT: b"caption"}
    sequence_id = board.copy(original)
    board.clear_before_failing = True

    assert pipeline.process(sequence_id) is Outcome.FAILED

    assert board.contents == original
    assert board.writes == [original]
    assert pipeline.last_written_sequence == board.sequence_id()
    assert "optimization-complete" not in _names(subscription.drain())
    assert pipeline.session is None
    assert pipeline.process(board.sequence_id()) is Outcome.IGNORED


def test_failed_subscribe_frees_the_process_slot(monkeypatch, clipboard, make_pipeline):
    first = make_pipeline()
    second = make_pipeline()

    def refuse(on_change):
        raise ClipboardUnavailable("no clipboard watcher available")

    monkeypatch.setattr(clipboard, "subscribe", refuse)
    with pytest.raises(ClipboardUnavailable):
        first.start()
    assert not first.is_running

    monkeypatch.undo()
    second.start()
    assert second.is_running


def test_pipeline_slot_held_until_running_cycle_ends(clipboard, make_pipeline):
    codec = BlockingCodec()
    first = make_pipeline(codec)
    second = make_pipeline()
    first.start()
    clipboard.copy({PNG: fake_png(40_000)})
    assert codec.entered.wait(5.0)

    first.stop(timeout=0.05)
    with pytest.raises(RuntimeError):
        second.start()

    codec.release.set()
    first.stop()
    assert not first.is_running
    assert first.last_outcome is Outcome.COMMITTED

    second.start()
    assert second.is_running
