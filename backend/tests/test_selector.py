import threading
import time
from pathlib import Path

import pytest

from book_scan.errors import OcrFailure
from book_scan.selector import (
    BestFrameSelector,
    build_enrichment,
    copy_best_frames,
    deduplicate_by_page,
    order_by_page,
    partition_windows,
    rank_finalists,
    select_best_frames,
    text_coverage_score,
)
from book_scan.types import Config, OcrResult, SelectedFrame


def _page_text(page, filler="Robin gick genom skogen"):
    return f"{filler}\n{filler}\n{page}" if page is not None else filler


def _selected(make_score, ordinal, timestamp, page=None, text="text", confidence=90.0):
    body = _page_text(page, text)
    return SelectedFrame(
        score=make_score(ordinal, timestamp, 1.0),
        window_start=timestamp,
        ocr=build_enrichment(body, confidence),
    )


def _selector(engine=None, **overrides):
    return BestFrameSelector(Config(**overrides), engine=engine, compute_phash=False)


def test_partition_windows(make_score):
    scores = [make_score(i, t, 1.0) for i, t in enumerate([0.5, 1.0, 2.9, 3.0, 4.5, 9.2], 1)]

    windows = partition_windows(scores, 3.0)

    assert [start for start, _ in windows] == [0.0, 3.0, 9.0]
    assert [[s.timestamp for s in frames] for _, frames in windows] == [
        [0.5, 1.0, 2.9], [3.0, 4.5], [9.2]
    ]


def test_partition_windows_irregular_sampling(make_score):
    """Window boundaries follow the frames that open them"""
    scores = [make_score(1, 1.0, 1.0), make_score(2, 5.5, 1.0), make_score(3, 7.0, 1.0)]

    windows = partition_windows(scores, 3.0)

    assert [start for start, _ in windows] == [0.0, 3.0, 6.0]
    assert [len(frames) for _, frames in windows] == [1, 1, 1]


def test_partition_windows_rejects_non_positive_window(make_score):
    with pytest.raises(ValueError):
        partition_windows([make_score(1, 2.0, 1.0)], 0.0)


def test_rank_finalists(make_score):
    window = [make_score(1, 0.0, 0.4), make_score(2, 0.5, 2.0),
              make_score(3, 1.0, 1.5), make_score(4, 1.5, 0.9), make_score(5, 2.0, 3.0)]

    finalists = rank_finalists(window, min_score=0.5, candidates_per_window=3)

    assert [s.frame.ordinal for s in finalists] == [5, 2, 3]
    assert rank_finalists(window, min_score=10.0, candidates_per_window=3) == []


def test_text_coverage_score():
    assert text_coverage_score(100, 50.0) == pytest.approx(125.0)
    assert text_coverage_score(0, 99.0) == 0.0


def test_visual_only_selection(make_score):
    """Without OCR the top visual score of each window wins"""
    scores = [
        make_score(1, 2.0, 1.0), make_score(2, 4.0, 2.0),
        make_score(3, 6.0, 3.0), make_score(4, 8.0, 0.8),
        make_score(5, 10.0, 0.2),
    ]
    selector = _selector(use_ocr=False)

    selected = selector.select(scores)

    # windows [0,3), [3,6), [6,9), [9,12); the last one has nothing above 0.5
    assert [f.score.frame.ordinal for f in selected] == [1, 2, 3]
    assert all(f.ocr is None for f in selected)
    assert [f.path for f in selector.select(scores)] == [f.path for f in selected]


def test_at_most_one_winner_per_window(make_score):
    scores = [make_score(i, i * 0.5, 1.0 + (i % 4) * 0.1) for i in range(1, 40)]

    selected = _selector(use_ocr=False).select(scores)

    starts = [f.window_start for f in selected]
    assert len(starts) == len(set(starts)) == len(partition_windows(scores, 3.0))


def test_ocr_text_coverage_beats_visual_score(make_score, fake_engine):
    sharp = make_score(1, 0.5, 3.0)
    legible = make_score(2, 1.0, 1.0)
    engine = fake_engine({
        sharp.path: OcrResult("kort", 95.0),
        legible.path: OcrResult("Robin gick genom skogen och mötte Lille John vid bron.", 80.0),
    })

    selected = _selector(engine).select([sharp, legible])

    assert len(selected) == 1
    assert selected[0].path == legible.path
    assert selected[0].ocr.recognized_text_length == 54
    assert {call[1] for call in engine.calls} == {"swe"}


def test_ocr_only_runs_on_finalists(make_score, fake_engine):
    scores = [make_score(i, i * 0.5, float(i)) for i in range(1, 6)]
    engine = fake_engine()

    _selector(engine, candidates_per_window=2).select(scores)

    assert sorted(path for path, _ in engine.calls) == [scores[3].path, scores[4].path]


def test_ocr_failure_degrades_to_zero_coverage(make_score, fake_engine):
    first = make_score(1, 0.5, 3.0)
    second = make_score(2, 1.0, 2.0)
    engine = fake_engine({
        first.path: OcrFailure(first.path, "tesseract crashed"),
        second.path: OcrResult("Robin gick genom skogen", 70.0),
    })

    selected = _selector(engine).select([first, second])

    assert [f.path for f in selected] == [second.path]


def test_all_ocr_failures_keep_top_visual_frame(make_score, fake_engine):
    first = make_score(1, 0.5, 3.0)
    second = make_score(2, 1.0, 2.0)
    engine = fake_engine({
        first.path: OcrFailure(first.path),
        second.path: OcrFailure(second.path),
    })

    selected = _selector(engine).select([first, second])

    assert [f.path for f in selected] == [first.path]
    assert selected[0].text_coverage_score == 0.0
    assert selected[0].detected_page_number is None


def test_window_below_min_score_has_no_winner(make_score, fake_engine):
    engine = fake_engine()

    selected = _selector(engine).select([make_score(1, 0.5, 0.1), make_score(2, 1.0, 0.3)])

    assert selected == []
    assert engine.calls == []


def test_same_page_collapses_to_best_coverage(make_score):
    winners = [
        _selected(make_score, 1, 1.0, page=5, text="kort rad"),
        _selected(make_score, 2, 4.0, page=5, text="en betydligt längre rad med mer text"),
        _selected(make_score, 3, 7.0, page=6),
    ]

    kept = deduplicate_by_page(winners)

    assert [f.score.frame.ordinal for f in kept] == [2, 3]
    assert len({f.detected_page_number for f in kept}) == len(kept)


def test_duplicate_page_tie_keeps_earlier(make_score):
    winners = [_selected(make_score, 1, 1.0, page=9), _selected(make_score, 2, 4.0, page=9)]

    assert [f.score.frame.ordinal for f in deduplicate_by_page(winners)] == [1]


def test_pageless_winners_are_all_kept(make_score):
    winners = [_selected(make_score, 1, 1.0), _selected(make_score, 2, 4.0)]

    assert deduplicate_by_page(winners) == winners


def test_order_by_page(make_score):
    winners = [
        _selected(make_score, 1, 1.0, page=3),
        _selected(make_score, 2, 4.0, page=1),
        _selected(make_score, 3, 7.0, page=2),
    ]

    assert [f.detected_page_number for f in order_by_page(winners)] == [1, 2, 3]


def test_pageless_frames_follow_preceding_numbered_frame(make_score):
    cover = _selected(make_score, 1, 1.0)
    page_one = _selected(make_score, 2, 4.0, page=1)
    illustration = _selected(make_score, 3, 7.0)
    page_two = _selected(make_score, 4, 10.0, page=2)

    ordered = order_by_page([page_two, illustration, page_one, cover])

    assert ordered == [cover, page_one, illustration, page_two]


def test_selection_dedups_and_orders(make_score, fake_engine):
    """End to end: windows, OCR ranking, page dedup and page ordering"""
    scores = [make_score(i, t, 1.0) for i, t in enumerate([2.0, 4.0, 7.0, 10.0, 13.0], 1)]
    pages = {1: 2, 2: 1, 3: 1, 4: 3, 5: None}
    engine = fake_engine({
        s.path: OcrResult(_page_text(pages[s.frame.ordinal]), 85.0) for s in scores
    })

    selected = _selector(engine).select(scores)

    assert [f.detected_page_number for f in selected] == [1, 2, 3, None]
    numbers = [f.detected_page_number for f in selected if f.detected_page_number]
    assert len(numbers) == len(set(numbers))


def test_use_ocr_requires_engine(make_score):
    with pytest.raises(ValueError):
        _selector(use_ocr=True).select([make_score(1, 0.5, 1.0)])


def test_empty_input():
    assert _selector(use_ocr=False).select([]) == []


def test_cancel_before_start(make_score, fake_engine):
    cancel = threading.Event()
    cancel.set()
    engine = fake_engine()

    selected = _selector(engine).select([make_score(1, 0.5, 1.0)], cancel_event=cancel)

    assert selected == []
    assert engine.calls == []


def test_cancel_stops_scheduling_new_windows(make_score, fake_engine):
    cancel = threading.Event()
    engine = fake_engine(on_call=lambda path: cancel.set())
    scores = [make_score(1, 0.5, 1.0), make_score(2, 3.5, 1.0), make_score(3, 6.5, 1.0)]

    selected = _selector(engine).select(scores, cancel_event=cancel)

    assert [f.path for f in selected] == [scores[0].path]
    assert len(engine.calls) == 1


def test_ocr_concurrency_is_bounded(make_score, fake_engine):
    active = []
    peak = []
    lock = threading.Lock()

    def track(path):
        with lock:
            active.append(path)
            peak.append(len(active))
        time.sleep(0.05)
        with lock:
            active.remove(path)

    engine = fake_engine(on_call=track)
    scores = [make_score(i, 0.1 * i, 1.0 + i) for i in range(1, 6)]

    _selector(engine, ocr_workers=2, candidates_per_window=5).select(scores)

    assert len(engine.calls) == 5
    assert max(peak) <= 2


def test_select_best_frames_function(make_score):
    scores = [make_score(1, 1.0, 1.0), make_score(2, 2.0, 2.0)]

    selected = select_best_frames(scores, use_ocr=False)

    assert [f.score.frame.ordinal for f in selected] == [2]


def test_copy_best_frames(make_score, tmp_path):
    sources = []
    for i in (1, 2):
        path = tmp_path / f"frame_{i:04d}.png"
        path.write_bytes(f"frame {i}".encode())
        sources.append(SelectedFrame(score=make_score(i, i * 3.0, 1.0, path=str(path)),
                                     window_start=i * 3.0))

    copied = copy_best_frames(sources, str(tmp_path / "best"))

    assert [Path(p).name for p in copied] == ["best_0001.png", "best_0002.png"]
    assert Path(copied[1]).read_bytes() == b"frame 2"
