from image_transcoder.engine.metrics import metrics


def test_counters_and_reset():
    metrics.inc("a")
    metrics.inc("a", 2)
    assert metrics.count("a") == 3
    assert metrics.count("missing") == 0
    metrics.reset()
    assert metrics.snapshot() == {"counters": {}, "timings": {}}


def test_timed_records_even_on_error():
    try:
        with metrics.timed("work"):
            raise ValueError("x")
    except ValueError:
        pass
    with metrics.timed("work"):
        pass
    timings = metrics.snapshot()["timings"]["work"]
    assert len(timings) == 2
    assert all(t >= 0 for t in timings)


def test_snapshot_is_a_copy():
    metrics.inc("b")
    snap = metrics.snapshot()
    snap["counters"]["b"] = 100
    assert metrics.count("b") == 1


def test_engine_fallback_counters():
    from image_transcoder.engine import process_image

    data = b"\xff\xd8\xff\xe0 truncated jpeg"
    assert process_image(data, None, "WEBP") == data
    counters = metrics.snapshot()["counters"]
    assert counters["transcode.calls"] == 1
    assert counters["transcode.fallbacks"] == 1
    assert counters["transcode.fallback.decode"] == 1


def test_summary():
    assert metrics.summary("none")["count"] == 0
    metrics.observe("t", 0.5)
    metrics.observe("t", 1.5)
    s = metrics.summary("t")
    assert s["count"] == 2
    assert s["total"] == 2.0
    assert s["mean"] == 1.0
    assert s["max"] == 1.5
