import pytest

from live_coach.attribution import (
    AttributionWarning,
    SpeakerAttributor,
    calculate_confidence,
    format_speaker_results,
    speaker_label,
)
from live_coach.correlation import AudioSource, CorrelationQueue, QueueSnapshot


@pytest.fixture
def queue(clock):
    return CorrelationQueue(clock)


@pytest.fixture
def attributor(queue, clock, settings):
    return SpeakerAttributor(queue, clock, settings)


def test_three_local_then_two_remote(queue, attributor):
    for source in [AudioSource.LOCAL] * 3 + [AudioSource.REMOTE] * 2:
        queue.submit(source)

    speakers = [attributor.attribute("text").speaker for _ in range(5)]

    assert speakers == ["You", "You", "You", "Interviewer", "Interviewer"]
    assert len(queue) == 0


def test_empty_queue_falls_back_to_you(attributor):
    result = attributor.attribute("hello")
    assert result.speaker == "You"
    assert result.fallback
    assert AttributionWarning.FALLBACK_MODE in result.warnings
    # base 0.5, fallback -0.3, small queue +0.2
    assert result.confidence == pytest.approx(0.4)


def test_fixed_label_survives_stale_audio(queue, clock, settings):
    attributor = SpeakerAttributor(queue, clock, settings, fixed_label="Interviewer")
    queue.submit(AudioSource.REMOTE)
    clock.advance(2500)
    result = attributor.attribute("Tell me about a time you failed.")
    assert result.speaker == "Interviewer"
    assert result.fallback
    assert AttributionWarning.FALLBACK_MODE in result.warnings
    assert attributor.history == []


def test_fallback_keeps_last_speaker(queue, attributor):
    queue.submit(AudioSource.REMOTE)
    attributor.attribute("question")
    result = attributor.attribute("more of the question")
    assert result.speaker == "Interviewer"
    assert result.fallback
    # fallback labels are not added to the history
    assert attributor.history == ["Interviewer"]


def test_fresh_match_confidence(queue, attributor):
    queue.submit(AudioSource.LOCAL)
    result = attributor.attribute("hi")
    # base 0.5, small queue +0.2, recent chunk +0.1
    assert result.confidence == pytest.approx(0.8)
    assert result.latency_ms == 0
    assert result.warnings == []


def test_continuity_bonus_after_three_same_speakers(queue, attributor):
    for _ in range(3):
        queue.submit(AudioSource.LOCAL)
    results = [attributor.attribute("x") for _ in range(3)]
    assert results[-1].confidence == pytest.approx(1.0)


def test_queue_drift_lowers_confidence(queue, attributor):
    for _ in range(16):
        queue.submit(AudioSource.REMOTE)
    result = attributor.attribute("x")
    assert AttributionWarning.QUEUE_DRIFT in result.warnings
    assert result.queue_size == 16
    # base 0.5, backlog -0.2, recent chunk +0.1
    assert result.confidence == pytest.approx(0.4)


def test_old_chunk_is_evicted_before_matching(queue, attributor, clock):
    queue.submit(AudioSource.REMOTE)
    clock.advance(2500)
    queue.submit(AudioSource.LOCAL)
    result = attributor.attribute("x")
    assert result.speaker == "You"
    assert result.queue_age_ms == 2500


def test_rapid_speaker_changes_warn(queue, attributor):
    results = []
    for source in [AudioSource.LOCAL, AudioSource.REMOTE] * 2:
        queue.submit(source)
        results.append(attributor.attribute("x"))
    assert AttributionWarning.RAPID_CHANGES in results[-1].warnings
    assert AttributionWarning.RAPID_CHANGES not in results[-2].warnings


def test_metrics_accumulate(queue, attributor):
    attributor.attribute("fallback")
    queue.submit(AudioSource.LOCAL)
    attributor.attribute("match")
    metrics = attributor.metrics
    assert metrics.total_attributions == 2
    assert metrics.average_confidence == pytest.approx((0.4 + 0.8) / 2)
    assert metrics.warnings_by_type == {"FALLBACK_MODE": 1}


def test_reset_clears_history_metrics_and_queue(queue, attributor):
    queue.submit(AudioSource.REMOTE)
    queue.submit(AudioSource.REMOTE)
    attributor.attribute("x")
    attributor.reset()
    assert attributor.history == []
    assert attributor.metrics.total_attributions == 0
    assert len(queue) == 0


@pytest.mark.parametrize("size", [0, 2, 5, 12, 40])
@pytest.mark.parametrize("age", [None, 0.0, 800.0, 5000.0])
@pytest.mark.parametrize("variance", [None, 0.5, 9.0])
@pytest.mark.parametrize("fallback", [True, False])
def test_confidence_is_bounded(settings, size, age, variance, fallback):
    history = ["You", "You", "You"] if size % 2 else ["You", "Interviewer"]
    score = calculate_confidence(QueueSnapshot(size, age, variance), fallback, history, settings)
    assert 0.0 <= score <= 1.0


def test_profile_labels():
    assert speaker_label(1, "sales") == "Prospect"
    assert speaker_label(2, "unknown-profile") == "You"
    assert speaker_label(9, "exam") == "Speaker 9"


def test_format_speaker_results_skips_incomplete_entries():
    text = format_speaker_results(
        [
            {"transcript": "Hi there", "speakerId": 1},
            {"transcript": "", "speakerId": 2},
            {"transcript": "Hello", "speaker_id": 2},
        ],
        "interview",
    )
    assert text == "[Interviewer 1]: Hi there\n[You]: Hello\n"
