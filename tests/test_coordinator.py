import pytest

from live_coach import session_store
from live_coach.config import Settings
from live_coach.correlation import AudioSource
from live_coach.errors import SessionStartError
from live_coach.retrieval import RetrievalResult, Retriever
from live_coach.sessions import AudioPayload, SessionEvent, SessionEventKind, SessionRole
from live_coach.sessions.coordinator import DualSessionCoordinator
from live_coach.sessions.retry import RetryStrategy

PCM = b"\x00\x01" * 160


class StubRetriever(Retriever):
    def __init__(self) -> None:
        self.queries: list[str] = []

    async def retrieve(self, query, session_id, options=None):
        self.queries.append(query)
        return RetrievalResult(used_rag=True, context="You mentioned a Kafka migration earlier.", score=0.9)


@pytest.fixture
def coordinator(clock, settings, sink, session_factory):
    return DualSessionCoordinator(
        "sess1", sink=sink, clock=clock, settings=settings, session_factory=session_factory
    )


@pytest.fixture
async def started(coordinator, session_factory):
    await coordinator.start("interview", "en-US")
    return coordinator, session_factory.latest(SessionRole.REMOTE), session_factory.latest(SessionRole.LOCAL)


async def test_start_opens_transcription_and_coaching_sessions(started, sink):
    coordinator, remote, local = started
    assert remote.connected and local.connected
    assert not remote.config.generate
    assert remote.config.tools == []
    assert local.config.generate
    assert "[Interviewer]" in local.config.system_prompt
    assert coordinator.active
    assert sink.statuses == ["Live"]


async def test_audio_is_routed_by_source(started, clock):
    coordinator, remote, local = started
    assert coordinator.submit_audio(AudioSource.REMOTE, PCM) is not None
    await clock.settle()

    assert len(coordinator.queue_for(SessionRole.REMOTE)) == 1
    assert len(coordinator.queue_for(SessionRole.LOCAL)) == 0
    assert [type(p) for p in remote.sent] == [AudioPayload]
    assert local.sent == []


async def test_remote_transcript_is_bridged_into_coaching_session(started, sink, clock):
    coordinator, remote, local = started
    coordinator.submit_audio(AudioSource.REMOTE, PCM)
    remote.emit(SessionEventKind.TRANSCRIPT, "Tell me about yourself.")

    assert sink.transcripts == [("Interviewer", "Tell me about yourself.")]
    assert sink.latencies == [0.0]

    clock.advance(500)
    await clock.settle()
    assert local.texts == ["<context>\n[Interviewer]: Tell me about yourself.\n</context>"]
    assert remote.texts == []


async def test_remote_transcript_after_stale_audio_is_still_interviewer(started, sink, clock):
    coordinator, remote, local = started
    coordinator.submit_audio(AudioSource.REMOTE, PCM)
    clock.advance(2500)
    remote.emit(SessionEventKind.TRANSCRIPT, "Tell me about a time you failed.")

    assert sink.transcripts == [("Interviewer", "Tell me about a time you failed.")]
    assert coordinator.pipeline.conversation.turn_history == []
    clock.advance(500)
    await clock.settle()
    assert local.texts == ["<context>\n[Interviewer]: Tell me about a time you failed.\n</context>"]


async def test_local_transcript_without_audio_is_you(started, sink):
    coordinator, remote, local = started
    coordinator.submit_audio(AudioSource.REMOTE, PCM)
    remote.emit(SessionEventKind.TRANSCRIPT, "Why this company?")
    local.emit(SessionEventKind.TRANSCRIPT, "Because I like the product.")
    assert sink.transcripts[-1] == ("You", "Because I like the product.")


async def test_long_remote_question_sends_relevant_history(clock, settings, sink, session_factory):
    retriever = StubRetriever()
    coordinator = DualSessionCoordinator(
        "sess1", sink=sink, retriever=retriever, clock=clock, settings=settings, session_factory=session_factory
    )
    await coordinator.start()
    remote = session_factory.latest(SessionRole.REMOTE)
    local = session_factory.latest(SessionRole.LOCAL)

    coordinator.submit_audio(AudioSource.REMOTE, PCM)
    remote.emit(SessionEventKind.TRANSCRIPT, "could you describe a large migration project you led at your last company")
    await clock.settle()

    assert len(retriever.queries) == 1
    assert local.texts == ["<relevantHistory>\nYou mentioned a Kafka migration earlier.\n</relevantHistory>"]


async def test_local_transcript_is_attributed_to_you(started, sink):
    coordinator, remote, local = started
    coordinator.submit_audio(AudioSource.LOCAL, PCM)
    local.emit(SessionEventKind.TRANSCRIPT, "I am a backend engineer.")
    assert sink.transcripts == [("You", "I am a backend engineer.")]


async def test_diarised_transcript_uses_profile_labels(started, sink):
    coordinator, remote, local = started
    coordinator.submit_audio(AudioSource.REMOTE, PCM)
    coordinator.dispatch(
        SessionEvent(
            SessionEventKind.TRANSCRIPT,
            SessionRole.REMOTE,
            results=[{"transcript": "Walk me through your resume.", "speakerId": 1}, {"speakerId": 2}],
        )
    )
    assert sink.transcripts == [("Interviewer", "[Interviewer 1]: Walk me through your resume.")]


async def test_start_failure_closes_both_sessions(coordinator, session_factory):
    session_factory.fail_roles = {SessionRole.LOCAL}
    with pytest.raises(SessionStartError):
        await coordinator.start()

    remote = session_factory.latest(SessionRole.REMOTE)
    local = session_factory.latest(SessionRole.LOCAL)
    assert remote.close_calls == 1
    assert local.close_calls == 1
    assert coordinator.pair is None
    assert not coordinator.active
    assert coordinator.submit_audio(AudioSource.LOCAL, PCM) is None


async def test_close_resets_and_reconnects_with_recent_context(started, session_factory, sink, clock):
    coordinator, remote, local = started
    coordinator.submit_audio(AudioSource.LOCAL, PCM)
    local.emit(SessionEventKind.TRANSCRIPT, "I build data pipelines.")
    coordinator.submit_audio(AudioSource.LOCAL, PCM)
    local.emit(SessionEventKind.TRANSCRIPT, "and also")
    coordinator.submit_audio(AudioSource.REMOTE, PCM)

    remote.emit(SessionEventKind.CLOSE, reason="server going away")

    assert not coordinator.active
    assert coordinator.pipeline.buffer.text == ""
    assert coordinator.pipeline.scheduler.pending == ""
    assert len(coordinator.queue_for(SessionRole.REMOTE)) == 0
    assert coordinator.submit_audio(AudioSource.LOCAL, PCM) is None
    await clock.settle()
    assert remote.close_calls == 1 and local.close_calls == 1

    # Events from the torn-down pair are ignored.
    local.emit(SessionEventKind.TRANSCRIPT, "late words.")
    assert ("You", "late words.") not in sink.transcripts

    clock.advance(2000)
    await clock.settle()

    assert len(session_factory.created) == 4
    assert coordinator.active
    new_local = session_factory.latest(SessionRole.LOCAL)
    assert new_local is not local
    assert new_local.texts[0].startswith("[Connection restored - Recent context]")
    assert "1. [You]: I build data pipelines." in new_local.texts[0]
    assert "Reconnected" in sink.statuses


async def test_invalid_api_key_close_does_not_reconnect(started, session_factory, sink, clock):
    coordinator, remote, local = started
    local.emit(SessionEventKind.CLOSE, reason="API key not valid. Please pass a valid API key.")
    clock.advance(60_000)
    await clock.settle()
    assert len(session_factory.created) == 2
    assert "Session closed: Invalid API key" in sink.statuses


async def test_reconnect_gives_up_after_three_attempts(started, session_factory, sink, clock):
    coordinator, remote, local = started
    session_factory.fail_roles = {SessionRole.REMOTE}
    remote.emit(SessionEventKind.CLOSE, reason="server restart")
    for delay in (2000, 4000, 8000):
        clock.advance(delay)
        await clock.settle()
    clock.advance(60_000)
    await clock.settle()
    assert len([s for s in session_factory.created if s.role is SessionRole.REMOTE]) == 4
    assert sink.statuses[-1] == "Reconnection failed"
    assert not coordinator.active


async def test_generation_is_shown_tracked_and_stored(started, sink):
    coordinator, remote, local = started
    session_store.ensure_session("sess1", "interview", "en-US")
    try:
        coordinator.submit_audio(AudioSource.REMOTE, PCM)
        remote.emit(SessionEventKind.TRANSCRIPT, "Why do you want this job?")
        local.emit(SessionEventKind.GENERATION_CHUNK, "Say: ")
        local.emit(SessionEventKind.GENERATION_CHUNK, "I love building reliable systems.")
        local.emit(SessionEventKind.GENERATION_COMPLETE)

        assert sink.responses[-1] == "Say: I love building reliable systems."
        suggestion = coordinator.pipeline.conversation.current_suggestion
        assert suggestion.text == "Say: I love building reliable systems."
        history = session_store.get_session("sess1")["history"]
        assert history[0]["transcription"] == "Why do you want this job?"
        assert history[0]["ai_response"] == "Say: I love building reliable systems."
    finally:
        session_store.delete_session("sess1")


async def test_interruption_clears_buffers(started):
    coordinator, remote, local = started
    local.emit(SessionEventKind.TRANSCRIPT, "so what I")
    local.emit(SessionEventKind.GENERATION_CHUNK, "Say")
    local.emit(SessionEventKind.INTERRUPTED)
    assert coordinator.pipeline.buffer.text == ""
    assert coordinator.pipeline.on_generation_complete() == ""


async def test_stop_closes_sessions_without_reconnecting(started, session_factory, clock):
    coordinator, remote, local = started
    await coordinator.stop()
    clock.advance(60_000)
    await clock.settle()
    assert remote.close_calls == 1 and local.close_calls == 1
    assert len(session_factory.created) == 2
    assert not coordinator.active


async def test_single_session_mode_attributes_from_shared_queue(clock, sink, session_factory):
    settings = Settings(DUAL_SESSION_ENABLED=False, CLOUDFLARE_ACCOUNT_ID="a", CLOUDFLARE_API_TOKEN="t")
    coordinator = DualSessionCoordinator(
        "single", sink=sink, clock=clock, settings=settings, session_factory=session_factory
    )
    await coordinator.start()
    assert [s.role for s in session_factory.created] == [SessionRole.SINGLE]
    session = session_factory.created[0]

    coordinator.submit_audio(AudioSource.LOCAL, PCM)
    coordinator.submit_audio(AudioSource.REMOTE, PCM)
    await clock.settle()
    assert len(session.sent) == 2

    session.emit(SessionEventKind.TRANSCRIPT, "Hello there.")
    session.emit(SessionEventKind.TRANSCRIPT, "How are you today?")
    assert sink.transcripts == [("You", "Hello there."), ("Interviewer", "How are you today?")]


def test_retry_strategy_backoff():
    strategy = RetryStrategy(max_attempts=3, base_delay_ms=2000, max_delay_ms=10_000)
    delays = []
    while strategy.should_retry():
        delays.append(strategy.next_delay())
    assert delays == [2000, 4000, 8000]
    strategy.reset()
    strategy.max_attempts = 5
    assert [strategy.next_delay() for _ in range(5)] == [2000, 4000, 8000, 10_000, 10_000]
