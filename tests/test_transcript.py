from __future__ import annotations

from visor.models import ChatRole
from visor.transcript import ChatTranscript


def test_chunks_coalesce_into_one_assistant_entry() -> None:
    transcript = ChatTranscript()
    for chunk in ("Hel", "lo ", "world"):
        transcript.stream_assistant(chunk)

    entries = transcript.snapshot()
    assert len(entries) == 1
    assert entries[0].role is ChatRole.ASSISTANT
    assert entries[0].content == "Hello world"
    assert entries[0].streaming is True


def test_status_closes_stream_and_next_chunk_starts_fresh() -> None:
    transcript = ChatTranscript()
    transcript.stream_assistant("first")
    transcript.append_status("Read file (pending)")
    transcript.stream_assistant("second")

    roles = [entry.role for entry in transcript.snapshot()]
    contents = [entry.content for entry in transcript.snapshot()]
    assert roles == [ChatRole.ASSISTANT, ChatRole.STATUS, ChatRole.ASSISTANT]
    assert contents == ["first", "Read file (pending)", "second"]
    assert transcript.snapshot()[0].streaming is False


def test_user_entry_closes_stream() -> None:
    transcript = ChatTranscript()
    transcript.stream_assistant("answer")
    transcript.append_user("next question")
    transcript.stream_assistant("another answer")

    assert [e.role for e in transcript.snapshot()] == [ChatRole.ASSISTANT, ChatRole.USER, ChatRole.ASSISTANT]


def test_end_stream_finalizes_tail() -> None:
    transcript = ChatTranscript()
    transcript.stream_assistant("done")
    transcript.end_stream()
    transcript.stream_assistant("new turn")

    entries = transcript.snapshot()
    assert [e.content for e in entries] == ["done", "new turn"]
    assert entries[0].streaming is False
    assert entries[1].streaming is True


def test_error_entries_are_prefixed_status() -> None:
    transcript = ChatTranscript()
    entry = transcript.append_error("rate limited")
    assert entry.role is ChatRole.STATUS
    assert entry.content == "Error: rate limited"


def test_snapshot_is_immutable_copy() -> None:
    transcript = ChatTranscript()
    transcript.stream_assistant("a")
    before = transcript.snapshot()
    transcript.stream_assistant("b")

    assert before[0].content == "a"
    assert transcript.snapshot()[0].content == "ab"
    assert before[0].id == transcript.snapshot()[0].id


def test_entry_ids_are_unique() -> None:
    transcript = ChatTranscript()
    transcript.append_user("q")
    transcript.stream_assistant("a")
    transcript.append_status("s")
    ids = [entry.id for entry in transcript.snapshot()]
    assert len(set(ids)) == 3
