from __future__ import annotations

import json

import msgspec
import pytest

from textbook_engine.jobs.models import TextbookRecord, record_to_row
from textbook_engine.progress.assembler import TextbookAssembler
from textbook_engine.progress.events import ChangeEvent, ChangeFeed, encode_event
from textbook_engine.services.textbooks import stream_textbook_events
from textbook_engine.storage.memory_textbooks_repo import InMemoryTextbooksRepository
from textbook_engine.storage.notifying_repo import NotifyingTextbooksRepository

_OUTLINE = {"title": "Graphs", "description": None, "chapters": [{"title": "Basics", "sections": [{"title": "Vertices"}, {"title": "Edges"}]}]}


def _textbook(textbook_id: str = "tb-1") -> TextbookRecord:
  return TextbookRecord(
    textbook_id=textbook_id,
    title="Graphs",
    prompt="Intro to graph theory",
    status="generating",
    completion_percentage=0,
    total_sections=2,
    created_at="2026-01-01T00:00:00Z",
    updated_at="2026-01-01T00:00:00Z",
    outline=_OUTLINE,
  )


def _drain(queue) -> list[ChangeEvent]:
  events = []
  while not queue.empty():
    events.append(queue.get_nowait())
  return events


def _parse_frames(frames: list[str]) -> list[tuple[str, dict]]:
  parsed = []
  for frame in frames:
    event_line, data_line = frame.strip().split("\n")
    parsed.append((event_line.removeprefix("event: "), json.loads(data_line.removeprefix("data: "))))
  return parsed


@pytest.mark.anyio
async def test_feed_delivers_only_to_matching_subscribers() -> None:
  feed = ChangeFeed()

  async with feed.subscribe("tb-1") as queue:
    feed.publish(table="textbooks", op="update", textbook_id="tb-1", row={"id": "tb-1"})
    feed.publish(table="textbooks", op="update", textbook_id="tb-2", row={"id": "tb-2"})
    events = _drain(queue)
    assert feed.subscriber_count("tb-1") == 1

  assert [event.textbook_id for event in events] == ["tb-1"]
  assert feed.subscriber_count("tb-1") == 0
  decoded = msgspec.json.decode(encode_event(events[0]), type=ChangeEvent)
  assert decoded == events[0]


@pytest.mark.anyio
async def test_notifying_repo_publishes_every_write_in_order() -> None:
  feed = ChangeFeed()
  repo = NotifyingTextbooksRepository(InMemoryTextbooksRepository(), feed)

  async with feed.subscribe("tb-1") as queue:
    await repo.create_textbook(_textbook())
    chapter = await repo.create_chapter(textbook_id="tb-1", title="Basics", position=0)
    await repo.create_section(chapter_id=chapter.chapter_id, title="Vertices", content="V", position=0)
    await repo.update_textbook("tb-1", completion_percentage=50)
    events = _drain(queue)

  assert [(event.table, event.op) for event in events] == [("textbooks", "insert"), ("chapters", "insert"), ("sections", "insert"), ("textbooks", "update")]
  assert events[2].textbook_id == "tb-1"
  assert events[3].row["completion_percentage"] == 50
  assert [event.sequence for event in events] == sorted(event.sequence for event in events)


@pytest.mark.anyio
async def test_chapter_owners_are_forgotten_once_the_textbook_finishes() -> None:
  feed = ChangeFeed()
  repo = NotifyingTextbooksRepository(InMemoryTextbooksRepository(), feed)
  await repo.create_textbook(_textbook())
  await repo.create_chapter(textbook_id="tb-1", title="Basics", position=0)
  await repo.create_chapter(textbook_id="tb-1", title="Paths", position=1)
  assert len(repo._chapter_owners) == 2

  await repo.update_textbook("tb-1", completion_percentage=50)
  assert len(repo._chapter_owners) == 2

  await repo.update_textbook("tb-1", status="completed", completion_percentage=100)
  assert repo._chapter_owners == {}

  await repo.list_chapters("tb-1")
  assert repo._chapter_owners == {}


@pytest.mark.anyio
async def test_assembler_folds_events_idempotently() -> None:
  feed = ChangeFeed()
  repo = NotifyingTextbooksRepository(InMemoryTextbooksRepository(), feed)
  await repo.create_textbook(_textbook())
  assembler = TextbookAssembler.from_state(_textbook(), [], [])

  async with feed.subscribe("tb-1") as queue:
    chapter = await repo.create_chapter(textbook_id="tb-1", title="Basics", position=0)
    await repo.create_section(chapter_id=chapter.chapter_id, title="Vertices", content="V", position=0)
    events = _drain(queue)

  assert all(assembler.apply(event) for event in events)
  assert not any(assembler.apply(event) for event in events)

  document = assembler.document()
  sections = document.chapters[0].sections
  assert [(section.title, section.is_generating) for section in sections] == [("Vertices", False), ("Edges", True)]
  assert assembler.progress().currently_generating.section_title == "Edges"


def test_section_before_its_chapter_is_held_back() -> None:
  assembler = TextbookAssembler.from_state(_textbook(), [], [])
  section_event = ChangeEvent(table="sections", op="insert", textbook_id="tb-1", row={"id": "s-1", "chapter_id": "ch-1", "title": "Vertices", "content": "V", "position": 0, "created_at": "2026-01-01T00:00:02Z"}, sequence=2)
  chapter_event = ChangeEvent(table="chapters", op="insert", textbook_id="tb-1", row={"id": "ch-1", "textbook_id": "tb-1", "title": "Basics", "position": 0, "created_at": "2026-01-01T00:00:01Z"}, sequence=1)

  assembler.apply(section_event)
  assert assembler.document().chapters == ()

  assembler.apply(chapter_event)
  assert assembler.document().chapters[0].sections[0].content == "V"


def test_stale_textbook_updates_do_not_regress_state() -> None:
  assembler = TextbookAssembler.from_state(_textbook(), [], [])
  newer = record_to_row(TextbookRecord(**{**_textbook().__dict__, "completion_percentage": 50}))
  older = record_to_row(TextbookRecord(**{**_textbook().__dict__, "completion_percentage": 25}))
  finished = record_to_row(TextbookRecord(**{**_textbook().__dict__, "status": "completed", "completion_percentage": 100}))

  assembler.apply(ChangeEvent(table="textbooks", op="update", textbook_id="tb-1", row=newer, sequence=3))
  assembler.apply(ChangeEvent(table="textbooks", op="update", textbook_id="tb-1", row=older, sequence=2))
  assert assembler.textbook.completion_percentage == 50

  assembler.apply(ChangeEvent(table="textbooks", op="update", textbook_id="tb-1", row=finished, sequence=4))
  assert not assembler.apply(ChangeEvent(table="textbooks", op="update", textbook_id="tb-1", row=newer, sequence=3))
  assert assembler.is_terminal
  assert assembler.document().chapters == ()


@pytest.mark.anyio
async def test_stream_emits_snapshot_changes_and_stops_when_terminal() -> None:
  feed = ChangeFeed()
  repo = NotifyingTextbooksRepository(InMemoryTextbooksRepository(), feed)
  await repo.create_textbook(_textbook())
  stream = stream_textbook_events("tb-1", repo, feed, timeout_seconds=5)

  frames = [await anext(stream)]
  chapter = await repo.create_chapter(textbook_id="tb-1", title="Basics", position=0)
  await repo.create_section(chapter_id=chapter.chapter_id, title="Vertices", content="V", position=0)
  await repo.update_textbook("tb-1", status="completed", completion_percentage=100)
  frames.extend([frame async for frame in stream])

  parsed = _parse_frames(frames)
  assert [name for name, _ in parsed] == ["snapshot", "change", "progress", "change", "progress", "change", "progress"]
  assert parsed[0][1]["progress"]["completion_percentage"] == 0
  assert (parsed[1][1]["table"], parsed[1][1]["op"], parsed[1][1]["row"]["title"]) == ("chapters", "insert", "Basics")
  assert parsed[-1][1]["status"] == "completed"
  assert feed.subscriber_count("tb-1") == 0


@pytest.mark.anyio
async def test_stream_times_out_without_touching_the_job() -> None:
  feed = ChangeFeed()
  repo = NotifyingTextbooksRepository(InMemoryTextbooksRepository(), feed)
  await repo.create_textbook(_textbook())

  frames = [frame async for frame in stream_textbook_events("tb-1", repo, feed, timeout_seconds=0.01)]

  assert [name for name, _ in _parse_frames(frames)] == ["snapshot", "timeout"]
  assert (await repo.get_textbook("tb-1")).status == "generating"
