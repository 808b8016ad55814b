import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from textbook_engine.ai.outline import OutlineGenerator
from textbook_engine.ai.section_writer import SectionWriter
from textbook_engine.api.deps import get_change_feed, get_job_dispatcher, get_outline_generator, get_section_writer, get_textbooks_repo
from textbook_engine.api.models import ProgressResponse, TextbookCreateRequest, TextbookCreateResponse, TextbookDocumentResponse, TextbookListResponse
from textbook_engine.config import Settings, get_settings
from textbook_engine.jobs.dispatch import JobDispatcher
from textbook_engine.jobs.runner import TextbookJobRunner
from textbook_engine.progress.events import ChangeFeed
from textbook_engine.services import textbooks as textbook_service
from textbook_engine.storage.textbooks_repo import TextbooksRepository

router = APIRouter()
logger = logging.getLogger("textbook_engine.api.routes.textbooks")


@router.post("", response_model=TextbookCreateResponse)
async def create_textbook(  # noqa: B008
  request: TextbookCreateRequest,
  settings: Settings = Depends(get_settings),  # noqa: B008
  dispatcher: JobDispatcher = Depends(get_job_dispatcher),  # noqa: B008
  repo: TextbooksRepository = Depends(get_textbooks_repo),  # noqa: B008
  outline_generator: OutlineGenerator = Depends(get_outline_generator),  # noqa: B008
  section_writer: SectionWriter = Depends(get_section_writer),  # noqa: B008
) -> TextbookCreateResponse:
  """Generate an outline and start writing the textbook in the background."""
  runner = TextbookJobRunner(repo, section_writer, pacing_seconds=settings.section_pacing_seconds)
  return await textbook_service.submit_textbook(request, settings, dispatcher, repo=repo, outline_generator=outline_generator, runner=runner)


@router.get("", response_model=TextbookListResponse)
async def list_textbooks(  # noqa: B008
  limit: int = Query(default=20, ge=1, le=100),
  offset: int = Query(default=0, ge=0),
  repo: TextbooksRepository = Depends(get_textbooks_repo),  # noqa: B008
) -> TextbookListResponse:
  """List generated textbooks, newest first."""
  return await textbook_service.list_textbooks(repo, limit=limit, offset=offset)


@router.get("/{textbook_id}", response_model=TextbookDocumentResponse)
async def get_textbook(  # noqa: B008
  textbook_id: str,
  repo: TextbooksRepository = Depends(get_textbooks_repo),  # noqa: B008
) -> TextbookDocumentResponse:
  """Fetch the textbook with every chapter and section written so far."""
  return await textbook_service.get_textbook_document(textbook_id, repo)


@router.get("/{textbook_id}/progress", response_model=ProgressResponse)
async def get_textbook_progress(  # noqa: B008
  textbook_id: str,
  repo: TextbooksRepository = Depends(get_textbooks_repo),  # noqa: B008
) -> ProgressResponse:
  """Return status, percentage, current section and estimated time remaining."""
  return await textbook_service.get_textbook_progress(textbook_id, repo)


@router.get("/{textbook_id}/events")
async def stream_textbook(  # noqa: B008
  textbook_id: str,
  settings: Settings = Depends(get_settings),  # noqa: B008
  repo: TextbooksRepository = Depends(get_textbooks_repo),  # noqa: B008
  feed: ChangeFeed = Depends(get_change_feed),  # noqa: B008
) -> StreamingResponse:
  """Stream textbook changes as Server-Sent Events."""
  await textbook_service.get_textbook_record(textbook_id, repo)
  stream = textbook_service.stream_textbook_events(textbook_id, repo, feed, timeout_seconds=settings.stream_timeout_seconds)
  return StreamingResponse(stream, media_type="text/event-stream", headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"})
