import logging

from fastapi import APIRouter, Depends, Path, Query, Response, status

from chronicle.ai.synthesizer import ContentSynthesizer
from chronicle.api.deps import get_content_synthesizer, get_jobs_repo
from chronicle.api.models import AddEntryRequest, AddEntryResponse, BookEntryModel, BookListItem, BookListResponse, BookResponse, CreateBookRequest, CreateBookResponse, EntryResponse, JobResponse
from chronicle.core.security import Owner, get_current_owner
from chronicle.jobs.models import MAX_ADDITIONAL_ENTRIES
from chronicle.services import books as book_service
from chronicle.storage.jobs_repo import GenerationJobsRepository

router = APIRouter()
logger = logging.getLogger("chronicle.api.routes.books")


@router.post("", response_model=CreateBookResponse, status_code=status.HTTP_201_CREATED)
async def create_book(  # noqa: B008
  request: CreateBookRequest,
  owner: Owner = Depends(get_current_owner),  # noqa: B008
  repo: GenerationJobsRepository = Depends(get_jobs_repo),  # noqa: B008
) -> CreateBookResponse:
  """Store a full-year book and queue its generation job."""
  book, job = await book_service.create_book(repo, owner_id=owner.owner_id, owner_email=owner.email, preferences=request.to_preferences())
  return CreateBookResponse(book_id=book.book_id, job_id=job.job_id)


@router.get("", response_model=BookListResponse)
async def list_books(  # noqa: B008
  limit: int = Query(default=50, ge=1, le=200),  # noqa: B008
  owner: Owner = Depends(get_current_owner),  # noqa: B008
  repo: GenerationJobsRepository = Depends(get_jobs_repo),  # noqa: B008
) -> BookListResponse:
  """List the caller's books newest first, without their entries."""
  books = await book_service.list_books(repo, owner_id=owner.owner_id, limit=limit)
  return BookListResponse(books=[BookListItem.from_record(book) for book in books])


@router.get("/{book_id}", response_model=BookResponse)
async def get_book(  # noqa: B008
  book_id: str,
  owner: Owner = Depends(get_current_owner),  # noqa: B008
  repo: GenerationJobsRepository = Depends(get_jobs_repo),  # noqa: B008
) -> BookResponse:
  """Fetch a book owned by the caller."""
  book = await book_service.get_owned_book(repo, book_id, owner_id=owner.owner_id)
  return BookResponse.from_record(book)


@router.delete("/{book_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_book(  # noqa: B008
  book_id: str,
  owner: Owner = Depends(get_current_owner),  # noqa: B008
  repo: GenerationJobsRepository = Depends(get_jobs_repo),  # noqa: B008
) -> Response:
  """Delete a book and its jobs once generation is no longer running."""
  await book_service.delete_book(repo, book_id, owner_id=owner.owner_id)
  return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{book_id}/regenerate", response_model=JobResponse, status_code=status.HTTP_201_CREATED)
async def regenerate_book(  # noqa: B008
  book_id: str,
  owner: Owner = Depends(get_current_owner),  # noqa: B008
  repo: GenerationJobsRepository = Depends(get_jobs_repo),  # noqa: B008
) -> JobResponse:
  """Start a fresh generation job for a book whose previous job failed."""
  job = await book_service.regenerate_book(repo, book_id, owner_id=owner.owner_id)
  return JobResponse.from_record(job)


@router.post("/{book_id}/entries", response_model=AddEntryResponse, status_code=status.HTTP_201_CREATED)
async def add_entry(  # noqa: B008
  book_id: str,
  request: AddEntryRequest,
  owner: Owner = Depends(get_current_owner),  # noqa: B008
  repo: GenerationJobsRepository = Depends(get_jobs_repo),  # noqa: B008
  synthesizer: ContentSynthesizer = Depends(get_content_synthesizer),  # noqa: B008
) -> AddEntryResponse:
  """Generate a page for a day the finished book does not cover yet."""
  entry, index, book = await book_service.add_entry(repo, synthesizer, book_id, owner_id=owner.owner_id, month=str(request.month), day=request.day)
  return AddEntryResponse(
    entry=BookEntryModel.from_entry(entry),
    index=index,
    additional_entry_count=book.additional_entry_count,
    remaining=MAX_ADDITIONAL_ENTRIES - book.additional_entry_count,
  )


@router.post("/{book_id}/entries/{index}/regenerate", response_model=EntryResponse)
async def regenerate_entry(  # noqa: B008
  book_id: str,
  index: int = Path(ge=0),  # noqa: B008
  owner: Owner = Depends(get_current_owner),  # noqa: B008
  repo: GenerationJobsRepository = Depends(get_jobs_repo),  # noqa: B008
  synthesizer: ContentSynthesizer = Depends(get_content_synthesizer),  # noqa: B008
) -> EntryResponse:
  """Replace one page of a finished book with a different story for the same day."""
  entry = await book_service.regenerate_entry(repo, synthesizer, book_id, index, owner_id=owner.owner_id)
  return EntryResponse(entry=BookEntryModel.from_entry(entry), index=index)
