import logging

from fastapi import APIRouter, Depends, Query, Response, status

from chronicle.api.deps import get_generation_driver, get_jobs_repo
from chronicle.api.models import JobListResponse, JobResponse, TickResponse
from chronicle.core.security import Owner, get_current_owner
from chronicle.jobs.driver import GenerationDriver
from chronicle.services import books as book_service
from chronicle.storage.jobs_repo import GenerationJobsRepository

router = APIRouter()
logger = logging.getLogger("chronicle.api.routes.jobs")


@router.get("", response_model=JobListResponse | JobResponse)
async def list_jobs(  # noqa: B008
  book_id: str | None = Query(default=None, description="Return the latest job for this book instead of the full list."),  # noqa: B008
  limit: int = Query(default=50, ge=1, le=200),  # noqa: B008
  owner: Owner = Depends(get_current_owner),  # noqa: B008
  repo: GenerationJobsRepository = Depends(get_jobs_repo),  # noqa: B008
) -> JobListResponse | JobResponse:
  """List the caller's jobs newest first, or the latest job for one book."""
  if book_id is not None:
    job, book = await book_service.get_job_for_book(repo, book_id, owner_id=owner.owner_id)
    return JobResponse.from_record(job, book)

  pairs = await book_service.list_jobs_with_books(repo, owner_id=owner.owner_id, limit=limit)
  return JobListResponse(jobs=[JobResponse.from_record(job, book) for job, book in pairs])


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(  # noqa: B008
  job_id: str,
  owner: Owner = Depends(get_current_owner),  # noqa: B008
  repo: GenerationJobsRepository = Depends(get_jobs_repo),  # noqa: B008
) -> JobResponse:
  """Read job status without doing any work."""
  job = await book_service.get_owned_job(repo, job_id, owner_id=owner.owner_id)
  book = await repo.get_book(job.book_id)
  return JobResponse.from_record(job, book)


@router.post("/{job_id}/advance", response_model=TickResponse, response_model_exclude_none=True)
async def advance_job(  # noqa: B008
  job_id: str,
  owner: Owner = Depends(get_current_owner),  # noqa: B008
  driver: GenerationDriver = Depends(get_generation_driver),  # noqa: B008
) -> TickResponse:
  """Advance the job by at most one month, or finalize it."""
  result = await driver.advance_job(job_id, owner.owner_id)
  logger.info("Advance job_id=%s status=%s progress=%s", job_id, result.status, result.progress)
  return TickResponse.from_result(result)


@router.delete("/{job_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_job(  # noqa: B008
  job_id: str,
  owner: Owner = Depends(get_current_owner),  # noqa: B008
  repo: GenerationJobsRepository = Depends(get_jobs_repo),  # noqa: B008
) -> Response:
  """Delete a job that failed permanently."""
  await book_service.delete_failed_job(repo, job_id, owner_id=owner.owner_id)
  return Response(status_code=status.HTTP_204_NO_CONTENT)
