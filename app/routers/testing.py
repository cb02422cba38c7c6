"""Test runner API — kick off the suite in the background and poll its status (manager)."""

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from loguru import logger

from ..dependencies import require_manager
from ..models import Worker
from ..services import test_runner

router = APIRouter(tags=["testing"])


@router.post("/api/testing/run-tests", status_code=202)
async def run_tests(background: BackgroundTasks, user: Worker = Depends(require_manager)):
    if not test_runner.try_begin():
        raise HTTPException(409, "Tests already running")
    background.add_task(test_runner.run_tests)
    logger.info("Test run requested by {}", user.email)
    return {"status": "started"}


@router.get("/api/testing/run-tests")
def run_status(user: Worker = Depends(require_manager)):
    return test_runner.status()
