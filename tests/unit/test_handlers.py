"""
Unit tests for processor registry and invocation.
"""

import asyncio

import pytest

from optiqueue.constants import PROCESSOR_OPTIMIZE_IMAGE, ErrorKind
from optiqueue.errors import ProcessorError
from optiqueue.types.job import Failure, JobError, Success
from optiqueue.worker.handlers import (
    execute_processor,
    get_processor,
    list_processors,
    optimize_image,
    register_processor,
)


class TestProcessorRegistry:
    """Tests for the processor registry."""

    def test_builtin_processor_registered(self):
        """Test the image optimizer is registered at import."""
        assert PROCESSOR_OPTIMIZE_IMAGE in list_processors()
        assert get_processor(PROCESSOR_OPTIMIZE_IMAGE) is optimize_image

    def test_get_processor_not_exists(self):
        """Test getting a non-existent processor."""
        assert get_processor("nonexistent") is None

    def test_register_processor(self):
        """Test registering a custom processor."""

        @register_processor("test_uppercase")
        def uppercase(payload, job_id):
            return payload.upper()

        assert get_processor("test_uppercase") is uppercase
        assert uppercase("abc", "job-1") == "ABC"


class TestExecuteProcessor:
    """Tests for execute_processor."""

    @pytest.mark.asyncio
    async def test_async_processor_success(self):
        """Test coroutine processors are awaited."""

        async def processor(payload, job_id):
            await asyncio.sleep(0)
            return {"payload": payload, "job_id": job_id}

        outcome = await execute_processor(processor, 7, "job-1")

        assert outcome == Success({"payload": 7, "job_id": "job-1"})

    @pytest.mark.asyncio
    async def test_sync_processor_success(self):
        """Test plain callables run and their return value is captured."""
        outcome = await execute_processor(lambda payload, job_id: payload + 1, 1, "job-1")

        assert isinstance(outcome, Success)
        assert outcome.result == 2

    @pytest.mark.asyncio
    async def test_sync_processor_returning_awaitable(self):
        """Test awaitables returned by plain callables are awaited."""

        async def inner():
            return "inner"

        outcome = await execute_processor(lambda payload, job_id: inner(), None, "job-1")

        assert outcome == Success("inner")

    @pytest.mark.asyncio
    async def test_exception_becomes_failure(self):
        """Test a raised exception is captured with its traceback."""

        async def processor(payload, job_id):
            raise RuntimeError("Intentional failure")

        outcome = await execute_processor(processor, None, "job-1")

        assert isinstance(outcome, Failure)
        assert outcome.error.kind == ErrorKind.PROCESSOR_FAILURE
        assert outcome.error.message == "Intentional failure"
        assert "RuntimeError" in outcome.error.trace
        assert outcome.error.code is None

    @pytest.mark.asyncio
    async def test_processor_error_code_and_details(self):
        """Test ProcessorError attaches a code and details."""

        def processor(payload, job_id):
            raise ProcessorError("bad input", code="invalid_input", details={"field": "size"})

        outcome = await execute_processor(processor, None, "job-1")

        assert isinstance(outcome, Failure)
        assert outcome.error.code == "invalid_input"
        assert outcome.error.details == {"field": "size"}

    @pytest.mark.asyncio
    async def test_explicit_outcome_passes_through(self):
        """Test returned Success/Failure objects are not wrapped again."""
        failure = Failure(JobError(kind=ErrorKind.PROCESSOR_FAILURE, message="declined"))

        async def processor(payload, job_id):
            return failure

        assert await execute_processor(processor, None, "job-1") is failure

    @pytest.mark.asyncio
    async def test_exception_without_message(self):
        """Test the exception type is used when the message is empty."""

        async def processor(payload, job_id):
            raise KeyError()

        outcome = await execute_processor(processor, None, "job-1")

        assert outcome.error.message == "KeyError"
