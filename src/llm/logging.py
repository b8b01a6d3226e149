"""
LLM API call logging system.

Provides context manager and logger class for tracking all LLM API calls,
including prompts, responses, tokens, timing, and errors.
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Optional
import logging
import time

logger = logging.getLogger(__name__)


class LLMApiCallLogger:
    """
    Logger for LLM API calls.

    Tracks all relevant information about an API call including prompts,
    responses, tokens, timing, and errors.
    """

    def __init__(
        self,
        call_type: str,
        model: str,
        task_name: Optional[str] = None,
        context_data: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize logger.

        Args:
            call_type: Type of API call ('structured_output')
            model: Model name ('gpt-5-nano', 'gpt-4o', etc.)
            task_name: Optional task name ('rumor_analysis')
            context_data: Optional metadata for filtering (news_id, title, etc.)
        """
        self.call_type = call_type
        self.model = model
        self.task_name = task_name
        self.context_data = context_data or {}

        # Timing
        self.started_at = datetime.utcnow()
        self.completed_at: Optional[datetime] = None
        self.duration_ms: Optional[int] = None

        # Prompts
        self.system_prompt: Optional[str] = None
        self.user_prompt: Optional[str] = None

        # Response
        self.response_raw: Optional[Dict] = None
        self.parsed_output: Optional[Dict] = None

        # Tokens
        self.input_tokens: Optional[int] = None
        self.output_tokens: Optional[int] = None
        self.total_tokens: Optional[int] = None

        # Status
        self.success: bool = True
        self.error_message: Optional[str] = None

    def set_prompts(self, system_prompt: str, user_prompt: str):
        """Set system and user prompts for structured outputs."""
        self.system_prompt = system_prompt
        self.user_prompt = user_prompt

    def set_response(self, response):
        """
        Set OpenAI API response and extract tokens.

        Args:
            response: OpenAI API response object (ParsedChatCompletion)
        """
        self.response_raw = response.model_dump(mode='json') if hasattr(response, 'model_dump') else dict(response)

        usage = getattr(response, 'usage', None)
        if usage:
            self.input_tokens = usage.prompt_tokens
            self.output_tokens = usage.completion_tokens
            self.total_tokens = usage.total_tokens

    def set_parsed_output(self, parsed_output: Dict):
        """Set parsed structured output (Pydantic model dump)."""
        self.parsed_output = parsed_output

    def _finish(self):
        self.completed_at = datetime.utcnow()
        self.duration_ms = int((self.completed_at - self.started_at).total_seconds() * 1000)

    def mark_success(self):
        """Mark call as successful and calculate duration."""
        self._finish()
        self.success = True

    def mark_error(self, error_message: str):
        """Mark call as failed with error message."""
        self._finish()
        self.success = False
        self.error_message = error_message

    def save(self, db=None):
        """
        Save log entry to database.

        Uses its own session so an ongoing pipeline transaction is never
        affected. Database locks are retried with exponential backoff; a log
        that cannot be written is reported and dropped.

        Args:
            db: Database to write to (defaults to a Database on DATABASE_PATH)
        """
        from db import Database
        from db.models import LLMApiCall
        from sqlalchemy.exc import OperationalError, SQLAlchemyError

        db = db or Database()
        session = db.get_session()

        max_retries = 3
        retry_delay = 0.1

        try:
            for attempt in range(max_retries):
                try:
                    session.add(LLMApiCall(
                        call_type=self.call_type,
                        task_name=self.task_name,
                        model=self.model,
                        started_at=self.started_at,
                        completed_at=self.completed_at,
                        duration_ms=self.duration_ms,
                        input_tokens=self.input_tokens,
                        output_tokens=self.output_tokens,
                        total_tokens=self.total_tokens,
                        system_prompt=self.system_prompt,
                        user_prompt=self.user_prompt,
                        response_raw=self.response_raw,
                        parsed_output=self.parsed_output,
                        success=self.success,
                        error_message=self.error_message,
                        context_data=self.context_data or None
                    ))
                    session.commit()
                    break

                except OperationalError:
                    session.rollback()
                    if attempt < max_retries - 1:
                        time.sleep(retry_delay)
                        retry_delay *= 2
                        continue
                    logger.warning("Failed to save LLM API call log after %d attempts (database locked)", max_retries)

                except SQLAlchemyError as e:
                    session.rollback()
                    logger.warning("Failed to save LLM API call log: %s", e)
                    break

        finally:
            session.close()


@contextmanager
def log_llm_api_call(
    call_type: str,
    model: str,
    task_name: Optional[str] = None,
    context_data: Optional[Dict[str, Any]] = None
):
    """
    Context manager for logging LLM API calls.

    Automatically handles success/error tracking and database persistence.

    Yields:
        LLMApiCallLogger instance

    Example:
        >>> with log_llm_api_call('structured_output', 'gpt-5-nano', 'rumor_analysis') as call_log:
        ...     call_log.set_prompts(system_prompt, user_prompt)
        ...     result = client.beta.chat.completions.parse(...)
        ...     call_log.set_response(result)
    """
    call_log = LLMApiCallLogger(call_type, model, task_name, context_data)

    try:
        yield call_log
        call_log.mark_success()
    except Exception as e:
        call_log.mark_error(str(e))
        raise
    finally:
        call_log.save()
