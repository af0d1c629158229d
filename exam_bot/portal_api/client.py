"""Exam portal API client, a thin async wrapper over aiohttp."""
import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from . import endpoints
from .exceptions import (
    AuthenticationError, DataNotFoundError, InvalidResponseError,
    NetworkError, PortalAPIError, RateLimitError,
)
from .models import (
    Dashboard, FinalResult, Question, QuestionRef, RestoredAnswer,
    dashboard_from_payload, final_result_from_payload, question_from_payload,
    question_ref_from_payload, restored_answer_from_payload,
)

logger = logging.getLogger(__name__)


class PortalClient:
    """Async client for the exam portal REST API."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 30,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Args:
            base_url: Portal root, e.g. http://portal.example:3001
            token: Student access token issued by the portal
            timeout: Total timeout of one request in seconds
            session: Shared aiohttp session; created on first use if omitted
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "PortalClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers=endpoints.DEFAULT_HEADERS,
                timeout=self.timeout,
            )
            self._owns_session = True
        return self._session

    async def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Perform one request and return the decoded JSON envelope.

        Raises:
            AuthenticationError: 401/403
            DataNotFoundError: 404
            RateLimitError: 429
            NetworkError: other HTTP errors, connection problems, timeouts
            InvalidResponseError: body is not a JSON object or reports failure
        """
        url = f"{self.base_url}{path}"
        headers = {endpoints.TOKEN_HEADER: self.token or ""}
        session = self._get_session()

        try:
            async with session.request(
                method, url, params=params, json=json, headers=headers
            ) as resp:
                if resp.status in (401, 403):
                    raise AuthenticationError("Access token is invalid or expired")
                if resp.status == 404:
                    raise DataNotFoundError(f"Not found: {path}")
                if resp.status == 429:
                    raise RateLimitError("Too many requests to the portal")
                if resp.status >= 400:
                    raise NetworkError(f"HTTP {resp.status} from {path}")

                try:
                    data = await resp.json(content_type=None)
                except ValueError as e:
                    raise InvalidResponseError(f"Response of {path} is not JSON: {e}")
        except PortalAPIError:
            raise
        except asyncio.TimeoutError:
            logger.error("Timeout calling %s %s", method, path)
            raise NetworkError(f"Portal did not answer in time: {path}")
        except aiohttp.ClientError as e:
            logger.error("Error calling %s %s: %s", method, path, e)
            raise NetworkError(f"Portal request failed: {e}")

        if not isinstance(data, dict):
            raise InvalidResponseError(f"Unexpected response of {path}: {type(data).__name__}")
        if data.get("type") is False:
            raise InvalidResponseError(data.get("message") or f"Portal rejected {path}")

        return data

    async def get_dashboard(self) -> Dashboard:
        """Get student profile with open and completed tests."""
        data = await self._request("GET", endpoints.DASHBOARD)
        payload = data.get("data")
        if not isinstance(payload, dict):
            raise InvalidResponseError("Dashboard response without data")
        return dashboard_from_payload(payload)

    async def start_test(self, test_id: int) -> str:
        """
        Open the server-side attempt record. Must be called before the session loads.

        Returns:
            Portal message, empty if none
        """
        data = await self._request("POST", endpoints.START_TEST, json={"test_id": test_id})
        return data.get("message") or ""

    async def get_question_refs(self, test_id: int) -> List[QuestionRef]:
        """Ordered list of questions assigned to this attempt."""
        data = await self._request(
            "GET", endpoints.QUESTION_REFS, params={"test_id": str(test_id)}
        )
        return [question_ref_from_payload(raw) for raw in data.get("submissions") or []]

    async def get_question(self, test_id: int, question_id: int) -> Question:
        """Full content of one question."""
        data = await self._request(
            "GET",
            endpoints.QUESTION,
            params={"test_id": str(test_id), "question_id": str(question_id)},
        )
        payload = data.get("question")
        if not isinstance(payload, dict):
            raise InvalidResponseError(f"Question {question_id} missing in response")
        return question_from_payload(payload)

    async def get_restoration_state(self, test_id: int) -> List[RestoredAnswer]:
        """Answers recorded by the server in earlier sittings of this attempt."""
        data = await self._request(
            "GET", endpoints.RESTORATION_STATE, params={"test_id": str(test_id)}
        )
        return [restored_answer_from_payload(raw) for raw in data.get("questions") or []]

    async def upsert_answer(self, test_id: int, answer: Dict[str, Any]) -> None:
        """
        Create or replace the answer of one question.

        Args:
            test_id: Test ID
            answer: {"question_id": ..., "option_id": id | [ids] | None, "text": str | None}
        """
        await self._request(
            "POST",
            endpoints.SUBMIT_ANSWERS,
            json={"test_id": test_id, "answers": [answer]},
        )

    async def submit_final_result(self, test_id: int) -> FinalResult:
        """Ask the portal to score the attempt. Safe to repeat."""
        data = await self._request(
            "GET", endpoints.FINAL_RESULT, params={"test_id": str(test_id)}
        )
        payload = data.get("result")
        if not isinstance(payload, dict):
            raise InvalidResponseError("Final result missing in response")
        return final_result_from_payload(payload)

    async def close(self) -> None:
        """Close the underlying HTTP session if this client created it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
