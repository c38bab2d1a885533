"""
HTTP client for the external question bank.
Any non-2xx answer, network error or unusable payload is raised as SourceUnavailable.
A malformed record inside a question list is dropped instead.
"""
import logging
import os
import time
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests
from dotenv import load_dotenv

from barprep.errors import SourceUnavailable
from barprep.models import Question

load_dotenv()

logger = logging.getLogger(__name__)

QUESTION_API_URL = os.getenv("QUESTION_API_URL", "http://localhost:5000")
QUESTION_API_TIMEOUT = float(os.getenv("QUESTION_API_TIMEOUT", "15"))
QUESTION_API_RETRIES = int(os.getenv("QUESTION_API_RETRIES", "3"))
USER_AGENT = "barprep/1.0"


def _segment(value: Any) -> str:
    return quote(str(value), safe="")


class QuestionSource:
    def __init__(
        self,
        base_url: str = QUESTION_API_URL,
        timeout: float = QUESTION_API_TIMEOUT,
        max_retries: int = QUESTION_API_RETRIES,
        backoff: float = 1.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.backoff = backoff
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT, "Accept": "application/json"})

    def _get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET with retry on network errors and 5xx; 4xx fails straight away."""
        url = f"{self.base_url}{endpoint}"
        for attempt in range(self.max_retries):
            try:
                response = self.session.get(url, params=params, timeout=self.timeout)
            except requests.RequestException as e:
                logger.warning(f"GET {endpoint} failed (attempt {attempt + 1}/{self.max_retries}): {e}")
                if attempt < self.max_retries - 1:
                    time.sleep(self.backoff * (1 + attempt))
                    continue
                logger.error(f"Question source unreachable: {endpoint}")
                raise SourceUnavailable(endpoint, reason=str(e)) from e

            if response.status_code >= 500 and attempt < self.max_retries - 1:
                logger.warning(f"GET {endpoint} returned {response.status_code} (attempt {attempt + 1}/{self.max_retries})")
                time.sleep(self.backoff * (1 + attempt))
                continue
            if not 200 <= response.status_code < 300:
                logger.error(f"GET {endpoint} returned {response.status_code}")
                raise SourceUnavailable(endpoint, status_code=response.status_code)
            try:
                return response.json()
            except ValueError as e:
                logger.error(f"GET {endpoint} returned invalid JSON: {e}")
                raise SourceUnavailable(endpoint, reason="invalid JSON") from e

    def _questions(self, endpoint: str) -> List[Question]:
        """Parsed questions; malformed records are logged and dropped."""
        data = self._get(endpoint)
        if not isinstance(data, list):
            raise SourceUnavailable(endpoint, reason="expected a list of questions")
        questions = []
        for item in data:
            try:
                questions.append(Question.from_api(item))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Dropped malformed question from {endpoint}: {e}")
        return questions

    def _question(self, endpoint: str, payload: Any) -> Question:
        try:
            return Question.from_api(payload)
        except (KeyError, ValueError, TypeError) as e:
            logger.error(f"Malformed question from {endpoint}: {e}")
            raise SourceUnavailable(endpoint, reason=f"malformed question: {e}") from e

    def _names(self, endpoint: str) -> List[str]:
        data = self._get(endpoint)
        if not isinstance(data, list):
            raise SourceUnavailable(endpoint, reason="expected a list of names")
        # Ordered set: keep first occurrence
        return list(dict.fromkeys(str(name) for name in data))

    def _count(self, endpoint: str) -> int:
        data = self._get(endpoint)
        try:
            return int(data["total"])
        except (KeyError, ValueError, TypeError) as e:
            raise SourceUnavailable(endpoint, reason="expected {\"total\": n}") from e

    # ============= Catalogue =============

    def get_subjects(self) -> List[str]:
        return self._names("/subjects")

    def get_topics(self) -> List[str]:
        return self._names("/topics")

    def count_by_subject(self, subject: str) -> int:
        return self._count(f"/subjects/{_segment(subject)}/count")

    def count_by_topic(self, topic: str) -> int:
        return self._count(f"/topics/{_segment(topic)}/count")

    # ============= Questions =============

    def get_questions_by_subject(self, subject: str, count: int) -> List[Question]:
        """Up to `count` questions for a subject."""
        return self._questions(f"/subjects/{_segment(subject)}/{int(count)}")

    def get_questions_by_topic(self, topic: str, count: int) -> List[Question]:
        """Up to `count` questions for a topic."""
        return self._questions(f"/topics/{_segment(topic)}/{int(count)}")

    def get_question(self, question_id: int) -> Question:
        endpoint = f"/questions/{_segment(question_id)}"
        return self._question(endpoint, self._get(endpoint))

    def get_random_question(self, subject: Optional[str] = None, topic: Optional[str] = None) -> Question:
        endpoint = "/questions/random"
        params = {k: v for k, v in (("subject", subject), ("topic", topic)) if v}
        return self._question(endpoint, self._get(endpoint, params or None))
