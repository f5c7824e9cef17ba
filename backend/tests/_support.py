import tempfile
from pathlib import Path

from applymint.db import create_db_engine, create_session_factory, init_db
from applymint.models.interview import SessionCreateRequest
from applymint.services.auth_service import create_access_token
from applymint.services.interview_service import InterviewService


class TempDatabase:
    """File-backed SQLite database so worker threads each get their own connection."""

    def __init__(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.engine = create_db_engine(f"sqlite:///{Path(self._tmp.name) / 'applymint.db'}")
        init_db(self.engine)
        self.service = InterviewService(create_session_factory(self.engine))

    def close(self) -> None:
        self.service.close()
        self.engine.dispose()
        self._tmp.cleanup()


def auth_headers(user_id: str) -> dict[str, str]:
    token, _ = create_access_token(user_id=user_id, email=f"{user_id}@example.com")
    return {"Authorization": f"Bearer {token}"}


def make_session(service: InterviewService, user_id: str = "user-a", **overrides) -> dict:
    fields = {"title": "Mock", "jobRole": "Backend Engineer", "mode": "text", **overrides}
    return service.create_session(user_id, SessionCreateRequest(**fields))
