import asyncio
import contextlib
import json
import os
import threading
import unittest
from datetime import datetime, timezone
from unittest.mock import patch

from fastapi.testclient import TestClient

from _support import TempDatabase, auth_headers, make_session

from applymint.api.stream import open_interview_stream
from applymint.errors import ValidationError
from applymint.grading import StaticGrader
from applymint.main import create_app
from applymint.models.interview import QuestionCreate
from applymint.services.interview_flow import InterviewFlow
from applymint.services.interview_stream import InterviewEventChannel, format_sse
from applymint.services.question_generator import QuestionGenerator


async def _next_event(events, timeout: float = 2.0):
    return await asyncio.wait_for(anext(events), timeout=timeout)


class EventChannelTests(unittest.IsolatedAsyncioTestCase):
    async def test_connected_then_single_question(self) -> None:
        calls = []

        def ask() -> dict:
            calls.append(1)
            return {"id": "q_1", "question": "Tell me about yourself."}

        async with InterviewEventChannel("s1", ask, heartbeat_interval=60, question_delay=0) as channel:
            events = channel.events()
            connected = await _next_event(events)
            question = await _next_event(events)

        self.assertEqual(connected["type"], "connected")
        self.assertEqual(connected["sessionId"], "s1")
        self.assertEqual(question["type"], "question_generated")
        self.assertEqual(question["payload"]["question"]["id"], "q_1")
        self.assertEqual(len(calls), 1)

    async def test_heartbeats_repeat(self) -> None:
        async with InterviewEventChannel("s1", lambda: None, heartbeat_interval=0.01, question_delay=0) as channel:
            events = channel.events()
            self.assertEqual((await _next_event(events))["type"], "connected")
            self.assertEqual((await _next_event(events))["type"], "heartbeat")
            self.assertEqual((await _next_event(events))["type"], "heartbeat")

    async def test_question_failure_emits_error_event(self) -> None:
        def ask() -> dict:
            raise RuntimeError("generator down")

        async with InterviewEventChannel("s1", ask, heartbeat_interval=60, question_delay=0) as channel:
            events = channel.events()
            await _next_event(events)
            error = await _next_event(events)

        self.assertEqual(error["type"], "error")
        self.assertEqual(error["payload"], {"message": "Failed to generate question"})

    async def test_close_stops_delivery(self) -> None:
        release = threading.Event()

        def ask() -> dict:
            release.wait(2)
            return {"id": "q_late"}

        channel = InterviewEventChannel("s1", ask, heartbeat_interval=0.01, question_delay=0)
        channel.start()
        await channel.close()
        release.set()
        self.assertTrue(channel.closed)

        await asyncio.sleep(0.05)
        delivered = [event async for event in channel.events()]
        self.assertEqual(delivered, [])

    async def test_close_logs_even_when_interrupted(self) -> None:
        channel = InterviewEventChannel("s1", lambda: None, heartbeat_interval=60, question_delay=60)
        channel.start()
        with self.assertLogs("applymint.services.interview_stream", level="INFO") as logs:
            closer = asyncio.create_task(channel.close())
            await asyncio.sleep(0)
            closer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await closer
        self.assertTrue(channel.closed)
        self.assertTrue(any("Closed interview stream for session s1" in line for line in logs.output))

    def test_format_sse(self) -> None:
        frame = format_sse({"type": "heartbeat", "timestamp": datetime(2024, 1, 1, tzinfo=timezone.utc)})
        self.assertTrue(frame.startswith("data: "))
        self.assertTrue(frame.endswith("\n\n"))
        self.assertEqual(
            json.loads(frame[len("data: "):]),
            {"type": "heartbeat", "timestamp": "2024-01-01T00:00:00+00:00"},
        )


class InterviewFlowTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = TempDatabase()
        self.service = self.db.service
        self.flow = InterviewFlow(self.service, StaticGrader(), QuestionGenerator())
        self.session = make_session(self.service, questionTypes=["behavioral", "technical"])

    def tearDown(self) -> None:
        self.db.close()

    def test_ask_persists_question_and_activates_session(self) -> None:
        question = self.flow.ask_next_question(self.session["id"])

        self.assertTrue(question["id"].startswith("q_"))
        self.assertEqual(question["type"], "behavioral")
        self.assertEqual(question["order"], 1)
        self.assertIsNotNone(question["askedAt"])
        session = self.service.get_session_by_id(self.session["id"])
        self.assertEqual(session["status"], "active")
        self.assertIsNotNone(session["startedAt"])
        messages = self.service.get_session_messages(self.session["id"])
        self.assertEqual([(m["type"], m["questionId"]) for m in messages], [("assistant", question["id"])])

    def test_unanswered_question_is_resent(self) -> None:
        first = self.flow.ask_next_question(self.session["id"])
        again = self.flow.ask_next_question(self.session["id"])
        self.assertEqual(first["id"], again["id"])
        self.assertEqual(len(self.service.get_session_questions(self.session["id"])), 1)

    def test_ask_continues_after_highest_stored_order(self) -> None:
        self.service.create_question(self.session["id"], QuestionCreate(type="technical", question="Why?", order=3))
        question = self.flow.ask_next_question(self.session["id"])
        self.assertEqual(question["order"], 4)

    def test_ask_for_unknown_session_returns_nothing(self) -> None:
        self.assertIsNone(self.flow.ask_next_question("s1"))

    def test_full_round_trip(self) -> None:
        first = self.flow.ask_next_question(self.session["id"])
        feedback = self.flow.submit_answer(
            self.session["id"],
            {"questionId": first["id"], "answer": "I led a migration.", "duration": 45},
        )
        self.assertEqual(feedback["overallScore"], 7)
        self.assertTrue(feedback["id"].startswith("f_"))
        self.assertIsNotNone(feedback["answerId"])

        second = self.flow.ask_next_question(self.session["id"])
        self.assertEqual(second["order"], 2)
        self.assertEqual(second["type"], "technical")
        self.flow.submit_answer(self.session["id"], {"questionId": second["id"], "answer": "Use a cache."})
        self.assertIsNone(self.flow.ask_next_question(self.session["id"]))

        summary = self.flow.end_session(self.session["id"])
        self.assertEqual(summary["answeredQuestions"], 2)
        self.assertEqual(summary["overallScore"], 7.0)
        self.assertEqual(summary["behavioralQuestions"]["answered"], 1)

        session = self.service.get_session_by_id(self.session["id"])
        self.assertEqual(session["status"], "completed")
        self.assertEqual(session["overallScore"], 7)
        self.assertEqual(session["currentQuestionIndex"], 2)
        self.assertEqual(len(self.service.get_session_messages(self.session["id"])), 6)
        self.assertIsNone(self.flow.ask_next_question(self.session["id"]))

    def test_answer_for_stored_question_requires_text(self) -> None:
        question = self.flow.ask_next_question(self.session["id"])
        with self.assertRaises(ValidationError):
            self.flow.submit_answer(self.session["id"], {"questionId": question["id"], "answer": "  "})

    def test_second_answer_is_rejected(self) -> None:
        question = self.flow.ask_next_question(self.session["id"])
        self.flow.submit_answer(self.session["id"], {"questionId": question["id"], "answer": "First"})
        with self.assertRaises(ValidationError):
            self.flow.submit_answer(self.session["id"], {"questionId": question["id"], "answer": "Second"})


class StreamEndpointTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.db = TempDatabase()
        self.flow = InterviewFlow(self.db.service, StaticGrader(), QuestionGenerator())
        self.session = make_session(self.db.service, user_id="alice")

    def tearDown(self) -> None:
        self.db.close()

    async def test_open_stream_sends_connected_then_question(self) -> None:
        with patch.dict(os.environ, {"APPLYMINT_STREAM_QUESTION_DELAY_SECONDS": "0"}):
            response = await open_interview_stream(
                sessionId=self.session["id"],
                current_user={"userId": "alice", "email": None},
                flow=self.flow,
            )

        self.assertEqual(response.media_type, "text/event-stream")
        self.assertEqual(response.headers["cache-control"], "no-cache")
        self.assertEqual(response.headers["connection"], "keep-alive")

        body = response.body_iterator
        try:
            frames = [await _next_event(body, timeout=5), await _next_event(body, timeout=5)]
        finally:
            await body.aclose()

        events = [json.loads(frame[len("data: "):]) for frame in frames]
        self.assertTrue(all(frame.endswith("\n\n") for frame in frames))
        self.assertEqual(events[0]["type"], "connected")
        self.assertEqual(events[0]["sessionId"], self.session["id"])
        self.assertEqual(events[1]["type"], "question_generated")
        question = events[1]["payload"]["question"]
        self.assertTrue(question["id"].startswith("q_"))

        stored = self.db.service.get_session_questions(self.session["id"])
        self.assertEqual([item["id"] for item in stored], [question["id"]])
        self.assertEqual(self.db.service.get_session_by_id(self.session["id"])["status"], "active")


class StreamApiTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = TempDatabase()
        app = create_app(self.db.service, grader=StaticGrader(), question_generator=QuestionGenerator())
        self.client = TestClient(app)
        self.alice = auth_headers("alice")
        self.bob = auth_headers("bob")
        self.session = make_session(self.db.service, user_id="alice")

    def tearDown(self) -> None:
        self.client.close()
        self.db.close()

    def _command(self, body: dict, headers: dict[str, str] | None = None):
        return self.client.post("/api/interview/stream", json=body, headers=headers or self.alice)

    def test_stream_requires_session_id(self) -> None:
        response = self.client.get("/api/interview/stream", headers=self.alice)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Session ID required"})

    def test_stream_requires_auth(self) -> None:
        response = self.client.get("/api/interview/stream", params={"sessionId": self.session["id"]})
        self.assertEqual(response.status_code, 401)

    def test_stream_unknown_session(self) -> None:
        response = self.client.get("/api/interview/stream", params={"sessionId": "nope"}, headers=self.alice)
        self.assertEqual(response.status_code, 404)

    def test_stream_other_users_session(self) -> None:
        response = self.client.get(
            "/api/interview/stream",
            params={"sessionId": self.session["id"]},
            headers=self.bob,
        )
        self.assertEqual(response.status_code, 403)

    def test_session_end_for_unknown_session(self) -> None:
        response = self._command({"type": "session_end", "sessionId": "s1"})
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertTrue(payload["success"])
        summary = payload["data"]["summary"]
        self.assertEqual(summary["sessionId"], "s1")
        self.assertGreaterEqual(summary["overallScore"], 0)
        self.assertLessEqual(summary["overallScore"], 10)

    def test_unknown_command_is_acknowledged(self) -> None:
        response = self._command({"type": "ping", "sessionId": self.session["id"]})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"success": True, "data": {"message": "Message received"}})

    def test_unknown_command_accepts_any_payload(self) -> None:
        for raw in ("hi", None, [1, 2]):
            with self.subTest(payload=raw):
                response = self._command({"type": "ping", "payload": raw, "sessionId": "s1"})
                self.assertEqual(response.status_code, 200, response.text)
                self.assertEqual(response.json(), {"success": True, "data": {"message": "Message received"}})

    def test_answer_submitted_with_numeric_answer_id(self) -> None:
        response = self._command(
            {"type": "answer_submitted", "sessionId": "s1", "payload": {"answerId": 123, "answer": "x"}}
        )
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()["data"]["feedback"]["answerId"], "123")

    def test_answer_submitted_with_non_object_payload(self) -> None:
        response = self._command({"type": "answer_submitted", "sessionId": "s1", "payload": "x"})
        self.assertEqual(response.status_code, 200, response.text)
        self.assertIsNone(response.json()["data"]["feedback"]["questionId"])

    def test_answer_submitted_returns_feedback(self) -> None:
        question = InterviewFlow(self.db.service, StaticGrader(), QuestionGenerator()).ask_next_question(
            self.session["id"]
        )
        response = self._command(
            {
                "type": "answer_submitted",
                "sessionId": self.session["id"],
                "payload": {"questionId": question["id"], "answer": "Sharded by tenant."},
            }
        )
        self.assertEqual(response.status_code, 200, response.text)
        feedback = response.json()["data"]["feedback"]
        self.assertEqual(feedback["overallScore"], 7)
        self.assertEqual(feedback["questionId"], question["id"])
        self.assertIsNotNone(self.db.service.get_question_response(question["id"]))

    def test_command_on_other_users_session_is_forbidden(self) -> None:
        response = self._command({"type": "session_end", "sessionId": self.session["id"]}, headers=self.bob)
        self.assertEqual(response.status_code, 403)

    def test_command_requires_type(self) -> None:
        response = self._command({"sessionId": self.session["id"]})
        self.assertEqual(response.status_code, 400)


if __name__ == "__main__":
    unittest.main()
