import os
import unittest
from unittest.mock import MagicMock, patch

from applymint.services.question_generator import (
    INTERVIEW_STRATEGY_STAGES,
    QuestionGenerator,
    _passes_question_guardrails,
    build_question_generator,
)

SESSION = {"jobRole": "Backend Engineer", "company": "Acme", "difficulty": "senior"}


class QuestionGeneratorTests(unittest.TestCase):
    def test_fallback_follows_strategy_stages(self) -> None:
        generator = QuestionGenerator()
        first = generator.generate(SESSION, [], order=1)
        self.assertEqual(first["type"], INTERVIEW_STRATEGY_STAGES[0]["type"])
        self.assertEqual(first["order"], 1)
        self.assertEqual(first["difficulty"], "senior")
        self.assertEqual(first["timeLimit"], 300)
        self.assertTrue(first["question"].endswith(("?", ".", "!")))
        self.assertTrue(first["expectedAnswerPoints"])

    def test_requested_question_types_are_honored(self) -> None:
        generator = QuestionGenerator()
        session = {**SESSION, "questionTypes": ["situational"]}
        for order in (1, 2, 3):
            self.assertEqual(generator.generate(session, [], order=order)["type"], "situational")

    def test_openai_candidate_is_used_when_it_passes_guardrails(self) -> None:
        generator = QuestionGenerator()
        client = MagicMock()
        client.chat.completions.create.return_value.choices = [
            MagicMock(message=MagicMock(content='{"question": "How would you shard a tenant database"}'))
        ]
        generator._client = client

        question = generator.generate(SESSION, [], order=1)
        self.assertEqual(question["question"], "How would you shard a tenant database?")
        self.assertEqual(question["order"], 1)

    def test_repeated_candidate_is_rejected(self) -> None:
        previous = [{"question": "How would you shard a tenant database?"}]
        self.assertFalse(_passes_question_guardrails("How would you shard a tenant database?", previous))
        self.assertFalse(_passes_question_guardrails("Why?", []))
        self.assertTrue(_passes_question_guardrails("Describe a production incident you owned.", previous))

    def test_builder_without_key_uses_templates(self) -> None:
        with patch.dict(os.environ, {"OPENAI_API_KEY": ""}):
            generator = build_question_generator()
        self.assertIsNone(generator._client)


if __name__ == "__main__":
    unittest.main()
