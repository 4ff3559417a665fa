from types import SimpleNamespace as NS

from django.test import SimpleTestCase, override_settings

from chat.context import (
    CONSISTENCY_REMINDER,
    RESET_ACK,
    ContextBuilder,
    build_prompt,
)
from chat.errors import InvalidInput


def msg(content, role="USER", image_url=None, excluded=False):
    return NS(content=content, role=role, image_url=image_url, exclude_from_context=excluded)


class SelectHistoryTests(SimpleTestCase):
    def test_budget_keeps_newest_messages_that_fit(self):
        # 200 hangul syllables = 500 tokens each; 25600 // 500 = 51
        history = [msg("가" * 200) for _ in range(100)]
        for i, m in enumerate(history):
            m.position = i

        chosen = ContextBuilder(token_budget=25_600).select_history(history)

        self.assertEqual(len(chosen), 51)
        self.assertIs(chosen[-1], history[-1])
        self.assertEqual([m.position for m in chosen], list(range(49, 100)))

    def test_message_cap(self):
        history = [msg("hi") for _ in range(100)]
        chosen = ContextBuilder(token_budget=1_000_000, max_messages=70).select_history(history)
        self.assertEqual(len(chosen), 70)
        self.assertIs(chosen[-1], history[-1])

    def test_newest_message_over_budget_yields_empty_window(self):
        history = [msg("short"), msg("가" * 100)]
        self.assertEqual(ContextBuilder(token_budget=100).select_history(history), [])

    def test_excluded_messages_do_not_consume_budget(self):
        keep = msg("가" * 20)          # 50 tokens
        hidden = msg("가" * 40, excluded=True)  # 100 tokens if counted
        chosen = ContextBuilder(token_budget=100).select_history([keep, hidden, keep])
        self.assertEqual(chosen, [keep, keep])

    def test_empty_history(self):
        self.assertEqual(ContextBuilder().select_history([]), [])


class PromptTests(SimpleTestCase):
    def test_blank_message_is_invalid(self):
        for blank in ("", "   ", None):
            with self.assertRaises(InvalidInput):
                build_prompt(blank)

    def test_prompt_sections_in_order(self):
        prompt = build_prompt("오늘 날씨 어때?", prior_messages=[
            msg("안녕", "USER"),
            msg("안녕하세요!", "ASSISTANT"),
        ])
        self.assertIn("Gemma 3n", prompt)
        self.assertIn("이전 대화 내용:", prompt)
        self.assertIn("사용자: 안녕\n", prompt)
        self.assertIn("AI: 안녕하세요!\n", prompt)
        self.assertLess(prompt.index("사용자: 안녕"), prompt.index("AI: 안녕하세요!"))
        self.assertLess(prompt.index("AI: 안녕하세요!"), prompt.index("현재 질문:"))
        self.assertTrue(prompt.endswith("오늘 날씨 어때?" + CONSISTENCY_REMINDER))

    def test_prompt_opens_with_full_assistant_guidelines(self):
        prompt = build_prompt("안녕")
        self.assertTrue(prompt.startswith("=== Gemma 3n AI 어시스턴트 지침 ===\n"))
        for line in (
            "모델: Google Gemma 3n (효율적 온디바이스 멀티모달 모델)",
            "• 한국 문화와 언어 특성을 고려한 적절한 표현 사용",
            "• 추가 궁금증을 예상하고 관련 정보나 도움 제안",
            "• 온디바이스 환경의 장점(개인정보 보호, 빠른 응답)을 활용",
        ):
            self.assertIn(line + "\n", prompt)
        self.assertEqual(prompt.count("• "), 12)

    def test_no_history_section_without_history(self):
        prompt = build_prompt("hello")
        self.assertNotIn("이전 대화 내용:", prompt)
        self.assertIn("현재 질문:\nhello", prompt)

    def test_long_history_entries_are_truncated(self):
        long = "x" * 250
        prompt = build_prompt("next", prior_messages=[msg(long)])
        self.assertIn("사용자: " + "x" * 197 + "...\n", prompt)
        self.assertNotIn("x" * 198, prompt)

    def test_history_entry_of_exactly_200_chars_is_kept(self):
        prompt = build_prompt("next", prior_messages=[msg("y" * 200)])
        self.assertIn("사용자: " + "y" * 200 + "\n", prompt)

    def test_image_annotations(self):
        prompt = build_prompt("이건 뭐야?", image_url="http://img/2.png",
                              prior_messages=[msg("사진", image_url="http://img/1.png")])
        self.assertIn("  (이미지: http://img/1.png)\n", prompt)
        self.assertIn("이미지 URL: http://img/2.png\n", prompt)

    def test_blank_image_url_is_ignored(self):
        prompt = build_prompt("q", image_url="  ")
        self.assertNotIn("이미지 URL", prompt)

    def test_excluded_message_never_reaches_prompt(self):
        prompt = build_prompt("q", prior_messages=[msg("visible"), msg("secret-note", excluded=True)])
        self.assertIn("visible", prompt)
        self.assertNotIn("secret-note", prompt)


class ResetTests(SimpleTestCase):
    def test_reset_keyword_short_circuits(self):
        history = [msg("remember this"), msg("and this", "ASSISTANT")]
        prompt = build_prompt("이전 대화 잊어버려", prior_messages=history)
        self.assertIn("=== 대화 초기화 요청 ===", prompt)
        self.assertIn("현재 질문: 이전 대화 잊어버려", prompt)
        self.assertIn(RESET_ACK, prompt)
        self.assertNotIn("remember this", prompt)
        self.assertNotIn("이전 대화 내용:", prompt)

    def test_keyword_match_is_case_insensitive_and_substring(self):
        builder = ContextBuilder()
        self.assertTrue(builder.is_reset_request("  Please RESET now "))
        self.assertTrue(builder.is_reset_request("우리 대화 초기화 해줄래?"))
        self.assertFalse(builder.is_reset_request("오늘 날씨 어때?"))

    def test_custom_keywords(self):
        prompt = build_prompt("wipe it", reset_keywords=["wipe"])
        self.assertIn("=== 대화 초기화 요청 ===", prompt)

    @override_settings(CHAT_RESET_KEYWORDS=["지워줘"])
    def test_keywords_from_settings(self):
        builder = ContextBuilder.from_settings()
        self.assertTrue(builder.is_reset_request("다 지워줘"))
        self.assertFalse(builder.is_reset_request("reset"))


class SettingsTests(SimpleTestCase):
    @override_settings(CHAT_CONTEXT_WINDOW=1000, CHAT_CONTEXT_RATIO=0.5, CHAT_MAX_CONTEXT_MESSAGES=3)
    def test_limits_from_settings(self):
        builder = ContextBuilder.from_settings()
        self.assertEqual(builder.token_budget, 500)
        self.assertEqual(builder.max_messages, 3)

    def test_default_budget(self):
        self.assertEqual(ContextBuilder().token_budget, 25_600)
