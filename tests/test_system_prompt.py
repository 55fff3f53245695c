import unittest

from rai_chat.system_prompt import SUPPORT_INFO, build_system_prompt


class BuildSystemPromptTests(unittest.TestCase):
    def test_parent_prompt_names_child_and_support(self) -> None:
        prompt = build_system_prompt("parent", "Aarav")
        self.assertIn("parent of Aarav", prompt)
        self.assertIn(SUPPORT_INFO, prompt)

    def test_parent_prompt_without_child(self) -> None:
        self.assertIn("parent of your child", build_system_prompt("parent"))

    def test_coach_and_admin(self) -> None:
        self.assertIn("Student: Aarav", build_system_prompt("coach", "Aarav"))
        self.assertIn("none selected", build_system_prompt("coach"))
        self.assertIn("admin", build_system_prompt("admin"))


if __name__ == "__main__":
    unittest.main()
