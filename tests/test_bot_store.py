"""Tests for bot identity validation and folder provisioning."""

import tempfile
import unittest
from pathlib import Path

from botpanel.supervisor.bot_store import create_bot, list_bots
from botpanel.supervisor.errors import InvalidBotNameError
from botpanel.supervisor.identity import bot_dir, validate_bot_name


class BotIdentityTests(unittest.TestCase):
    """Bot names must never escape the bots directory."""

    def test_accepts_word_characters_and_dash(self) -> None:
        self.assertEqual(validate_bot_name("bot-discord_2"), "bot-discord_2")

    def test_rejects_traversal_and_separators(self) -> None:
        for name in ["..", "../etc", "a/b", "a\\b", ".hidden", "", "x" * 65, None, 42]:
            with self.subTest(name=name):
                with self.assertRaises(InvalidBotNameError):
                    validate_bot_name(name)

    def test_bot_dir_joins_validated_name(self) -> None:
        self.assertEqual(bot_dir(Path("/srv/bots"), "alpha"), Path("/srv/bots/alpha"))


class BotStoreTests(unittest.TestCase):
    """Validate demo provisioning and folder listing."""

    def test_create_and_list(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            js_dir = create_bot(root, "alpha")
            py_dir = create_bot(root, "beta", runtime="py")
            self.assertIn("Bot alpha started", (js_dir / "index.js").read_text(encoding="utf-8"))
            self.assertTrue((py_dir / "main.py").exists())
            (root / "not a bot").mkdir()
            (root / "loose.txt").write_text("x", encoding="utf-8")
            self.assertEqual(list_bots(root), ["alpha", "beta"])

    def test_create_refuses_existing(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            create_bot(Path(tmpdir), "alpha")
            with self.assertRaises(FileExistsError):
                create_bot(Path(tmpdir), "alpha")

    def test_create_rejects_unknown_runtime(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(ValueError):
                create_bot(Path(tmpdir), "alpha", runtime="ruby")

    def test_missing_bots_dir_lists_nothing(self) -> None:
        self.assertEqual(list_bots(Path("/nonexistent/botpanel/bots")), [])


if __name__ == "__main__":
    unittest.main()
