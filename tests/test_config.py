import os
import unittest
from unittest.mock import patch

from debatebattle.config import BattleConfig, load_config


@patch("debatebattle.config.load_dotenv")
class TestLoadConfig(unittest.TestCase):
    def test_defaults(self, mock_load_dotenv):
        with patch.dict(os.environ, {}, clear=True):
            config = load_config()
        self.assertEqual(config, BattleConfig())
        self.assertEqual(config.duration_hours, 1.0)
        self.assertEqual(config.winner_reward_points, 100)
        self.assertEqual(config.similarity_threshold, 0.7)

    def test_reads_environment(self, mock_load_dotenv):
        env = {
            "BATTLE_DURATION_HOURS": "0.5",
            "BATTLE_MAX_PARTICIPANTS": "50",
            "BATTLE_CHECK_INTERVAL_SECONDS": "5",
            "WINNER_REWARD_POINTS": "250",
            "TOPIC_SIMILARITY_THRESHOLD": "0.6",
            "TOPIC_MAX_ATTEMPTS": "5",
            "TOPIC_BACKOFF_SECONDS": " 1.5 ",
        }
        with patch.dict(os.environ, env, clear=True):
            config = load_config(".env.test")
        mock_load_dotenv.assert_called_once_with(".env.test")
        self.assertEqual(config.duration_hours, 0.5)
        self.assertEqual(config.max_participants, 50)
        self.assertEqual(config.check_interval_seconds, 5.0)
        self.assertEqual(config.winner_reward_points, 250)
        self.assertEqual(config.similarity_threshold, 0.6)
        self.assertEqual(config.topic_max_attempts, 5)
        self.assertEqual(config.topic_backoff_seconds, 1.5)

    def test_blank_value_uses_default(self, mock_load_dotenv):
        with patch.dict(os.environ, {"WINNER_REWARD_POINTS": "  "}, clear=True):
            self.assertEqual(load_config().winner_reward_points, 100)

    def test_invalid_value_names_variable(self, mock_load_dotenv):
        with patch.dict(os.environ, {"BATTLE_MAX_PARTICIPANTS": "many"}, clear=True):
            with self.assertRaises(ValueError) as ctx:
                load_config()
        self.assertIn("BATTLE_MAX_PARTICIPANTS", str(ctx.exception))


class TestBattleConfig(unittest.TestCase):
    def test_rejects_bad_values(self):
        for kwargs in (
            {"duration_hours": 0},
            {"max_participants": 0},
            {"similarity_threshold": 1.5},
            {"topic_max_attempts": 0},
        ):
            with self.subTest(**kwargs):
                with self.assertRaises(ValueError):
                    BattleConfig(**kwargs)


if __name__ == "__main__":
    unittest.main()
